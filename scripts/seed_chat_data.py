"""Seed demo chat data for local testing.

This script creates:
- A guest conversation that has received the automatic welcome
- A registered customer's conversation assigned to a staff member
- A closed conversation (reopens when a new message arrives)

Data goes through the same repository as the API, so it lands in the primary
store when DATABASE_URL is configured and in the file mirror otherwise.

Usage:
    python scripts/seed_chat_data.py
    python scripts/seed_chat_data.py --clean   # remove the file mirror
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import load_settings
from app.database import dispose_engines
from app.models import ConversationStatus, SenderRole
from app.schemas.auth import Caller, CallerRole
from app.schemas.chat import ConversationCreate, MessageCreate
from app.services import conversation as conversation_service
from app.services.message_processor import InboundMessageProcessor
from app.services.storage import build_repository

# Demo data constants
TEST_STAFF_ID = "staff_demo_1"
TEST_STAFF_NAME = "Nadeesha"
TEST_CUSTOMER_REF = "customer_demo_1"
TEST_CUSTOMER_NAME = "Dilani Perera"

ADMIN = Caller(id="admin_demo", name="Admin", role=CallerRole.ADMIN)


async def seed_data():
    """Seed demo conversations and messages."""
    settings = load_settings()
    repo = build_repository()
    processor = InboundMessageProcessor(repo, settings=settings)

    try:
        print("🌱 Starting chat data seeding...")
        print(f"Store: {'primary' if settings.primary_configured else settings.chat_data_dir}")
        print("=" * 80)

        # Guest conversation: first message triggers the welcome, second gives the name
        guest, _ = await conversation_service.create_conversation(
            repo, ConversationCreate(customer_name="Guest")
        )
        for content in ("Hi", "Kasun"):
            result = await processor.create_message(
                MessageCreate(conversation_id=guest.id, sender_name="Guest", content=content)
            )
            print(
                f"  {guest.id}: {content!r} welcome_sent={result.welcome_sent} "
                f"name_updated={result.name_updated}"
            )

        # Registered customer, assigned to staff
        registered, created = await conversation_service.create_conversation(
            repo,
            ConversationCreate(
                customer_ref=TEST_CUSTOMER_REF,
                customer_name=TEST_CUSTOMER_NAME,
                customer_email="dilani@example.com",
            ),
        )
        print(f"\n📍 Customer conversation {registered.id} (new: {created})")
        await processor.create_message(
            MessageCreate(
                conversation_id=registered.id,
                sender_ref=TEST_CUSTOMER_REF,
                sender_name=TEST_CUSTOMER_NAME,
                content="Do you have tours to Ella next week?",
            )
        )
        await conversation_service.assign_conversation(repo, registered.id, TEST_STAFF_ID, ADMIN)
        await processor.create_message(
            MessageCreate(
                conversation_id=registered.id,
                sender_ref=TEST_STAFF_ID,
                sender_name=TEST_STAFF_NAME,
                sender_role=SenderRole.STAFF,
                content="Yes! We have departures on Tuesday and Friday.",
            )
        )

        # Closed conversation
        closed, _ = await conversation_service.create_conversation(
            repo, ConversationCreate(customer_name="Guest")
        )
        await processor.create_message(
            MessageCreate(conversation_id=closed.id, sender_name="Guest", content="Thanks, bye!")
        )
        await conversation_service.close_conversation(repo, closed.id, ADMIN)

        print("\n" + "=" * 80)
        print("✅ Chat data seeding complete!")
        print("=" * 80)
        print("\n📋 Summary:")
        print(f"  Guest conversation: {guest.id}")
        print(f"  Assigned conversation: {registered.id} -> {TEST_STAFF_ID}")
        print(f"  Closed conversation: {closed.id} ({ConversationStatus.CLOSED.value})")

    except Exception as e:
        print(f"\n❌ Error seeding data: {e}")
        import traceback

        traceback.print_exc()
        sys.exit(1)
    finally:
        await dispose_engines()


def clean_file_mirror():
    """Remove the local file mirror (the primary store is left untouched)."""
    data_dir = Path(load_settings().chat_data_dir)
    print(f"🧹 Cleaning {data_dir}...")
    removed = 0
    for name in ("conversations.json", "messages.json"):
        path = data_dir / name
        if path.exists():
            path.unlink()
            removed += 1
    print(f"✅ Removed {removed} files" if removed else "No mirror files found")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Seed demo chat data")
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove the file mirror instead of seeding",
    )

    args = parser.parse_args()

    if args.clean:
        clean_file_mirror()
    else:
        asyncio.run(seed_data())
