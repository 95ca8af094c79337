"""Permission management for chat actions.

Provides the role matrix for conversation actions and the visibility rule
shared by list, unread and message operations.
"""

from typing import TYPE_CHECKING

from app.schemas.auth import CallerRole

if TYPE_CHECKING:
    from app.schemas.auth import Caller
    from app.schemas.chat import ConversationRecord

# Permission Matrix
# Maps action names to the caller roles that can perform that action
PERMISSION_MATRIX: dict[str, list[str]] = {
    # Lifecycle
    "close_conversation": ["admin", "staff"],
    "reopen_conversation": ["admin", "staff"],
    "archive_conversation": ["admin"],

    # Assignment
    "assign_conversation": ["admin", "staff"],

    # Contact details
    "edit_contact_details": ["admin", "staff", "customer"],

    # Read state (console only)
    "mark_read": ["admin", "staff"],
    "view_unread_count": ["admin", "staff"],
}

# Conversation field to permission action mapping for updates
FIELD_PERMISSION_MAP: dict[str, str] = {
    "customer_name": "edit_contact_details",
    "customer_email": "edit_contact_details",
    "customer_phone": "edit_contact_details",
    "assigned_to": "assign_conversation",
}

# Target status to permission action mapping
STATUS_PERMISSION_MAP: dict[str, str] = {
    "closed": "close_conversation",
    "active": "reopen_conversation",
    "archived": "archive_conversation",
}


def has_permission(caller: "Caller", action: str) -> bool:
    """Check if a caller's role allows an action.

    Args:
        caller: The identity making the request
        action: The action name (must be a key in PERMISSION_MATRIX)

    Returns:
        True if the caller can perform the action, False otherwise
    """
    allowed_roles = PERMISSION_MATRIX.get(action, [])
    return CallerRole(caller.role).value in allowed_roles


def can_view_conversation(caller: "Caller", conversation: "ConversationRecord") -> bool:
    """Check whether a conversation is visible to a caller.

    Admins see everything. Staff only see conversations assigned to them.
    Customers see their own conversations; guest conversations (no
    customer_ref) are reachable by anyone holding their id.
    """
    if caller.is_admin:
        return True
    if caller.is_staff:
        return caller.id is not None and conversation.assigned_to == caller.id
    if conversation.customer_ref is None:
        return True
    return caller.id is not None and conversation.customer_ref == caller.id


def get_permission_denied_message(action: str) -> str:
    """Get a user-facing message explaining why an action was denied.

    Args:
        action: The action that was denied

    Returns:
        Message explaining the denial
    """
    action_descriptions: dict[str, str] = {
        "close_conversation": "close conversations",
        "reopen_conversation": "reopen conversations",
        "archive_conversation": "archive conversations",
        "assign_conversation": "assign conversations",
        "edit_contact_details": "edit contact details",
        "mark_read": "mark messages as read",
        "view_unread_count": "view unread counts",
    }

    action_desc = action_descriptions.get(action, action)

    allowed_roles = PERMISSION_MATRIX.get(action, [])
    if allowed_roles == ["admin"]:
        prefix = "Only admins can"
    elif set(allowed_roles) == {"admin", "staff"}:
        prefix = "Only staff and admins can"
    else:
        prefix = "You are not allowed to"

    return f"{prefix} {action_desc}."
