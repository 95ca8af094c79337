"""Business logic services for the support chat."""

# Service modules are imported individually where needed
# to avoid circular imports

__all__ = [
    "conversation",
    "message_processor",
    "name_extraction",
    "permissions",
    "push",
    "read_state",
    "storage",
    "whatsapp",
]
