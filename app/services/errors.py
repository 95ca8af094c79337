"""Chat error taxonomy.

Callers only ever observe ValidationError, NotFoundError or a generic failure.
TransientBackendError is recovered inside the repository and HeuristicFailure
inside the message processor.
"""


class ChatError(Exception):
    """Base class for chat errors."""


class ValidationError(ChatError):
    """Required input is missing or a field update is not allowed."""

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        self.message = message or f"{field} is required"
        super().__init__(self.message)


class NotFoundError(ChatError):
    """A referenced record does not exist (or is not visible to the caller)."""

    def __init__(self, entity: str, record_id: str | None):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} {record_id} not found")


class TransientBackendError(ChatError):
    """The primary store failed; the repository falls back to the file mirror."""

    def __init__(self, operation: str, message: str = ""):
        self.operation = operation
        super().__init__(f"Primary store {operation} failed: {message}")


class FallbackIOError(ChatError):
    """The local file mirror is unreadable, corrupt or not writable."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Fallback store {path}: {message}")


class HeuristicFailure(ChatError):
    """Welcome dispatch or name extraction blew up; never surfaced."""

    def __init__(self, stage: str, cause: BaseException | None = None):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed: {cause!r}")
