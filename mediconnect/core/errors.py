import enum

class ErrorKind(str, enum.Enum):
    """Classification of failures reported by the core.

    The core never raises these; they travel inside result objects and the
    HTTP layer maps them to status codes.
    """
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_TRANSITION = "invalid_transition"
    PERSISTENCE_UNAVAILABLE = "persistence_unavailable"
    DUPLICATE_ON_MIRROR = "duplicate_on_mirror"
