"""Domain exceptions. The dispatcher turns these into tool results."""


class EclipseError(Exception):
    """Base class for agent core errors."""
    pass


class MemoryNotFound(EclipseError):
    """Raised when a memory id (full or short) matches nothing."""

    def __init__(self, ref: str):
        self.ref = ref
        super().__init__(f"Memory not found: {ref}")


class InvalidOperation(EclipseError):
    """Raised when a call is well-formed but can't be carried out."""
    pass
