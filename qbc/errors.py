"""QBC error taxonomy — every failure carries a machine-readable ``kind``."""


class QBCError(Exception):
    """Base class for all QBC errors."""

    def __init__(self, message: str, kind: str = "error"):
        super().__init__(message)
        self.kind = kind


class ConfigurationError(QBCError, ValueError):
    """Caller asked for something that does not exist (lattice kind, charset, layout...)."""


class DecodeError(QBCError, ValueError):
    """Malformed binary glyph input."""


class EncodeError(QBCError, ValueError):
    """A path cannot be represented in the requested wire format."""
