class TarStreamError(Exception):
    """Base class for tarstream-specific errors."""


# Header construction
class NameTooLong(TarStreamError):
    """Path cannot be split into USTAR name/prefix fields."""


class FieldOverflow(TarStreamError):
    """Value does not fit the width of its header field."""


class InvalidMetadata(TarStreamError, ValueError):
    pass


# Streaming
class SizeMismatch(TarStreamError):
    """Content source yielded a different byte count than declared."""

    def __init__(self, name: str, declared: int, actual: int, *, overrun: bool = False):
        self.name = name
        self.declared = declared
        self.actual = actual
        if overrun:
            msg = f"{name}: content exceeds declared size {declared} (got at least {actual} bytes)"
        else:
            msg = f"{name}: declared size {declared} but content yielded {actual} bytes"
        super().__init__(msg)


class InvalidState(TarStreamError, RuntimeError):
    pass
