"""
Error model for the Fallible Resource library.

Acquisition failures are values returned to the caller, not exceptions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Kinds of acquisition failure."""
    INVALID_CONFIG = "InvalidConfig"
    ALREADY_EXISTS = "AlreadyExists"
    ACQUISITION_FAILED = "AcquisitionFailed"
    CONFIGURATION_FAILED = "ConfigurationFailed"
    WRITE_FAILED = "WriteFailed"
    RELEASE_FAILED = "ReleaseFailed"


@dataclass(frozen=True)
class AcquisitionError:
    """
    Structured description of a failed acquisition.

    Attributes:
        kind: Failure category
        identity: Identity of the resource that was being created
        message: Human-readable description
        errno: Underlying OS error code, if any
        cause: Originating exception, if any

    Never owns a resource handle: by the time an AcquisitionError exists,
    anything partially acquired has been released.
    """
    kind: ErrorKind
    identity: str
    message: str
    errno: Optional[int] = None
    cause: Optional[BaseException] = None

    @classmethod
    def from_os_error(cls, kind: ErrorKind, identity: str, message: str,
                      error: BaseException) -> "AcquisitionError":
        """Build an error carrying the errno of an OSError cause."""
        return cls(
            kind=kind,
            identity=identity,
            message=f"{message}: {error}",
            errno=getattr(error, "errno", None),
            cause=error,
        )

    def __str__(self) -> str:
        suffix = f" [errno {self.errno}]" if self.errno is not None else ""
        return f"{self.kind.value}({self.identity!r}): {self.message}{suffix}"


class ResourceDetachedError(AttributeError):
    """Raised when touching a resource that was moved or closed."""
    pass
