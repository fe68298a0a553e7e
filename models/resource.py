"""
Resource models for the Fallible Resource library.

A resource owns exactly one acquired handle. Instances are only created
by the factories in acquisition.factory, and their initializers accept
nothing but an already-valid handle, so every live resource is valid.
"""

import os
from contextlib import contextmanager
from typing import Iterator, Optional, Union

from allocation import native
from allocation.allocator import Allocator, Slot
from acquisition.rollback import destroy_mutex, release_descriptor
from models.errors import ResourceDetachedError
from tracking.events import EventLog, EventType, record_event
from utils.logger import ResourceLogger

READ_CHUNK_SIZE = 64 * 1024


def write_all(fd: int, data: bytes) -> int:
    """
    Write every byte of `data` at the descriptor's current offset.

    Returns:
        Number of bytes written

    Raises:
        OSError: If the underlying write fails
    """
    view = memoryview(data)
    written = 0
    while written < len(view):
        written += os.write(fd, view[written:])
    return written


class DetachedResource:
    """
    What a resource turns into once it has been moved or closed.

    It has no operations and no handle; any attribute lookup raises
    ResourceDetachedError. It never runs release logic.
    """

    def __getattr__(self, name: str):
        raise ResourceDetachedError(
            f"Resource {self.__dict__.get('_identity', '?')!r} was "
            f"{self.__dict__.get('_reason', 'detached')}; '{name}' is not available"
        )

    def __repr__(self) -> str:
        return f"<DetachedResource {self.__dict__.get('_identity')!r} ({self.__dict__.get('_reason')})>"


def _detach(resource: object, reason: str) -> None:
    """Strip a resource of its handle and turn it into a DetachedResource."""
    identity = resource.__dict__.get("_identity", "?")
    resource.__dict__.clear()
    resource.__class__ = DetachedResource
    resource.__dict__["_identity"] = identity
    resource.__dict__["_reason"] = reason


class FileResource:
    """
    Owning wrapper around an open file descriptor.

    Relocatable: ownership can be handed to a new value with move().
    Reads use positional I/O and may be shared across threads; writes
    are not synchronised.

    Attributes:
        identity: Path the descriptor was published at
    """

    def __init__(
        self,
        identity: str,
        fd: int,
        logger: Optional[ResourceLogger] = None,
        event_log: Optional[EventLog] = None
    ):
        self._identity = identity
        self._fd = fd
        self._logger = logger
        self._event_log = event_log

    @property
    def identity(self) -> str:
        return self._identity

    def read(self) -> bytes:
        """Read the full content from the start of the file."""
        chunks = []
        offset = 0
        while True:
            chunk = os.pread(self._fd, READ_CHUNK_SIZE, offset)
            if not chunk:
                break
            chunks.append(chunk)
            offset += len(chunk)
        return b"".join(chunks)

    def write(self, data: Union[bytes, str]) -> int:
        """
        Append data to the end of the file.

        Args:
            data: Bytes, or text encoded as UTF-8

        Returns:
            Number of bytes written
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        os.lseek(self._fd, 0, os.SEEK_END)
        return write_all(self._fd, data)

    def size(self) -> int:
        """Current size in bytes."""
        return os.fstat(self._fd).st_size

    def sync(self) -> None:
        """Flush file content to stable storage."""
        os.fsync(self._fd)

    def move(self) -> "FileResource":
        """
        Transfer ownership to a new FileResource.

        The source becomes a DetachedResource and will never release the
        descriptor.
        """
        moved = FileResource(self._identity, self._fd, self._logger, self._event_log)
        record_event(self._event_log, EventType.MOVED, self._identity)
        _detach(self, "moved")
        return moved

    def close(self) -> None:
        """Release the descriptor. The resource is detached first."""
        fd, identity = self._fd, self._identity
        logger, event_log = self._logger, self._event_log
        _detach(self, "closed")
        release_descriptor(fd, identity, logger, event_log)

    def __enter__(self) -> "FileResource":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not isinstance(self, DetachedResource):
            self.close()
        return False

    def __del__(self):
        if "_fd" in self.__dict__:
            self.close()

    def __copy__(self):
        raise TypeError("FileResource owns its descriptor exclusively; use move()")

    def __deepcopy__(self, memo):
        raise TypeError("FileResource owns its descriptor exclusively; use move()")

    def __reduce_ex__(self, protocol):
        raise TypeError("FileResource cannot be pickled")

    def __repr__(self) -> str:
        return f"FileResource(identity={self._identity!r})"


class MutexResource:
    """
    Owning wrapper around a pthread mutex living in a pinned slot.

    Non-relocatable: the mutex must stay at the address it was initialised
    at, so this type cannot be moved, copied or pickled. Pass the object
    itself (a reference) to collaborators.
    """

    def __init__(
        self,
        identity: str,
        slot: Slot,
        allocator: Allocator,
        logger: Optional[ResourceLogger] = None,
        event_log: Optional[EventLog] = None
    ):
        self._identity = identity
        self._slot = slot
        self._allocator = allocator
        self._logger = logger
        self._event_log = event_log

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def address(self) -> int:
        """Fixed address of the mutex for the lifetime of the resource."""
        return self._slot.address

    def acquire(self) -> None:
        """Block until the mutex is held."""
        code = native.mutex_lock(self._slot.address)
        if code != 0:
            raise OSError(code, os.strerror(code))

    def try_acquire(self) -> bool:
        """Take the mutex if it is free. Returns False if it is held."""
        code = native.mutex_trylock(self._slot.address)
        if code == 0:
            return True
        if code == native.EBUSY:
            return False
        raise OSError(code, os.strerror(code))

    def release(self) -> None:
        code = native.mutex_unlock(self._slot.address)
        if code != 0:
            raise OSError(code, os.strerror(code))

    @contextmanager
    def locked(self) -> Iterator["MutexResource"]:
        """Hold the mutex for the duration of a with-block."""
        self.acquire()
        try:
            yield self
        finally:
            self.release()

    def close(self) -> None:
        """Destroy the mutex and return its slot. Must not be held."""
        slot, allocator, identity = self._slot, self._allocator, self._identity
        logger, event_log = self._logger, self._event_log
        _detach(self, "closed")
        destroy_mutex(slot, allocator, identity, logger, event_log)

    def __del__(self):
        if "_slot" in self.__dict__:
            self.close()

    def __copy__(self):
        raise TypeError("MutexResource is pinned and cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("MutexResource is pinned and cannot be copied")

    def __reduce_ex__(self, protocol):
        raise TypeError("MutexResource is pinned and cannot be pickled")

    def __repr__(self) -> str:
        return f"MutexResource(identity={self._identity!r}, address={hex(self._slot.address)})"
