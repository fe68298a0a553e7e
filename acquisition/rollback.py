"""
Release and rollback helpers for the Fallible Resource library.

Every path that gives a handle back to the operating system goes through
this module. A failed release is fatal: the process logs and aborts
instead of continuing with a handle in an unknown state.
"""

import os
from typing import Optional

from allocation import native
from allocation.allocator import Allocator, Slot
from models.errors import ErrorKind
from tracking.events import EventLog, EventType, record_event
from utils.logger import ResourceLogger


def abort_on_release_failure(
    identity: str,
    cause: BaseException,
    logger: Optional[ResourceLogger] = None
) -> None:
    """
    Stop the process after a handle could not be released.

    Args:
        identity: Resource whose release failed
        cause: Error reported by the release call
        logger: Logger to report through (a console logger if None)
    """
    if logger is None:
        logger = ResourceLogger()
    logger.log(
        f"{ErrorKind.RELEASE_FAILED.value}: releasing {identity} failed ({cause}) - aborting",
        "fatal"
    )
    logger.close()
    os.abort()


def _close_descriptor(fd: int, identity: str, logger: Optional[ResourceLogger]) -> None:
    try:
        os.close(fd)
    except OSError as e:
        abort_on_release_failure(identity, e, logger)


def release_descriptor(
    fd: int,
    identity: str,
    logger: Optional[ResourceLogger] = None,
    event_log: Optional[EventLog] = None
) -> None:
    """
    Close a descriptor owned by a FileResource.

    Args:
        fd: Descriptor to close
        identity: Resource identity (for diagnostics)
        logger: Optional logger
        event_log: Optional event log
    """
    _close_descriptor(fd, identity, logger)
    if logger:
        logger.log_released(identity)
    record_event(event_log, EventType.RELEASED, identity)


def destroy_mutex(
    slot: Slot,
    allocator: Allocator,
    identity: str,
    logger: Optional[ResourceLogger] = None,
    event_log: Optional[EventLog] = None
) -> None:
    """
    Destroy a pinned mutex and return its slot to the allocator.

    Args:
        slot: Slot holding the mutex
        allocator: Allocator that issued the slot
        identity: Resource identity (for diagnostics)
        logger: Optional logger
        event_log: Optional event log
    """
    code = native.mutex_destroy(slot.address)
    if code != 0:
        abort_on_release_failure(identity, OSError(code, os.strerror(code)), logger)
        return
    allocator.deallocate(slot)
    if logger:
        logger.log_released(identity)
    record_event(event_log, EventType.RELEASED, identity)


def rollback_file(
    fd: int,
    temp_path: str,
    identity: str,
    kind: ErrorKind,
    message: str,
    logger: Optional[ResourceLogger] = None,
    event_log: Optional[EventLog] = None
) -> None:
    """
    Undo a partially configured file acquisition.

    Closes the descriptor and removes the hidden temporary file, leaving
    whatever existed at `identity` before the attempt untouched.

    Args:
        fd: Descriptor of the hidden temporary file
        temp_path: Path of the hidden temporary file
        identity: Target identity of the failed acquisition
        kind: Error kind that triggered the rollback
        message: Failure description
        logger: Optional logger
        event_log: Optional event log
    """
    _close_descriptor(fd, identity, logger)

    try:
        os.unlink(temp_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        (logger or ResourceLogger()).log(
            f"Rollback of {identity} could not remove {temp_path}: {e}", "error"
        )

    if logger:
        logger.log_rollback(identity, kind.value, message)
    record_event(event_log, EventType.ROLLED_BACK, identity, kind.value, message)


def rollback_slot(
    slot: Slot,
    allocator: Allocator,
    identity: str,
    kind: ErrorKind,
    message: str,
    logger: Optional[ResourceLogger] = None,
    event_log: Optional[EventLog] = None
) -> None:
    """Return a slot whose mutex never finished initialising."""
    allocator.deallocate(slot)
    if logger:
        logger.log_rollback(identity, kind.value, message)
    record_event(event_log, EventType.ROLLED_BACK, identity, kind.value, message)
