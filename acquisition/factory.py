"""
Resource factories for the Fallible Resource library.

The only way to obtain a resource. A factory either returns Ok(resource)
with a fully configured, valid handle, or Err(error) after releasing
anything it had partially acquired.

File acquisition order:
1. Validate the configuration (no system call on failure)
2. Refuse early if the identity exists and overwriting is off
3. Acquire a hidden temporary file next to the identity
4. Apply permissions and ownership to the hidden file
5. Write the initial content
6. Publish the hidden file at the identity in one atomic step

Nothing appears at the identity until step 6, so other observers never
see a partially configured resource.
"""

import errno
import grp
import os
import pwd
import tempfile
from typing import Optional

from acquisition.rollback import rollback_file, rollback_slot
from allocation import native
from allocation.allocator import Allocator, AllocatorExhaustedError, default_allocator
from models.config import MAX_MODE, ResourceConfig
from models.errors import AcquisitionError, ErrorKind
from models.resource import FileResource, MutexResource, write_all
from models.result import Err, Ok, Result
from tracking.events import EventLog, EventType, record_event
from utils.logger import ResourceLogger

TEMP_SUFFIX = ".partial"
# Leading characters of the file name kept in the hidden name
TEMP_NAME_HINT = 32
# uid_t/gid_t are 32-bit and (uid_t)-1 means "unchanged"
MAX_ID = 2**32 - 2


def create_file(
    config: ResourceConfig,
    event_log: Optional[EventLog] = None,
    logger: Optional[ResourceLogger] = None
) -> Result:
    """
    Create a file resource from a finalized configuration.

    Args:
        config: Desired resource properties
        event_log: Optional audit trail
        logger: Optional logger

    Returns:
        Ok(FileResource) on success, Err(AcquisitionError) otherwise
    """
    identity = config.identity

    # Step 1: validate before touching the filesystem
    problem = _validate_file_config(config)
    if problem:
        return _reject(ErrorKind.INVALID_CONFIG, identity, problem, logger, event_log)

    # Step 2: cheap refusal; the publish step re-checks atomically
    if not config.overwrite_existing and os.path.lexists(identity):
        return _reject(
            ErrorKind.ALREADY_EXISTS, identity,
            "a resource already exists and overwrite_existing is off",
            logger, event_log
        )

    # Step 3: acquire a hidden sibling
    directory, name = os.path.split(identity)
    try:
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{name[:TEMP_NAME_HINT]}.", suffix=TEMP_SUFFIX, dir=directory or "."
        )
    except OSError as e:
        return _reject_os(ErrorKind.ACQUISITION_FAILED, identity, "cannot acquire file", e,
                          logger, event_log)

    # Steps 4-6 hold the hidden file; nothing may escape without releasing it
    try:
        failure = _configure_and_publish(fd, temp_path, config, logger, event_log)
    except BaseException as e:
        rollback_file(fd, temp_path, identity, ErrorKind.ACQUISITION_FAILED,
                      f"unexpected error: {e!r}", logger, event_log)
        raise
    if failure is not None:
        return failure

    if not config.overwrite_existing:
        try:
            os.unlink(temp_path)
        except OSError as e:
            # The resource is published and valid; only the hidden name lingers
            if logger:
                logger.log(f"Could not remove {temp_path} after publishing {identity}: {e}",
                           "warning")

    if logger:
        logger.log_acquired(config.describe())
    record_event(event_log, EventType.ACQUIRED, identity, message=config.describe())
    return Ok(FileResource(identity, fd, logger, event_log))


def create_mutex(
    identity: str,
    allocator: Optional[Allocator] = None,
    event_log: Optional[EventLog] = None,
    logger: Optional[ResourceLogger] = None
) -> Result:
    """
    Create a pinned mutex resource.

    The mutex is initialised in place inside a slot from `allocator` (the
    internal fixed-capacity allocator if None) and never moves.

    Args:
        identity: Name of the mutex, unique within the allocator
        allocator: Source of pinned slots; must outlive the resource
        event_log: Optional audit trail
        logger: Optional logger

    Returns:
        Ok(MutexResource) on success, Err(AcquisitionError) otherwise
    """
    if allocator is None:
        allocator = default_allocator()

    if not identity:
        return _reject(ErrorKind.INVALID_CONFIG, identity, "identity must not be empty",
                       logger, event_log)
    if allocator.slot_size < native.MUTEX_SIZE:
        return _reject(
            ErrorKind.INVALID_CONFIG, identity,
            f"allocator slots of {allocator.slot_size} bytes cannot hold a mutex "
            f"({native.MUTEX_SIZE} bytes required)",
            logger, event_log
        )
    if allocator.lookup(identity) is not None:
        return _reject(ErrorKind.ALREADY_EXISTS, identity,
                       "a mutex with this identity is live in the allocator",
                       logger, event_log)

    try:
        slot = allocator.allocate(identity)
    except AllocatorExhaustedError as e:
        return _reject(ErrorKind.ACQUISITION_FAILED, identity, str(e), logger, event_log,
                       errno_code=errno.ENOMEM, cause=e)

    code = native.mutex_init(slot.address)
    if code != 0:
        error = AcquisitionError(
            kind=ErrorKind.ACQUISITION_FAILED,
            identity=identity,
            message=f"pthread_mutex_init failed: {os.strerror(code)}",
            errno=code,
        )
        rollback_slot(slot, allocator, identity, error.kind, error.message, logger, event_log)
        return Err(error)

    description = f"{identity} (mutex at {hex(slot.address)})"
    if logger:
        logger.log_acquired(description)
    record_event(event_log, EventType.ACQUIRED, identity, message=description)
    return Ok(MutexResource(identity, slot, allocator, logger, event_log))


def _configure_and_publish(
    fd: int,
    temp_path: str,
    config: ResourceConfig,
    logger: Optional[ResourceLogger],
    event_log: Optional[EventLog]
) -> Optional[Err]:
    """
    Run steps 4-6 on the hidden file.

    Returns:
        None once the file is published at the identity, or the Err of an
        expected failure after the hidden file was rolled back
    """
    identity = config.identity

    # Step 4: permissions and ownership
    try:
        os.fchmod(fd, config.mode)
        if config.owner is not None or config.group is not None:
            uid = _resolve_uid(config.owner)
            gid = _resolve_gid(config.group)
            os.fchown(fd, uid, gid)
    except (OSError, KeyError) as e:
        return _rollback(fd, temp_path, ErrorKind.CONFIGURATION_FAILED, identity,
                         "cannot apply permissions/ownership", e, logger, event_log)

    # Step 5: initial content
    if config.initial_content:
        try:
            write_all(fd, config.initial_content)
            os.fsync(fd)
        except OSError as e:
            return _rollback(fd, temp_path, ErrorKind.WRITE_FAILED, identity,
                             "cannot write initial content", e, logger, event_log)

    # Step 6: publish
    try:
        if config.overwrite_existing:
            os.replace(temp_path, identity)
        else:
            os.link(temp_path, identity)
    except FileExistsError as e:
        return _rollback(fd, temp_path, ErrorKind.ALREADY_EXISTS, identity,
                         "resource appeared during acquisition", e, logger, event_log)
    except OSError as e:
        return _rollback(fd, temp_path, ErrorKind.ACQUISITION_FAILED, identity,
                         "cannot publish file", e, logger, event_log)
    return None


def _validate_file_config(config: ResourceConfig) -> Optional[str]:
    """Return a problem description, or None if the config is acceptable."""
    if not isinstance(config.identity, str) or not config.identity:
        return "identity must be a non-empty path"
    if "\0" in config.identity:
        return "identity must not contain NUL"
    if config.identity.endswith(os.sep):
        return "identity must name a file, not a directory"
    if config.permissions is not None and not 0 <= int(config.permissions) <= MAX_MODE:
        return f"permissions out of range: {oct(int(config.permissions))}"
    for label, value in (("owner", config.owner), ("group", config.group)):
        if value is None:
            continue
        if not isinstance(value, str) or not value or "\0" in value:
            return f"{label} must be a non-empty name or numeric id"
        if value.isdecimal() and int(value) > MAX_ID:
            return f"{label} id out of range: {value}"
    if config.initial_content is not None and not isinstance(config.initial_content, bytes):
        return "initial_content must be bytes"
    return None


def _resolve_uid(owner: Optional[str]) -> int:
    """Resolve a user name or numeric id; -1 leaves the owner unchanged."""
    if owner is None:
        return -1
    if owner.isdecimal():
        return int(owner)
    try:
        return pwd.getpwnam(owner).pw_uid
    except KeyError:
        raise KeyError(f"unknown user {owner!r}")


def _resolve_gid(group: Optional[str]) -> int:
    """Resolve a group name or numeric id; -1 leaves the group unchanged."""
    if group is None:
        return -1
    if group.isdecimal():
        return int(group)
    try:
        return grp.getgrnam(group).gr_gid
    except KeyError:
        raise KeyError(f"unknown group {group!r}")


def _reject(
    kind: ErrorKind,
    identity: str,
    message: str,
    logger: Optional[ResourceLogger],
    event_log: Optional[EventLog],
    errno_code: Optional[int] = None,
    cause: Optional[BaseException] = None
) -> Err:
    """Fail an acquisition that holds nothing yet."""
    error = AcquisitionError(kind=kind, identity=identity, message=message,
                             errno=errno_code, cause=cause)
    if logger:
        logger.log_rejected(identity, kind.value, message)
    record_event(event_log, EventType.REJECTED, identity, kind.value, message)
    return Err(error)


def _reject_os(kind, identity, message, error, logger, event_log) -> Err:
    return _reject(kind, identity, f"{message}: {error}", logger, event_log,
                   errno_code=getattr(error, "errno", None), cause=error)


def _rollback(fd, temp_path, kind, identity, message, error, logger, event_log) -> Err:
    """Release the hidden file, then fail."""
    failure = AcquisitionError.from_os_error(kind, identity, message, error)
    rollback_file(fd, temp_path, identity, kind, failure.message, logger, event_log)
    return Err(failure)
