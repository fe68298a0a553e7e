"""
Factory Tests

Tests create_file: the example scenario, overwrite semantics, every
failure kind, and the rollback guarantee (no partial file, no leaked
temporary, pre-existing content untouched).
"""

import errno
import os
import sys
import tempfile
from pathlib import Path
from unittest import mock

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from acquisition.builder import ResourceBuilder
from acquisition.factory import create_file
from models.config import Permission, ResourceConfig
from models.errors import ErrorKind
from models.resource import FileResource
from tracking.events import EventLog, EventType


def _is_valid(resource: FileResource) -> bool:
    """A descriptor is valid if the kernel can stat it."""
    try:
        os.fstat(resource._fd)
        return True
    except OSError:
        return False


def _listing(directory: str) -> list:
    return sorted(os.listdir(directory))


def test_example_scenario():
    """Permissions + content build, read back, then AlreadyExists on repeat."""
    print("\n" + "="*60)
    print("TEST 1: note.txt Scenario")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "note.txt")
        builder = (ResourceBuilder()
                   .with_permissions(Permission.OWNER_READ | Permission.OWNER_WRITE)
                   .with_initial_content("hello"))

        result = builder.build(path)
        assert result.ok, f"Unexpected failure: {getattr(result, 'error', None)}"
        resource = result.value
        assert _is_valid(resource)
        assert resource.read() == b"hello"
        assert os.stat(path).st_mode & 0o7777 == 0o600
        print("  ✓ Created note.txt with content 'hello'")

        again = builder.build(path)
        assert not again.ok
        assert again.error.kind == ErrorKind.ALREADY_EXISTS
        assert again.error.identity == path
        assert resource.read() == b"hello"
        print(f"  ✓ Repeat rejected: {again.error}")

        resource.close()
        assert _listing(tmp) == ["note.txt"]


def test_every_success_path_yields_valid_resource():
    """Fresh create, overwrite, empty content, owner/group by numeric id."""
    print("\n" + "="*60)
    print("TEST 2: Validity After Every Success Path")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        existing = os.path.join(tmp, "existing")
        with open(existing, "wb") as f:
            f.write(b"old")

        configs = [
            ResourceConfig(identity=os.path.join(tmp, "plain")),
            ResourceConfig(identity=os.path.join(tmp, "empty"), initial_content=b""),
            ResourceConfig(identity=existing, overwrite_existing=True, initial_content=b"new"),
            ResourceConfig(identity=os.path.join(tmp, "owned"),
                           owner=str(os.getuid()), group=str(os.getgid())),
            ResourceConfig(identity=os.path.join(tmp, "replace-missing"), overwrite_existing=True),
        ]

        for config in configs:
            result = create_file(config)
            assert result.ok, f"{config.identity}: {getattr(result, 'error', None)}"
            assert _is_valid(result.value)
            assert os.path.exists(config.identity)
            result.value.close()
            print(f"  ✓ {os.path.basename(config.identity)} valid")

        assert not any(name.endswith(".partial") for name in _listing(tmp))


def test_overwrite_existing():
    """overwrite_existing=False leaves the old file; True replaces it fully."""
    print("\n" + "="*60)
    print("TEST 3: Overwrite Semantics")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "config.ini")
        with open(path, "wb") as f:
            f.write(b"old content")
        os.chmod(path, 0o644)

        refused = create_file(ResourceConfig(identity=path, initial_content=b"new"))
        assert not refused.ok
        assert refused.error.kind == ErrorKind.ALREADY_EXISTS
        with open(path, "rb") as f:
            assert f.read() == b"old content"
        print("  ✓ Existing file untouched without overwrite")

        replaced = create_file(ResourceConfig(
            identity=path,
            initial_content=b"new",
            permissions=Permission.OWNER_READ | Permission.OWNER_WRITE,
            overwrite_existing=True,
        ))
        assert replaced.ok
        assert replaced.value.read() == b"new"
        with open(path, "rb") as f:
            assert f.read() == b"new"
        assert os.stat(path).st_mode & 0o7777 == 0o600
        replaced.value.close()
        assert _listing(tmp) == ["config.ini"]
        print("  ✓ Existing file replaced with new configuration")


def test_invalid_config_makes_no_system_call():
    """Empty or NUL identities and out-of-range modes or ids fail before acquisition."""
    print("\n" + "="*60)
    print("TEST 4: InvalidConfig")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        event_log = EventLog()
        bad = [
            ResourceConfig(identity=""),
            ResourceConfig(identity=os.path.join(tmp, "nul\0name")),
            ResourceConfig(identity=os.path.join(tmp, "dir") + os.sep),
            ResourceConfig(identity=os.path.join(tmp, "big"), permissions=0o17777),
            ResourceConfig(identity=os.path.join(tmp, "uid"), owner="99999999999999999999"),
            ResourceConfig(identity=os.path.join(tmp, "gid"), group=str(2**32 - 1)),
            ResourceConfig(identity=os.path.join(tmp, "text"), initial_content="not bytes"),
        ]
        with mock.patch("acquisition.factory.tempfile.mkstemp") as mkstemp:
            for config in bad:
                result = create_file(config, event_log=event_log)
                assert not result.ok
                assert result.error.kind == ErrorKind.INVALID_CONFIG
                print(f"  ✓ {result.error}")
            mkstemp.assert_not_called()

        assert _listing(tmp) == []
        assert len(event_log.get_events_by_type(EventType.REJECTED)) == len(bad)


def test_acquisition_failed_carries_cause():
    """A missing parent directory fails acquisition with its errno."""
    print("\n" + "="*60)
    print("TEST 5: AcquisitionFailed")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "missing", "file.txt")
        result = create_file(ResourceConfig(identity=path))

        assert not result.ok
        assert result.error.kind == ErrorKind.ACQUISITION_FAILED
        assert result.error.errno == errno.ENOENT
        assert isinstance(result.error.cause, FileNotFoundError)
        assert _listing(tmp) == []
        print(f"  ✓ {result.error}")


def test_configuration_failure_rolls_back():
    """An unknown owner fails after acquisition; nothing is left behind."""
    print("\n" + "="*60)
    print("TEST 6: ConfigurationFailed Rollback")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "owned.txt")
        event_log = EventLog()

        result = create_file(
            ResourceConfig(identity=path, owner="no-such-user-fallible-resources",
                           initial_content=b"data"),
            event_log=event_log,
        )

        assert not result.ok
        assert result.error.kind == ErrorKind.CONFIGURATION_FAILED
        assert "no-such-user-fallible-resources" in result.error.message
        assert _listing(tmp) == [], f"Leftovers: {_listing(tmp)}"

        rollbacks = event_log.get_events_by_type(EventType.ROLLED_BACK)
        assert len(rollbacks) == 1
        assert rollbacks[0].kind == "ConfigurationFailed"
        assert event_log.get_events_by_type(EventType.ACQUIRED) == []
        print(f"  ✓ Rolled back: {result.error}")


def test_configuration_failure_keeps_previous_resource():
    """A failed overwrite leaves the pre-existing file exactly as it was."""
    print("\n" + "="*60)
    print("TEST 7: Rollback Preserves Existing Resource")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "keep.txt")
        with open(path, "wb") as f:
            f.write(b"precious")
        os.chmod(path, 0o640)

        result = create_file(ResourceConfig(
            identity=path,
            group="no-such-group-fallible-resources",
            initial_content=b"replacement",
            overwrite_existing=True,
        ))

        assert not result.ok
        assert result.error.kind == ErrorKind.CONFIGURATION_FAILED
        with open(path, "rb") as f:
            assert f.read() == b"precious"
        assert os.stat(path).st_mode & 0o7777 == 0o640
        assert _listing(tmp) == ["keep.txt"]
        print("  ✓ Existing file unchanged")


def test_chmod_failure_rolls_back():
    """An OS error while applying permissions releases the descriptor."""
    print("\n" + "="*60)
    print("TEST 8: Permission Failure Rollback")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "perm.txt")
        closed = []
        real_close = os.close

        def tracking_close(fd):
            closed.append(fd)
            real_close(fd)

        with mock.patch("acquisition.factory.os.fchmod",
                        side_effect=PermissionError(errno.EPERM, "Operation not permitted")), \
                mock.patch("acquisition.rollback.os.close", side_effect=tracking_close):
            result = create_file(ResourceConfig(identity=path, permissions=0o600))

        assert not result.ok
        assert result.error.kind == ErrorKind.CONFIGURATION_FAILED
        assert result.error.errno == errno.EPERM
        assert len(closed) == 1
        try:
            os.fstat(closed[0])
            assert False, "Descriptor should have been released"
        except OSError as e:
            assert e.errno == errno.EBADF
        assert _listing(tmp) == []
        print("  ✓ Descriptor released and hidden file removed")


def test_write_failure_rolls_back():
    """A failing initial write reports WriteFailed and leaves nothing."""
    print("\n" + "="*60)
    print("TEST 9: WriteFailed Rollback")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "full.txt")
        event_log = EventLog()

        with mock.patch("acquisition.factory.write_all",
                        side_effect=OSError(errno.ENOSPC, "No space left on device")):
            result = create_file(ResourceConfig(identity=path, initial_content=b"x" * 10),
                                 event_log=event_log)

        assert not result.ok
        assert result.error.kind == ErrorKind.WRITE_FAILED
        assert result.error.errno == errno.ENOSPC
        assert _listing(tmp) == []
        assert [e.kind for e in event_log.get_events_by_type(EventType.ROLLED_BACK)] == ["WriteFailed"]
        print(f"  ✓ {result.error}")


def test_resource_appearing_during_acquisition():
    """If the identity shows up after the early check, publish refuses it."""
    print("\n" + "="*60)
    print("TEST 10: Publish Race")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "race.txt")
        with open(path, "wb") as f:
            f.write(b"winner")

        with mock.patch("acquisition.factory.os.path.lexists", return_value=False):
            result = create_file(ResourceConfig(identity=path, initial_content=b"loser"))

        assert not result.ok
        assert result.error.kind == ErrorKind.ALREADY_EXISTS
        with open(path, "rb") as f:
            assert f.read() == b"winner"
        assert _listing(tmp) == ["race.txt"]
        print("  ✓ Late conflict detected and rolled back")


def test_relative_identity():
    """Identities relative to the working directory work."""
    print("\n" + "="*60)
    print("TEST 11: Relative Identity")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        previous = os.getcwd()
        os.chdir(tmp)
        try:
            result = create_file(ResourceConfig(identity="local.txt", initial_content=b"here"))
            assert result.ok
            assert result.value.read() == b"here"
            result.value.close()
            assert _listing(tmp) == ["local.txt"]
        finally:
            os.chdir(previous)
    print("  ✓ Created in working directory")


def test_unexpected_error_rolls_back_and_propagates():
    """An unforeseen exception while configuring still releases the hidden file."""
    print("\n" + "="*60)
    print("TEST 12: Unexpected Error Rollback")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "o.txt")
        event_log = EventLog()
        closed = []
        real_close = os.close

        def tracking_close(fd):
            closed.append(fd)
            real_close(fd)

        with mock.patch("acquisition.factory.os.fchown",
                        side_effect=OverflowError("uid is greater than maximum")), \
                mock.patch("acquisition.rollback.os.close", side_effect=tracking_close):
            try:
                create_file(ResourceConfig(identity=path, owner=str(os.getuid())),
                            event_log=event_log)
                assert False, "OverflowError should propagate"
            except OverflowError:
                pass

        assert len(closed) == 1
        try:
            os.fstat(closed[0])
            assert False, "Descriptor should have been released"
        except OSError as e:
            assert e.errno == errno.EBADF
        assert _listing(tmp) == [], f"Leftovers: {_listing(tmp)}"
        assert len(event_log.get_events_by_type(EventType.ROLLED_BACK)) == 1
        assert event_log.get_events_by_type(EventType.ACQUIRED) == []
        print("  ✓ Descriptor released, hidden file removed, error re-raised")


def test_unusual_but_legal_names():
    """Long and whitespace-only file names are created like any other."""
    print("\n" + "="*60)
    print("TEST 13: Long And Blank Names")
    print("="*60)

    with tempfile.TemporaryDirectory() as tmp:
        for name in ("a" * 240, " ", "  \t"):
            path = os.path.join(tmp, name)
            result = create_file(ResourceConfig(identity=path, initial_content=b"ok"))
            assert result.ok, f"{name!r}: {getattr(result, 'error', None)}"
            assert result.value.read() == b"ok"
            result.value.close()
            print(f"  ✓ {len(name)}-character name created")

        assert _listing(tmp) == sorted(["a" * 240, " ", "  \t"])


def main():
    """Run all factory tests."""
    test_example_scenario()
    test_every_success_path_yields_valid_resource()
    test_overwrite_existing()
    test_invalid_config_makes_no_system_call()
    test_acquisition_failed_carries_cause()
    test_configuration_failure_rolls_back()
    test_configuration_failure_keeps_previous_resource()
    test_chmod_failure_rolls_back()
    test_write_failure_rolls_back()
    test_resource_appearing_during_acquisition()
    test_relative_identity()
    test_unexpected_error_rolls_back_and_propagates()
    test_unusual_but_legal_names()
    print("\n✅ Factory Tests PASSED")
    return 0


if __name__ == '__main__':
    sys.exit(main())
