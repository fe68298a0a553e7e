"""
Resource configuration model for the Fallible Resource library.

Describes the desired properties of a resource before it is acquired.
"""

from dataclasses import dataclass
from enum import IntFlag
from typing import List, Optional, Union


class Permission(IntFlag):
    """POSIX access rights applied to a file resource."""
    OTHERS_EXEC = 0o001
    OTHERS_WRITE = 0o002
    OTHERS_READ = 0o004
    GROUP_EXEC = 0o010
    GROUP_WRITE = 0o020
    GROUP_READ = 0o040
    OWNER_EXEC = 0o100
    OWNER_WRITE = 0o200
    OWNER_READ = 0o400
    STICKY = 0o1000
    SET_GID = 0o2000
    SET_UID = 0o4000

    @classmethod
    def parse(cls, value: Union[int, str, List[str]]) -> "Permission":
        """
        Parse permissions from a manifest value.

        Accepts an integer mode, an octal string ("644", "0o644") or a list
        of flag names (["OWNER_READ", "OWNER_WRITE"]).

        Raises:
            ValueError: If the value cannot be interpreted or is out of range
        """
        if isinstance(value, bool):
            raise ValueError(f"Invalid permissions value: {value!r}")
        if isinstance(value, int):
            mode = value
        elif isinstance(value, str):
            text = value.strip().lower()
            if text.startswith("0o"):
                text = text[2:]
            try:
                mode = int(text, 8)
            except ValueError:
                raise ValueError(f"Invalid octal permissions: {value!r}")
        elif isinstance(value, list):
            mode = 0
            for name in value:
                if not isinstance(name, str) or name.upper() not in cls.__members__:
                    raise ValueError(f"Unknown permission flag: {name!r}")
                mode |= cls.__members__[name.upper()]
        else:
            raise ValueError(f"Invalid permissions value: {value!r}")

        if mode < 0 or mode > MAX_MODE:
            raise ValueError(f"Permissions out of range: {oct(mode)}")
        return cls(mode)


MAX_MODE = 0o7777

DEFAULT_PERMISSIONS = (
    Permission.OWNER_READ | Permission.OWNER_WRITE
    | Permission.GROUP_READ | Permission.OTHERS_READ
)


@dataclass(frozen=True)
class ResourceConfig:
    """
    Immutable description of a resource to be created.

    Attributes:
        identity: Path of the resource (required, non-empty)
        owner: User name or numeric uid; None inherits the process user
        group: Group name or numeric gid; None inherits the process group
        permissions: Access rights; None means DEFAULT_PERMISSIONS
        initial_content: Bytes written before the resource becomes visible
        overwrite_existing: Replace an existing resource instead of failing

    Invariant:
        A config never changes once handed to the factory; builders hand
        out a fresh snapshot for every build.
    """
    identity: str
    owner: Optional[str] = None
    group: Optional[str] = None
    permissions: Optional[Permission] = None
    initial_content: Optional[bytes] = None
    overwrite_existing: bool = False

    @property
    def mode(self) -> int:
        """Effective numeric mode applied at acquisition."""
        if self.permissions is None:
            return int(DEFAULT_PERMISSIONS)
        return int(self.permissions)

    def describe(self) -> str:
        """Short single-line summary for logs."""
        parts = [f"mode={oct(self.mode)}"]
        if self.owner is not None:
            parts.append(f"owner={self.owner}")
        if self.group is not None:
            parts.append(f"group={self.group}")
        if self.initial_content is not None:
            parts.append(f"content={len(self.initial_content)}B")
        if self.overwrite_existing:
            parts.append("overwrite")
        return f"{self.identity} ({', '.join(parts)})"
