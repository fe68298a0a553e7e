"""
Resource builder for the Fallible Resource library.

Collects optional configuration without side effects and hands a fresh
ResourceConfig to a factory on every build.
"""

from typing import Callable, Optional, Union

from acquisition.factory import create_file
from models.config import MAX_MODE, Permission, ResourceConfig
from models.result import Result


Factory = Callable[[ResourceConfig], Result]


class ResourceBuilder:
    """
    Chainable configuration for file resources.

    Example:
        result = (ResourceBuilder()
                  .with_permissions(Permission.OWNER_READ | Permission.OWNER_WRITE)
                  .with_initial_content("hello")
                  .build("note.txt"))

    Every setter changes exactly one field and returns the builder. The
    builder is not thread-safe; share one between threads only under an
    external lock.
    """

    def __init__(self, factory: Optional[Factory] = None):
        """
        Args:
            factory: Callable turning a ResourceConfig into a Result
                     (create_file if None)
        """
        self._factory = factory or create_file
        self._owner: Optional[str] = None
        self._group: Optional[str] = None
        self._permissions: Optional[Union[Permission, int]] = None
        self._initial_content: Optional[bytes] = None
        self._overwrite_existing = False

    def with_owner(self, owner: Union[str, int]) -> "ResourceBuilder":
        self._owner = str(owner)
        return self

    def with_group(self, group: Union[str, int]) -> "ResourceBuilder":
        self._group = str(group)
        return self

    def with_permissions(self, permissions: Union[Permission, int]) -> "ResourceBuilder":
        """Out-of-range modes are kept as given and rejected by the factory."""
        mode = int(permissions)
        self._permissions = Permission(mode) if 0 <= mode <= MAX_MODE else mode
        return self

    def with_initial_content(self, content: Union[bytes, str]) -> "ResourceBuilder":
        """Text is stored UTF-8 encoded."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._initial_content = bytes(content)
        return self

    def with_overwrite_existing(self, overwrite: bool = True) -> "ResourceBuilder":
        self._overwrite_existing = overwrite
        return self

    def config(self, identity: str) -> ResourceConfig:
        """Snapshot of the current configuration for `identity`."""
        return ResourceConfig(
            identity=identity,
            owner=self._owner,
            group=self._group,
            permissions=self._permissions,
            initial_content=self._initial_content,
            overwrite_existing=self._overwrite_existing,
        )

    def build(self, identity: str) -> Result:
        """
        Create a resource at `identity` from the current configuration.

        The builder is left unchanged and can build further resources.

        Returns:
            Whatever the factory returns: Ok(resource) or Err(error)
        """
        return self._factory(self.config(identity))
