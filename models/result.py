"""
Result values returned by the resource factories.

Every factory returns Ok(resource) or Err(error); callers branch on `.ok`.
"""

from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

from models.errors import AcquisitionError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful acquisition carrying the resource."""
    value: T
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Err:
    """Failed acquisition carrying the error. Has no `value`."""
    error: AcquisitionError
    ok: bool = field(default=False, init=False)


Result = Union[Ok[T], Err]
