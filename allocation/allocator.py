"""
Fixed-capacity slot allocator for the Fallible Resource library.

Provides pinned memory for handles that must never move (e.g. a
pthread mutex). All slots live inside one numpy arena that is allocated
once and never resized, so a slot address stays valid until the slot is
deallocated.
"""

import numpy as np
from dataclasses import dataclass
from typing import Dict, Optional, Protocol


DEFAULT_CAPACITY = 64
DEFAULT_SLOT_SIZE = 64


class AllocatorExhaustedError(Exception):
    """Raised when every slot of a fixed-capacity allocator is in use."""
    pass


@dataclass(frozen=True)
class Slot:
    """
    A pinned region handed out by an allocator.

    Attributes:
        index: Slot index inside the arena
        address: Absolute address of the first byte of the slot
        size: Slot size in bytes
        tag: Free-form label (resource identity) chosen by the caller
    """
    index: int
    address: int
    size: int
    tag: str = ""


class Allocator(Protocol):
    """Capability for obtaining and returning pinned slots."""

    slot_size: int

    def allocate(self, tag: str = "") -> Slot:
        ...

    def deallocate(self, slot: Slot) -> None:
        ...

    def lookup(self, tag: str) -> Optional[Slot]:
        ...


class FixedCapacityAllocator:
    """
    Allocator backed by a single pre-allocated numpy arena.

    Attributes:
        capacity: Total number of slots
        slot_size: Size of each slot in bytes
        available: Number of free slots

    Invariant:
        0 <= available <= capacity
        allocated + available == capacity

    The allocator must outlive every resource whose slot it issued. A
    resource keeps a reference to its allocator, which keeps the arena
    alive, but code that drops the allocator's memory by other means
    is responsible for closing those resources first.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, slot_size: int = DEFAULT_SLOT_SIZE):
        if capacity <= 0:
            raise ValueError(f"Allocator capacity must be positive (got {capacity})")
        if slot_size <= 0 or slot_size % 16 != 0:
            raise ValueError(f"Slot size must be a positive multiple of 16 (got {slot_size})")

        self.capacity = capacity
        self.slot_size = slot_size
        self._arena = np.zeros(capacity * slot_size, dtype=np.uint8)
        self._occupied = np.zeros(capacity, dtype=bool)
        self._slots: Dict[int, Slot] = {}

    @property
    def base_address(self) -> int:
        """Address of the first byte of the arena."""
        return self._arena.ctypes.data

    @property
    def available(self) -> int:
        """Number of free slots."""
        return int(self.capacity - np.count_nonzero(self._occupied))

    @property
    def allocated(self) -> int:
        """Number of slots currently handed out."""
        return int(np.count_nonzero(self._occupied))

    def allocate(self, tag: str = "") -> Slot:
        """
        Hand out the lowest free slot.

        Args:
            tag: Label stored with the slot, used by lookup()

        Returns:
            The allocated Slot

        Raises:
            AllocatorExhaustedError: If no slot is free
        """
        free = np.flatnonzero(~self._occupied)
        if free.size == 0:
            raise AllocatorExhaustedError(
                f"All {self.capacity} slots in use"
            )

        index = int(free[0])
        self._occupied[index] = True
        slot = Slot(
            index=index,
            address=self.base_address + index * self.slot_size,
            size=self.slot_size,
            tag=tag,
        )
        self._slots[index] = slot
        return slot

    def deallocate(self, slot: Slot) -> None:
        """
        Return a slot to the allocator and zero its memory.

        Raises:
            ValueError: If the slot is not a live slot of this allocator
        """
        if self._slots.get(slot.index) != slot:
            raise ValueError(
                f"Slot {slot.index} at {hex(slot.address)} was not issued by this allocator "
                f"or is already free"
            )

        start = slot.index * self.slot_size
        self._arena[start:start + self.slot_size] = 0
        self._occupied[slot.index] = False
        del self._slots[slot.index]

    def lookup(self, tag: str) -> Optional[Slot]:
        """Find a live slot by tag."""
        for slot in self._slots.values():
            if slot.tag == tag:
                return slot
        return None

    def slot_bytes(self, slot: Slot) -> np.ndarray:
        """View (not a copy) of the memory backing a slot."""
        start = slot.index * self.slot_size
        return self._arena[start:start + self.slot_size]

    def assert_slot_conservation(self, context: str = "") -> None:
        """
        Verify slot conservation: allocated + available == capacity.

        Raises:
            AssertionError: If bookkeeping has drifted
        """
        allocated = self.allocated
        available = self.available
        assert allocated + available == self.capacity, (
            f"Slot conservation violated {context}\n"
            f"  Allocated: {allocated}, Available: {available}, Capacity: {self.capacity}"
        )
        assert len(self._slots) == allocated, (
            f"Slot registry out of sync {context}\n"
            f"  Registered: {len(self._slots)}, Occupied: {allocated}"
        )


_default_allocator: Optional[FixedCapacityAllocator] = None


def default_allocator() -> FixedCapacityAllocator:
    """Internal allocator used when the caller does not supply one."""
    global _default_allocator
    if _default_allocator is None:
        _default_allocator = FixedCapacityAllocator()
    return _default_allocator
