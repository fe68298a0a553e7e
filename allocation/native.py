"""
libc pthread mutex bindings.

The functions operate on raw addresses so that the mutex can live inside
a pinned allocator slot. Each returns the pthread error code (0 on success).
"""

import ctypes
import ctypes.util
import errno
import sys

# Large enough for pthread_mutex_t on Linux (40/48 bytes) and macOS (64 bytes)
MUTEX_SIZE = 64


def _load_libc() -> ctypes.CDLL:
    if sys.platform.startswith("linux"):
        return ctypes.CDLL(None, use_errno=True)
    return ctypes.CDLL(ctypes.util.find_library("c"), use_errno=True)


_libc = _load_libc()

for _name in ("pthread_mutex_lock", "pthread_mutex_trylock",
              "pthread_mutex_unlock", "pthread_mutex_destroy"):
    _fn = getattr(_libc, _name)
    _fn.argtypes = [ctypes.c_void_p]
    _fn.restype = ctypes.c_int

_libc.pthread_mutex_init.argtypes = [ctypes.c_void_p, ctypes.c_void_p]
_libc.pthread_mutex_init.restype = ctypes.c_int


def mutex_init(address: int) -> int:
    """Initialise a default mutex in place."""
    return _libc.pthread_mutex_init(address, None)


def mutex_lock(address: int) -> int:
    return _libc.pthread_mutex_lock(address)


def mutex_trylock(address: int) -> int:
    """Returns 0 if locked, EBUSY if already held."""
    return _libc.pthread_mutex_trylock(address)


def mutex_unlock(address: int) -> int:
    return _libc.pthread_mutex_unlock(address)


def mutex_destroy(address: int) -> int:
    return _libc.pthread_mutex_destroy(address)


EBUSY = errno.EBUSY
