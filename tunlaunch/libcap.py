import ctypes
from contextlib import contextmanager
from collections.abc import Iterator
from functools import cache
import os

from .common import load_lib, get_os_error

# From linux/capability.h and sys/capability.h
CAP_NET_ADMIN = 12

CAP_EFFECTIVE = 0
CAP_PERMITTED = 1
CAP_INHERITABLE = 2

CAP_CLEAR = 0
CAP_SET = 1


class _cap_t(ctypes.c_void_p):
    pass


@cache
def _libcap() -> ctypes.CDLL:
    # Loaded on first use rather than at import, so that the launcher can
    # still run (and be tested) on hosts without libcap.
    lib = load_lib('cap')

    lib.cap_get_file.argtypes = [ctypes.c_char_p]
    lib.cap_get_file.restype = _cap_t

    lib.cap_get_flag.argtypes = [
            _cap_t,
            ctypes.c_int,
            ctypes.c_int,
            ctypes.POINTER(ctypes.c_int)]
    lib.cap_get_flag.restype = ctypes.c_int

    lib.cap_to_text.argtypes = [
            _cap_t,
            ctypes.POINTER(ctypes.c_ssize_t)]
    lib.cap_to_text.restype = ctypes.POINTER(ctypes.c_char)

    lib.cap_free.argtypes = [ctypes.c_void_p]
    lib.cap_free.restype = ctypes.c_int

    return lib


@contextmanager
def cap_get_file(path: str | os.PathLike[str]) -> Iterator[_cap_t]:
    '''
    Read the capability sets stored in the extended attributes of the file at
    path. Raises OSError on failure; a file with no capabilities attached
    fails with ENODATA.
    '''
    caps = _libcap().cap_get_file(os.fsencode(path))
    if not caps:
        raise get_os_error()

    try:
        yield caps
    finally:
        _cap_free(caps)


def cap_get_flag(caps: _cap_t, cap: int, flag: int) -> bool:
    value = ctypes.c_int(CAP_CLEAR)
    if _libcap().cap_get_flag(caps, cap, flag, ctypes.byref(value)) < 0:
        raise get_os_error()

    return value.value == CAP_SET


def cap_to_text(caps: _cap_t) -> bytes:
    text = _libcap().cap_to_text(caps, None)
    if not text:
        raise get_os_error()

    res = ctypes.string_at(text)
    _cap_free(text)

    return res


def _cap_free(obj_d: int) -> None:
    if _libcap().cap_free(obj_d) < 0:
        raise get_os_error()
