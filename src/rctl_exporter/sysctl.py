"""sysctlbyname(3) access for the RACCT tunable.

Called through ctypes; glibc has no sysctlbyname, so the symbol is looked up
on each call and a missing symbol reads as "no such sysctl".
"""

import ctypes
from ctypes import POINTER, byref, c_char_p, c_int, c_int64, c_size_t, c_void_p

libc = ctypes.CDLL(None)


def _sysctlbyname():
    func = getattr(libc, "sysctlbyname", None)
    if func is None:
        return None
    # int sysctlbyname(const char *, void *, size_t *, const void *, size_t)
    func.argtypes = [c_char_p, c_void_p, POINTER(c_size_t), c_void_p, c_size_t]
    func.restype = c_int
    return func


def sysctl_int(name: str) -> int | None:
    """Integer value of sysctl ``name``, or None when it can't be read.

    Reads into a zeroed 64-bit buffer. The kernel writes only as many
    (little-endian) bytes as the sysctl's type, so bool and int values
    come out right without asking for the size first.
    """
    sysctlbyname = _sysctlbyname()
    if sysctlbyname is None:
        return None
    out = c_int64(0)
    outlen = c_size_t(ctypes.sizeof(out))
    if sysctlbyname(name.encode(), byref(out), byref(outlen), None, 0) != 0:
        return None
    return out.value


def racct_enabled() -> bool | None:
    """Whether RACCT is switched on (``kern.racct.enable``).

    Returns:
        True/False from the tunable, None if the kernel has no RACCT support
        (or this isn't FreeBSD).
    """
    value = sysctl_int("kern.racct.enable")
    if value is None:
        return None
    return value != 0
