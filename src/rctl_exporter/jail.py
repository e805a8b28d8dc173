"""Low-level jail_get(2) interface for walking running jails.

Uses ctypes to call jail_get() directly - no jls(8) subprocess.
"""

import ctypes
import errno
import os
from ctypes import POINTER, Structure, c_int, c_size_t, c_uint, c_void_p

libc = ctypes.CDLL(None, use_errno=True)

# Jail names are bounded like hostnames
MAXHOSTNAMELEN = 256
JAIL_ERRMSGLEN = 1024


class Iovec(Structure):
    """struct iovec from sys/uio.h."""

    _fields_ = [
        ("iov_base", c_void_p),
        ("iov_len", c_size_t),
    ]


def _jail_get():
    """Resolve jail_get(2) from libc (FreeBSD only)."""
    func = getattr(libc, "jail_get", None)
    if func is None:
        raise OSError(errno.ENOSYS, "jail_get(2) is not available on this platform")
    # int jail_get(struct iovec *iov, u_int niov, int flags)
    func.argtypes = [POINTER(Iovec), c_uint, c_int]
    func.restype = c_int
    return func


def jail_next(lastjid: int) -> tuple[int, str] | None:
    """Return ``(jid, name)`` of the first jail with a jid above ``lastjid``.

    Args:
        lastjid: Cursor; 0 starts the walk

    Returns:
        ``(jid, name)``, or None once no jail follows ``lastjid``.

    Raises:
        OSError: jail_get(2) failed for any reason other than ENOENT.
    """
    jail_get = _jail_get()

    last = c_int(lastjid)
    name = ctypes.create_string_buffer(MAXHOSTNAMELEN)
    errmsg = ctypes.create_string_buffer(JAIL_ERRMSGLEN)

    params = [
        (ctypes.create_string_buffer(b"lastjid"), last),
        (ctypes.create_string_buffer(b"name"), name),
        (ctypes.create_string_buffer(b"errmsg"), errmsg),
    ]
    iov = (Iovec * (2 * len(params)))()
    for i, (key, value) in enumerate(params):
        iov[2 * i].iov_base = ctypes.addressof(key)
        iov[2 * i].iov_len = ctypes.sizeof(key)
        iov[2 * i + 1].iov_base = ctypes.addressof(value)
        iov[2 * i + 1].iov_len = ctypes.sizeof(value)

    jid = jail_get(iov, len(iov), 0)
    if jid < 0:
        err = ctypes.get_errno()
        if err == errno.ENOENT:
            return None
        detail = errmsg.value.decode("utf-8", errors="replace") or os.strerror(err)
        raise OSError(err, detail)

    return jid, name.value.decode("utf-8", errors="replace")


def list_jails() -> list[tuple[int, str]]:
    """Walk every running jail as ``(jid, name)`` in jid order."""
    jails = []
    lastjid = 0
    while (found := jail_next(lastjid)) is not None:
        jails.append(found)
        lastjid = found[0]
    return jails
