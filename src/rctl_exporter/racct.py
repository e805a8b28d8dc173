"""Low-level rctl_get_racct(2) interface for FreeBSD resource accounting.

Uses ctypes to issue the syscall directly - no rctl(8) subprocess per entity.

The query is wrapped in the AccountingQuery capability so the engine can run
against either the live kernel (KernelAccountingQuery) or canned strings
(CannedAccountingQuery).
"""

import ctypes
import errno
import os
from ctypes import c_char_p, c_int, c_size_t
from typing import Protocol

import structlog

from rctl_exporter.errors import (
    AccountingDisabledError,
    ConfigError,
    RacctQueryError,
    UnsupportedSubjectError,
)
from rctl_exporter.resource import SUPPORTED_SUBJECTS, Subject

# ─────────────────────────────────────────────────────────────────────────────
# Library loading
# ─────────────────────────────────────────────────────────────────────────────

libc = ctypes.CDLL(None, use_errno=True)

# ─────────────────────────────────────────────────────────────────────────────
# Constants
# ─────────────────────────────────────────────────────────────────────────────

# From sys/syscall.h
SYS_RCTL_GET_RACCT = 525

# Smallest output buffer handed to the kernel
MIN_BUFFER_SIZE = 1024


# ─────────────────────────────────────────────────────────────────────────────
# Rule helpers
# ─────────────────────────────────────────────────────────────────────────────


def build_rule(subject: Subject | str, identifier: str | int) -> str:
    """Build a ``subject:identifier:`` rule string."""
    if isinstance(subject, Subject):
        subject = subject.value
    return f"{subject}:{identifier}:"


def check_subject(rule: str) -> Subject:
    """Return the rule's subject, rejecting anything rctl doesn't account.

    Raises:
        UnsupportedSubjectError: Subject token isn't process/user/jail/loginclass.
    """
    subject = rule.split(":", 1)[0]
    if subject not in SUPPORTED_SUBJECTS:
        raise UnsupportedSubjectError(subject)
    return Subject(subject)


def trim_buffer(buf: bytes) -> str:
    """Cut a kernel output buffer at its first NUL and decode it.

    A buffer with no NUL was filled to the brim; it's returned whole.
    """
    return buf.split(b"\0", 1)[0].decode("utf-8", errors="replace")


# ─────────────────────────────────────────────────────────────────────────────
# Syscall
# ─────────────────────────────────────────────────────────────────────────────


def rctl_get_racct(rule: str, buffer_size: int = MIN_BUFFER_SIZE) -> str:
    """Issue rctl_get_racct(2) for one rule.

    Args:
        rule: Rule string, e.g. ``"process:1234:"``
        buffer_size: Output buffer size in bytes

    Returns:
        The accounting string, trimmed at the first NUL.

    Raises:
        AccountingDisabledError: ENOSYS - kern.racct.enable is 0.
        RacctQueryError: Any other errno (ESRCH, EPERM, ERANGE, ...).
    """
    rule_bytes = rule.encode()
    out = ctypes.create_string_buffer(buffer_size)

    result = libc.syscall(
        c_int(SYS_RCTL_GET_RACCT),
        c_char_p(rule_bytes),
        c_size_t(len(rule_bytes) + 1),
        out,
        c_size_t(buffer_size),
    )
    if result != 0:
        err = ctypes.get_errno()
        if err == errno.ENOSYS:
            raise AccountingDisabledError(rule)
        raise RacctQueryError(rule, err, os.strerror(err))

    return trim_buffer(out.raw)


# ─────────────────────────────────────────────────────────────────────────────
# AccountingQuery capability
# ─────────────────────────────────────────────────────────────────────────────


class AccountingQuery(Protocol):
    """Single-entity accounting query."""

    def get_racct(self, rule: str, log: structlog.stdlib.BoundLogger) -> str:
        """Return the raw accounting string for ``rule``."""
        ...


class KernelAccountingQuery:
    """AccountingQuery backed by the live rctl_get_racct(2) syscall."""

    def __init__(self, buffer_size: int = MIN_BUFFER_SIZE):
        if buffer_size < MIN_BUFFER_SIZE:
            raise ConfigError(f"buffer_size must be >= {MIN_BUFFER_SIZE}, got {buffer_size}")
        self.buffer_size = buffer_size

    def get_racct(self, rule: str, log: structlog.stdlib.BoundLogger) -> str:
        check_subject(rule)
        raw = rctl_get_racct(rule, self.buffer_size)
        log.debug("racct_queried", rule=rule, length=len(raw))
        return raw


class CannedAccountingQuery:
    """AccountingQuery returning canned strings, for tests and dry runs.

    ``responses`` maps rule strings to either a raw accounting string or an
    exception to raise. Rules with no entry fall back to ``default``; with no
    default they fail like a vanished process (ESRCH).
    """

    def __init__(
        self,
        responses: dict[str, str | Exception] | None = None,
        default: str | Exception | None = None,
    ):
        self.responses = dict(responses or {})
        self.default = default
        self.calls: list[str] = []

    def get_racct(self, rule: str, log: structlog.stdlib.BoundLogger | None = None) -> str:
        check_subject(rule)
        self.calls.append(rule)

        response = self.responses.get(rule, self.default)
        if response is None:
            raise RacctQueryError(rule, errno.ESRCH, os.strerror(errno.ESRCH))
        if isinstance(response, Exception):
            raise response
        return response
