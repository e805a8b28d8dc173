"""Accounting records and the parser for rctl_get_racct(2) output.

The kernel serializes usage as a comma-separated ``key=value`` list, e.g.
``cputime=12,datasize=2048,...,writeiops=0``. Parsing is best-effort: the raw
string is always kept verbatim and the numeric fields are a projection of it.
"""

from collections.abc import Iterator
from dataclasses import dataclass, fields
from enum import Enum

import structlog


class Subject(Enum):
    """RCTL subject (accounting scope)."""

    PROCESS = "process"
    USER = "user"
    JAIL = "jail"
    LOGINCLASS = "loginclass"


SUPPORTED_SUBJECTS = frozenset(s.value for s in Subject)

# Kernel resource name -> description (see rctl(8)). Field names on Resource
# are the kernel names, so this table drives both parsing and metric help text.
RESOURCE_FIELDS: dict[str, str] = {
    "cputime": "CPU time, in seconds",
    "datasize": "data size, in bytes",
    "stacksize": "stack size, in bytes",
    "coredumpsize": "core dump size, in bytes",
    "memoryuse": "resident set size, in bytes",
    "memorylocked": "locked memory, in bytes",
    "maxproc": "number of processes",
    "openfiles": "file descriptor table size",
    "vmemoryuse": "address space limit, in bytes",
    "pseudoterminals": "number of PTYs",
    "swapuse": "swap space that may be reserved or used, in bytes",
    "nthr": "number of threads",
    "msgqqueued": "number of queued SysV messages",
    "msgqsize": "SysV message queue size, in bytes",
    "nmsgq": "number of SysV message queues",
    "nsem": "number of SysV semaphores",
    "nsemop": "number of SysV semaphores modified in a single semop(2) call",
    "nshm": "number of SysV shared memory segments",
    "shmsize": "SysV shared memory size, in bytes",
    "wallclock": "wallclock time, in seconds",
    "pcpu": "%CPU, in percents of a single CPU core",
    "readbps": "filesystem reads, in bytes per second",
    "writebps": "filesystem writes, in bytes per second",
    "readiops": "filesystem reads, in operations per second",
    "writeiops": "filesystem writes, in operations per second",
}


@dataclass
class Resource:
    """One sampled accounting record for a single subject entity."""

    # ─────────────────────────────────────────────────────────────
    # Identity
    # ─────────────────────────────────────────────────────────────
    resource_type: Subject
    resource_id: str = ""  # pid, uid, jid or class name
    ppid: int = -1  # process only
    exe: str = ""  # process only
    cmdline: str = ""  # process only
    user_name: str = ""  # user only
    jail_name: str = ""  # jail only
    class_name: str = ""  # loginclass only
    raw_resources: str = ""

    # ─────────────────────────────────────────────────────────────
    # CPU / time
    # ─────────────────────────────────────────────────────────────
    cputime: int = 0
    wallclock: int = 0
    pcpu: int = 0

    # ─────────────────────────────────────────────────────────────
    # Memory
    # ─────────────────────────────────────────────────────────────
    datasize: int = 0
    stacksize: int = 0
    coredumpsize: int = 0
    memoryuse: int = 0
    memorylocked: int = 0
    vmemoryuse: int = 0
    swapuse: int = 0

    # ─────────────────────────────────────────────────────────────
    # Counts
    # ─────────────────────────────────────────────────────────────
    maxproc: int = 0
    openfiles: int = 0
    pseudoterminals: int = 0
    nthr: int = 0

    # ─────────────────────────────────────────────────────────────
    # SysV IPC
    # ─────────────────────────────────────────────────────────────
    msgqqueued: int = 0
    msgqsize: int = 0
    nmsgq: int = 0
    nsem: int = 0
    nsemop: int = 0
    nshm: int = 0
    shmsize: int = 0

    # ─────────────────────────────────────────────────────────────
    # Filesystem I/O
    # ─────────────────────────────────────────────────────────────
    readbps: int = 0
    writebps: int = 0
    readiops: int = 0
    writeiops: int = 0

    @property
    def name(self) -> str:
        """The attribute filter patterns are matched against."""
        if self.resource_type is Subject.PROCESS:
            return self.cmdline
        if self.resource_type is Subject.USER:
            return self.user_name
        if self.resource_type is Subject.JAIL:
            return self.jail_name
        return self.class_name

    def labels(self) -> dict[str, str]:
        """Identity labels for metric exposition, in a stable order."""
        if self.resource_type is Subject.PROCESS:
            return {
                "pid": self.resource_id,
                "ppid": str(self.ppid),
                "exe": self.exe,
                "cmdline": self.cmdline,
            }
        if self.resource_type is Subject.USER:
            return {"uid": self.resource_id, "user": self.user_name}
        if self.resource_type is Subject.JAIL:
            return {"jid": self.resource_id, "name": self.jail_name}
        return {"class": self.class_name}

    def usage(self) -> Iterator[tuple[str, float]]:
        """Yield every ``(key, value)`` pair in raw_resources, known keys or not.

        Stops at the first malformed segment, like parse_resource(). Values
        that aren't numeric are skipped.
        """
        for segment in self.raw_resources.split(","):
            key, sep, value = segment.partition("=")
            if not sep:
                return
            if not key:
                continue
            try:
                yield key, float(value)
            except ValueError:
                continue

    def to_dict(self) -> dict:
        """Serialize to a dictionary."""
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        d["resource_type"] = self.resource_type.value
        return d


def parse_resource(
    subject: Subject | str,
    raw: str,
    log: structlog.stdlib.BoundLogger | None = None,
) -> Resource:
    """Parse a raw rctl_get_racct(2) string into a Resource.

    Args:
        subject: Subject the string was queried for
        raw: Trimmed accounting string (``key=value,key=value,...``)
        log: Optional logger for parse anomalies (debug level)

    Returns:
        Resource with raw_resources set to ``raw`` verbatim. Unknown keys are
        ignored, a value that isn't an integer leaves its field at 0, and a
        segment without ``=`` ends parsing with the fields gathered so far.
    """
    resource = Resource(resource_type=Subject(subject), raw_resources=raw)

    for segment in raw.split(","):
        key, sep, value = segment.partition("=")
        if not sep:
            if log is not None:
                log.debug("racct_segment_malformed", segment=segment, raw=raw)
            break
        if key not in RESOURCE_FIELDS:
            continue
        try:
            setattr(resource, key, int(value))
        except ValueError:
            if log is not None:
                log.debug("racct_value_invalid", key=key, value=value)

    return resource
