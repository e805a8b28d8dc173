"""Shared test fixtures for rctl-exporter."""

import logging
from pathlib import Path

import pytest
import structlog

from rctl_exporter.racct import CannedAccountingQuery
from rctl_exporter.resource import Resource, Subject
from rctl_exporter.subjects import Candidate

# Accounting string in the kernel's field order
RAW_USAGE = (
    "cputime=12,datasize=2048,stacksize=0,coredumpsize=0,memoryuse=8192,"
    "memorylocked=0,maxproc=3,openfiles=10,vmemoryuse=16384,pseudoterminals=0,"
    "swapuse=0,nthr=4,msgqqueued=0,msgqsize=0,nmsgq=0,nsem=0,nsemop=0,nshm=0,"
    "shmsize=0,wallclock=100,pcpu=5,readbps=0,writebps=0,readiops=0,writeiops=0"
)

PASSWD = """\
# $FreeBSD$
#
root:*:0:0:Charlie &:/root:/bin/csh
daemon:*:1:1:Owner of many system processes:/root:/usr/sbin/nologin
www:*:80:80:World Wide Web Owner:/nonexistent:/usr/sbin/nologin
yo:*:1001:1001:Yo:/home/yo:/bin/sh
"""

LOGIN_CONF = """\
# login.conf(5)
default:\\
\t:passwd_format=sha512:\\
\t:umask=022:

standard:\\
\t:tc=default:
xuser:\\
\t:tc=default:
daemon|Daemon class:\\
\t:memorylocked=128M:\\
\t:tc=default:
"""


class FakeEnumerator:
    """SubjectEnumerator returning a fixed candidate list."""

    def __init__(self, subject: Subject, candidates: list[Candidate]):
        self.subject = subject
        self.candidates = candidates
        self.calls = 0

    def enumerate(self, log) -> list[Candidate]:
        self.calls += 1
        return list(self.candidates)


def make_process(pid: int, cmdline: str, ppid: int = 1, exe: str = "") -> Candidate:
    """Create a process Candidate the way ProcessEnumerator does."""
    return Candidate(
        resource_id=str(pid),
        query_id=str(pid),
        name=cmdline,
        attributes={"ppid": ppid, "exe": exe or cmdline.split()[0], "cmdline": cmdline},
    )


def make_resource(
    subject: Subject = Subject.PROCESS,
    resource_id: str = "1234",
    raw: str = RAW_USAGE,
    **kwargs,
) -> Resource:
    """Create a Resource for testing with a raw accounting string."""
    return Resource(resource_type=subject, resource_id=resource_id, raw_resources=raw, **kwargs)


@pytest.fixture
def log() -> structlog.stdlib.BoundLogger:
    """Logger handed to the engine under test."""
    return structlog.get_logger("rctl_exporter.test")


@pytest.fixture
def canned_query() -> CannedAccountingQuery:
    """Accounting query answering every rule with RAW_USAGE."""
    return CannedAccountingQuery(default=RAW_USAGE)


@pytest.fixture
def process_enumerator() -> FakeEnumerator:
    """Three processes: two java, one mongod."""
    return FakeEnumerator(
        Subject.PROCESS,
        [
            make_process(100, "/usr/local/bin/java -jar app.jar"),
            make_process(200, "/usr/local/bin/mongod --config /usr/local/etc/mongodb.conf"),
            make_process(300, "/usr/local/bin/java -jar worker.jar", ppid=100),
        ],
    )


@pytest.fixture
def passwd_file(tmp_path: Path) -> Path:
    """A small passwd(5) file."""
    path = tmp_path / "passwd"
    path.write_text(PASSWD)
    return path


@pytest.fixture
def login_conf_file(tmp_path: Path) -> Path:
    """A small login.conf(5) file."""
    path = tmp_path / "login.conf"
    path.write_text(LOGIN_CONF)
    return path


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging configuration done by the code under test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
