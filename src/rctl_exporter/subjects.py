"""Candidate enumeration for each RCTL subject.

Each enumerator lists the entities that currently exist for its subject,
with the name filter rules match against and the identity attributes that
end up on the Resource:

- process:    psutil process table (pid, ppid, exe, cmdline)
- user:       account database, /etc/passwd
- jail:       jail_get(2) walk
- loginclass: login class database, /etc/login.conf
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import psutil
import structlog

from rctl_exporter.errors import SourceUnavailableError
from rctl_exporter.jail import list_jails
from rctl_exporter.resource import Subject

DEFAULT_PASSWD_PATH = Path("/etc/passwd")
DEFAULT_LOGIN_CONF_PATH = Path("/etc/login.conf")


@dataclass
class Candidate:
    """An entity that may be queried for accounting."""

    resource_id: str  # becomes Resource.resource_id
    query_id: str  # identifier used in the rctl rule
    name: str  # what filter patterns are matched against
    attributes: dict[str, object] = field(default_factory=dict)  # Resource fields to set


class SubjectEnumerator(Protocol):
    """Lists current candidates for one subject."""

    subject: Subject

    def enumerate(self, log: structlog.stdlib.BoundLogger) -> list[Candidate]:
        """Return current candidates.

        Raises:
            SourceUnavailableError: The backing source can't be read.
        """
        ...


def _read_lines(path: Path, source: str) -> list[str]:
    try:
        return path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        raise SourceUnavailableError(f"{source} {path}", e.strerror or str(e)) from e


class ProcessEnumerator:
    """Processes from the OS process table."""

    subject = Subject.PROCESS

    def enumerate(self, log: structlog.stdlib.BoundLogger) -> list[Candidate]:
        candidates = []
        try:
            for proc in psutil.process_iter(["pid", "ppid", "name", "exe", "cmdline"]):
                info = proc.info
                cmdline = " ".join(info["cmdline"] or [])
                if not cmdline:
                    # Kernel threads have no argv; show them the way ps(1) does
                    cmdline = f"[{info['name'] or ''}]"
                pid = str(info["pid"])
                candidates.append(
                    Candidate(
                        resource_id=pid,
                        query_id=pid,
                        name=cmdline,
                        attributes={
                            "ppid": info["ppid"] if info["ppid"] is not None else -1,
                            "exe": info["exe"] or "",
                            "cmdline": cmdline,
                        },
                    )
                )
        except (psutil.Error, OSError) as e:
            raise SourceUnavailableError("process table", str(e)) from e

        log.debug("processes_enumerated", count=len(candidates))
        return candidates


class UserEnumerator:
    """Users from the account database (``name:password:uid:...``)."""

    subject = Subject.USER

    def __init__(self, path: Path = DEFAULT_PASSWD_PATH):
        self.path = Path(path)

    def enumerate(self, log: structlog.stdlib.BoundLogger) -> list[Candidate]:
        candidates = []
        for line in _read_lines(self.path, "account database"):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split(":")
            if len(fields) < 3 or not fields[2].isdigit():
                log.debug("passwd_line_skipped", path=str(self.path), line=line)
                continue
            user, uid = fields[0], fields[2]
            candidates.append(
                Candidate(resource_id=uid, query_id=uid, name=user, attributes={"user_name": user})
            )

        log.debug("users_enumerated", count=len(candidates))
        return candidates


class JailEnumerator:
    """Running jails, walked with jail_get(2)'s lastjid cursor."""

    subject = Subject.JAIL

    def enumerate(self, log: structlog.stdlib.BoundLogger) -> list[Candidate]:
        try:
            jails = list_jails()
        except OSError as e:
            raise SourceUnavailableError("jail interface", str(e)) from e

        candidates = [
            Candidate(
                resource_id=str(jid), query_id=name, name=name, attributes={"jail_name": name}
            )
            for jid, name in jails
        ]

        log.debug("jails_enumerated", count=len(candidates))
        return candidates


class LoginClassEnumerator:
    """Login classes from login.conf(5).

    A class starts on a non-blank line that isn't a comment and doesn't begin
    with whitespace (indented lines continue the previous entry). Its name is
    the first ``|``-separated alias of the first ``:`` field.
    """

    subject = Subject.LOGINCLASS

    def __init__(self, path: Path = DEFAULT_LOGIN_CONF_PATH):
        self.path = Path(path)

    def enumerate(self, log: structlog.stdlib.BoundLogger) -> list[Candidate]:
        candidates = []
        seen: set[str] = set()
        for line in _read_lines(self.path, "login class database"):
            if not line.strip() or line.startswith("#") or line[0].isspace():
                continue
            name = line.split(":", 1)[0].split("|", 1)[0].strip()
            if not name or name in seen:
                continue
            seen.add(name)
            candidates.append(
                Candidate(
                    resource_id=name, query_id=name, name=name, attributes={"class_name": name}
                )
            )

        log.debug("loginclasses_enumerated", count=len(candidates))
        return candidates


def default_enumerators(
    passwd_path: Path = DEFAULT_PASSWD_PATH,
    login_conf_path: Path = DEFAULT_LOGIN_CONF_PATH,
) -> dict[Subject, SubjectEnumerator]:
    """One enumerator per subject, reading the given files."""
    return {
        Subject.PROCESS: ProcessEnumerator(),
        Subject.USER: UserEnumerator(passwd_path),
        Subject.JAIL: JailEnumerator(),
        Subject.LOGINCLASS: LoginClassEnumerator(login_conf_path),
    }
