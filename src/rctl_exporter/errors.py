"""Exception hierarchy for rctl-exporter."""

DISABLED_HINT = "RACCT/RCTL present, but disabled; enable using kern.racct.enable=1 tunable"


class RctlError(Exception):
    """Base class for every error raised by rctl-exporter."""

    pass


class ConfigError(RctlError):
    """Invalid configuration: bad filter rule, pattern, or config value.

    Always raised at startup, never deferred to a refresh cycle.
    """

    pass


class UnsupportedSubjectError(ConfigError):
    """Rule subject is not one of process, user, jail, loginclass."""

    def __init__(self, subject: str):
        self.subject = subject
        super().__init__(f"subject not supported: {subject!r}")


class SourceUnavailableError(RctlError):
    """An enumeration source (process table, file, jail interface) can't be read."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


class AccountingDisabledError(RctlError):
    """The kernel has RACCT/RCTL support but accounting is switched off."""

    def __init__(self, rule: str):
        self.rule = rule
        super().__init__(f"{DISABLED_HINT} (rule {rule!r})")


class RacctQueryError(RctlError):
    """rctl_get_racct(2) failed with an errno other than ENOSYS."""

    def __init__(self, rule: str, errno: int, strerror: str):
        self.rule = rule
        self.errno = errno
        self.strerror = strerror
        super().__init__(f"rctl_get_racct({rule!r}) failed: [errno {errno}] {strerror}")


class MatchLimitExceededError(RctlError):
    """A filter rule matched more candidates than the configured cap."""

    def __init__(self, rule: str, matched: int, limit: int):
        self.rule = rule
        self.matched = matched
        self.limit = limit
        super().__init__(f"rule {rule!r} matched {matched} candidates (max_matches={limit})")
