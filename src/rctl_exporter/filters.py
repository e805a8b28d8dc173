"""Filter rules: ``subject:pattern`` parsing and regex matching."""

import re
from dataclasses import dataclass, field

from rctl_exporter.errors import ConfigError, UnsupportedSubjectError
from rctl_exporter.resource import SUPPORTED_SUBJECTS, Subject


@dataclass(frozen=True)
class Filter:
    """A compiled pattern tested against candidate names.

    Matching is an unanchored search, so ``mongo`` matches anywhere in a
    command line and ``^java`` only at its start.
    """

    pattern: str
    _regex: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        try:
            regex = re.compile(self.pattern)
        except re.error as e:
            raise ConfigError(f"pattern {self.pattern!r} does not compile: {e}") from e
        object.__setattr__(self, "_regex", regex)

    def matches(self, name: str) -> bool:
        """Return True if the pattern is found anywhere in ``name``."""
        return self._regex.search(name) is not None


@dataclass(frozen=True)
class FilterRule:
    """One configured ``subject:pattern`` rule."""

    subject: Subject
    filter: Filter

    @property
    def pattern(self) -> str:
        return self.filter.pattern

    def __str__(self) -> str:
        return f"{self.subject.value}:{self.pattern}"

    @classmethod
    def parse(cls, rule: str) -> "FilterRule":
        """Parse ``subject:pattern``, splitting on the first colon only.

        Raises:
            UnsupportedSubjectError: Subject isn't a known RCTL subject.
            ConfigError: Missing colon or a pattern that doesn't compile.
        """
        subject, sep, pattern = rule.strip().partition(":")
        if not sep:
            raise ConfigError(f"filter rule {rule!r} is not of the form subject:pattern")
        if subject not in SUPPORTED_SUBJECTS:
            raise UnsupportedSubjectError(subject)
        return cls(subject=Subject(subject), filter=Filter(pattern))


def parse_filter_expression(expression: str) -> tuple[FilterRule, ...]:
    """Parse a comma-separated list of rules, keeping their order.

    Example: ``"process:^java.*,user:yo$,loginclass:daemon"``

    Raises:
        ConfigError: Empty expression, empty rule, or any invalid rule.
    """
    if not expression.strip():
        raise ConfigError("filter expression is empty")

    rules = []
    for part in expression.split(","):
        if not part.strip():
            raise ConfigError(f"empty rule in filter expression {expression!r}")
        rules.append(FilterRule.parse(part))
    return tuple(rules)
