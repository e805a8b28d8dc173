"""Resource manager: enumerate, filter, query and parse per filter rule."""

import time
from collections.abc import Iterable
from pathlib import Path

import structlog

from rctl_exporter.config import Config
from rctl_exporter.errors import ConfigError, MatchLimitExceededError, RctlError
from rctl_exporter.filters import FilterRule, parse_filter_expression
from rctl_exporter.racct import AccountingQuery, KernelAccountingQuery, build_rule
from rctl_exporter.resource import Resource, Subject, parse_resource
from rctl_exporter.subjects import SubjectEnumerator, default_enumerators


class ResourceManager:
    """Owns the filter rules and the current snapshot of Resource records.

    The rules are fixed at construction. Each refresh() rebuilds the snapshot
    from scratch and swaps it in only if every rule succeeded; on failure the
    previous snapshot stays visible through ``resources``.

    Not thread-safe: callers that refresh from several threads must hold one
    lock around refresh() and the read of ``resources``.
    """

    def __init__(
        self,
        rules: Iterable[FilterRule],
        query: AccountingQuery,
        log: structlog.stdlib.BoundLogger,
        enumerators: dict[Subject, SubjectEnumerator] | None = None,
        max_matches: int | None = None,
    ):
        self.rules: tuple[FilterRule, ...] = tuple(rules)
        if not self.rules:
            raise ConfigError("at least one filter rule is required")

        self.enumerators = enumerators if enumerators is not None else default_enumerators()
        for rule in self.rules:
            if rule.subject not in self.enumerators:
                raise ConfigError(f"no enumerator for subject {rule.subject.value!r}")

        if max_matches is not None and max_matches < 0:
            raise ConfigError(f"max_matches must be >= 0, got {max_matches}")

        self.query = query
        self.log = log
        self.max_matches = max_matches or None  # 0 disables the cap
        self._resources: tuple[Resource, ...] = ()

    @classmethod
    def from_filter(
        cls,
        expression: str,
        query: AccountingQuery,
        log: structlog.stdlib.BoundLogger,
        **kwargs,
    ) -> "ResourceManager":
        """Build a manager from a ``subject:pattern,...`` filter expression."""
        return cls(parse_filter_expression(expression), query, log, **kwargs)

    @classmethod
    def from_config(
        cls,
        config: Config,
        log: structlog.stdlib.BoundLogger,
        query: AccountingQuery | None = None,
    ) -> "ResourceManager":
        """Build a manager from the [collect] and [sources] config sections.

        Uses the live kernel query unless ``query`` is given.
        """
        if query is None:
            query = KernelAccountingQuery(config.collect.buffer_size)
        return cls.from_filter(
            config.collect.filter,
            query,
            log,
            enumerators=default_enumerators(
                Path(config.sources.passwd_path),
                Path(config.sources.login_conf_path),
            ),
            max_matches=config.collect.max_matches,
        )

    @property
    def resources(self) -> tuple[Resource, ...]:
        """Snapshot from the last successful refresh (empty before the first)."""
        return self._resources

    def refresh(self) -> tuple[Resource, ...]:
        """Rebuild the snapshot for every rule, in rule order.

        Returns:
            The new snapshot.

        Raises:
            RctlError: Any enumeration or query failure. The previous
                snapshot is kept.
        """
        start = time.monotonic()
        snapshot: list[Resource] = []
        try:
            for rule in self.rules:
                snapshot.extend(self._collect_rule(rule))
        except RctlError as e:
            self.log.warning(
                "refresh_aborted",
                error=str(e),
                error_type=type(e).__name__,
                kept=len(self._resources),
            )
            raise

        self._resources = tuple(snapshot)
        self.log.debug(
            "refresh_complete",
            resources=len(self._resources),
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return self._resources

    def _collect_rule(self, rule: FilterRule) -> list[Resource]:
        log = self.log.bind(rule=str(rule))

        candidates = self.enumerators[rule.subject].enumerate(log)
        matched = [c for c in candidates if rule.filter.matches(c.name)]
        log.debug("rule_matched", candidates=len(candidates), matched=len(matched))

        if self.max_matches is not None and len(matched) > self.max_matches:
            raise MatchLimitExceededError(str(rule), len(matched), self.max_matches)

        results = []
        for candidate in matched:
            raw = self.query.get_racct(build_rule(rule.subject, candidate.query_id), log)
            resource = parse_resource(rule.subject, raw, log)
            resource.resource_id = candidate.resource_id
            for attr, value in candidate.attributes.items():
                setattr(resource, attr, value)
            results.append(resource)
        return results
