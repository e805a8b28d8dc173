"""Prometheus collector exposing the ResourceManager snapshot.

Metric names follow the subject and the kernel's resource key:

    rctl_usage_process_cputime{pid="713",ppid="1",exe="/usr/local/sbin/libvirtd",cmdline="..."}
    rctl_usage_user_memoryuse{uid="1001",user="yo"}
    rctl_usage_jail_pcpu{jid="120",name="dovecot"}
    rctl_usage_loginclass_maxproc{class="daemon"}

plus ``rctl_up``, 1 when the refresh for this scrape succeeded and 0 when
the served values are left over from an earlier scrape.
"""

import re
import threading
from collections.abc import Iterator

import structlog
from prometheus_client.core import GaugeMetricFamily, Metric, UntypedMetricFamily

from rctl_exporter import logging as rlog
from rctl_exporter.errors import AccountingDisabledError, RctlError
from rctl_exporter.manager import ResourceManager
from rctl_exporter.resource import RESOURCE_FIELDS, Resource, Subject

NAMESPACE = "rctl"

_METRIC_KEY = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class RctlCollector:
    """Custom collector: refresh on every scrape, then expose the snapshot.

    Scrapes may overlap when the HTTP server is threaded, so refresh and the
    snapshot read happen under one lock.
    """

    def __init__(self, manager: ResourceManager, log: structlog.stdlib.BoundLogger):
        self.manager = manager
        self.log = log
        self.last_error: RctlError | None = None
        self._lock = threading.Lock()

    def describe(self) -> list[Metric]:
        # Names depend on what the kernel reports; don't let the registry
        # call collect() at registration time.
        return []

    def collect(self) -> Iterator[Metric]:
        """Return metrics to Prometheus when called."""
        with self._lock:
            up = self._refresh()
            resources = self.manager.resources

        yield from self.usage_metrics(resources)
        yield self.count_metric(resources)
        yield GaugeMetricFamily(
            f"{NAMESPACE}_up",
            "Whether refreshing rctl resource usage was successful",
            value=up,
        )

    def _refresh(self) -> int:
        try:
            self.manager.refresh()
        except AccountingDisabledError as e:
            self.last_error = e
            self.log.error("accounting_disabled", error=str(e))
            rlog.accounting_disabled()
            return 0
        except RctlError as e:
            self.last_error = e
            self.log.error("refresh_failed", error=str(e), error_type=type(e).__name__)
            return 0
        self.last_error = None
        return 1

    def usage_metrics(self, resources: tuple[Resource, ...]) -> Iterator[Metric]:
        """One family per (subject, resource key), one sample per record."""
        families: dict[tuple[str, str], UntypedMetricFamily] = {}
        seen: set[tuple[str, tuple[str, ...]]] = set()

        for resource in resources:
            subject = resource.resource_type.value
            labels = resource.labels()
            label_values = tuple(labels.values())

            for key, value in resource.usage():
                if not _METRIC_KEY.match(key):
                    self.log.debug("racct_key_skipped", key=key)
                    continue
                name = f"{NAMESPACE}_usage_{subject}_{key}"
                if (name, label_values) in seen:
                    # Same entity matched by more than one rule
                    continue
                seen.add((name, label_values))

                family = families.get((subject, key))
                if family is None:
                    family = UntypedMetricFamily(
                        name,
                        f"{RESOURCE_FIELDS.get(key, key)} (see rctl(8))",
                        labels=list(labels),
                    )
                    families[(subject, key)] = family
                family.add_metric(list(label_values), value)

        yield from families.values()

    def count_metric(self, resources: tuple[Resource, ...]) -> GaugeMetricFamily:
        """Number of distinct entities per subject in the served snapshot."""
        family = GaugeMetricFamily(
            f"{NAMESPACE}_resources",
            "Number of entities in the current rctl snapshot",
            labels=["subject"],
        )
        entities = {(r.resource_type, tuple(r.labels().values())) for r in resources}
        for subject in Subject:
            count = sum(1 for resource_type, _ in entities if resource_type is subject)
            family.add_metric([subject.value], count)
        return family
