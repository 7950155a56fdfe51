"""Trace processor that attaches service-discovery labels to trace resources."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from tempoagent.relabel import RelabelConfig, process

TYPE_STR = "prom_sd_processor"
ADDRESS_LABEL = "__address__"

# jaeger/opentracing default, then otel semantics for host ip
_IP_ATTRIBUTES = ("ip", "net.host.ip")

logger = logging.getLogger(__name__)


@dataclass
class TargetGroup:
    """A set of targets sharing common labels, as produced by discovery."""

    targets: list[dict[str, str]] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    source: str = ""


@dataclass
class ScrapeConfig:
    """The parts of a scrape configuration used for labeling traces."""

    job_name: str
    relabel_configs: list[RelabelConfig] | None = None
    static_configs: list[TargetGroup] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ScrapeConfig:
        """Build a scrape configuration from its configuration mapping."""
        if not isinstance(data, Mapping):
            raise ValueError("scrape config must be a mapping")
        if not data.get("job_name"):
            raise ValueError("job_name is empty")
        unsupported = [k for k in data if str(k).endswith("_sd_configs")]
        if unsupported:
            raise ValueError(f"unsupported service discovery mechanism {unsupported[0]!r}")

        groups = []
        for index, entry in enumerate(data.get("static_configs") or []):
            if not isinstance(entry, Mapping):
                raise ValueError("target group must be a mapping")
            groups.append(TargetGroup(
                targets=[{ADDRESS_LABEL: str(t)} for t in entry.get("targets") or []],
                labels={str(k): str(v) for k, v in (entry.get("labels") or {}).items()},
                source=str(index),
            ))
        raw_relabel = data.get("relabel_configs")
        return cls(
            job_name=str(data["job_name"]),
            relabel_configs=None if raw_relabel is None else [RelabelConfig.from_dict(c) for c in raw_relabel],
            static_configs=groups,
            extra={k: v for k, v in data.items()
                   if k not in ("job_name", "relabel_configs", "static_configs")},
        )


def parse_scrape_configs(scrape_configs: Iterable[Any] | None) -> list[ScrapeConfig]:
    """Parse raw scrape configuration mappings."""
    try:
        return [ScrapeConfig.from_dict(raw) for raw in scrape_configs or []]
    except (ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"unable to parse scrape configs: {exc}") from exc


def _split_host_port(hostport: str) -> str:
    """Return the host part of ``host:port``, handling bracketed IPv6."""
    if hostport.startswith("["):
        host, closed, port = hostport[1:].partition("]")
        if not closed or not port.startswith(":"):
            raise ValueError(f"missing port in address {hostport!r}")
        port = port[1:]
    else:
        host, colon, port = hostport.rpartition(":")
        if not colon:
            raise ValueError(f"missing port in address {hostport!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {hostport!r}")
    if any(b in host + port for b in "[]"):
        raise ValueError(f"unexpected bracket in address {hostport!r}")
    return host


class PromServiceDiscoProcessor:
    """Adds labels of discovered targets to trace resources whose IP matches."""

    mutates_consumed_data = True

    def __init__(
        self,
        next_consumer: Callable[[Any], Any] | None,
        scrape_configs: Iterable[ScrapeConfig] = (),
    ) -> None:
        if next_consumer is None:
            raise ValueError("nil nextConsumer")
        self._next_consumer = next_consumer
        self._scrape_configs = list(scrape_configs)
        self._relabel_configs = {c.job_name: c.relabel_configs for c in self._scrape_configs}
        self._host_labels: dict[str, dict[str, str]] = {}
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def host_labels(self) -> dict[str, dict[str, str]]:
        """A snapshot of the labels known for each host."""
        with self._lock:
            return {host: dict(labels) for host, labels in self._host_labels.items()}

    def consume_traces(self, traces: Iterable[MutableMapping[str, Any]]) -> Any:
        """Label each resource span's ``resource.attributes`` in place and pass the traces on."""
        for resource_spans in traces:
            resource = resource_spans.setdefault("resource", {})
            self.process_attributes(resource.setdefault("attributes", {}))
        return self._next_consumer(traces)

    def process_attributes(self, attrs: MutableMapping[str, Any]) -> None:
        """Upsert the discovered labels for the resource's IP into ``attrs``."""
        ip = next((attrs[name] for name in _IP_ATTRIBUTES if name in attrs), "")
        if not isinstance(ip, str) or not ip:
            return
        with self._lock:
            labels = self._host_labels.get(ip)
            if labels is None:
                logger.debug("unable to find matching hostLabels ip=%s", ip)
                return
            attrs.update(labels)

    def sync_groups(self, job_name: str, groups: Iterable[TargetGroup],
                    host_labels: dict[str, dict[str, str]]) -> None:
        """Record the labels of every target in ``groups`` into ``host_labels``."""
        for group in groups:
            self.sync_targets(job_name, group, host_labels)

    def sync_targets(self, job_name: str, group: TargetGroup,
                     host_labels: dict[str, dict[str, str]]) -> None:
        """Relabel the targets of ``group`` and record them by host."""
        relabel_configs = self._relabel_configs.get(job_name)
        if relabel_configs is None:
            logger.warning("relabel config not found for job. skipping labeling jobName=%s", job_name)
            return

        for target in group.targets:
            labels = process({**group.labels, **target}, relabel_configs) or {}
            address = labels.get(ADDRESS_LABEL)
            if address is None:
                logger.warning("ignoring target, unable to find address labels=%s", labels)
                continue
            host = address
            if ":" in host:
                try:
                    host = _split_host_port(host)
                except ValueError as exc:
                    logger.warning("unable to split host port address=%s err=%s", address, exc)
                    continue
            host_labels[host] = {k: v for k, v in labels.items() if not k.startswith("__")}

    def apply_target_groups(self, target_groups: Mapping[str, Iterable[TargetGroup]]) -> None:
        """Replace the known host labels with those of ``target_groups`` by job."""
        host_labels: dict[str, dict[str, str]] = {}
        for job_name, groups in target_groups.items():
            self.sync_groups(job_name, groups, host_labels)
        with self._lock:
            self._host_labels = host_labels

    def _discover(self) -> None:
        discovered: dict[str, list[TargetGroup]] = {}
        for scrape_config in self._scrape_configs:
            discovered.setdefault(scrape_config.job_name, []).extend(scrape_config.static_configs)
        self.apply_target_groups(discovered)

    def start(self) -> None:
        """Begin service discovery in the background."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("processor already started")
        self._thread = threading.Thread(target=self._discover, name="tempo-service-disco", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        """Stop service discovery and wait for it to finish."""
        if self._thread is not None:
            self._thread.join()
            self._thread = None


def create_trace_processor(
    config: Mapping[str, Any], next_consumer: Callable[[Any], Any] | None
) -> PromServiceDiscoProcessor:
    """Create a processor from its configuration mapping (``scrape_configs``)."""
    return PromServiceDiscoProcessor(next_consumer, parse_scrape_configs(config.get("scrape_configs")))