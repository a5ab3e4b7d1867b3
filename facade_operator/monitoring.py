"""PodMonitor resources of the ``monitoring.coreos.com/v1`` API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

GROUP = "monitoring.coreos.com"
VERSION = "v1"
API_VERSION = f"{GROUP}/{VERSION}"
KIND = "PodMonitor"


def _omit_empty(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value not in ("", None, [], {})}


@dataclass
class PodMetricsEndpoint:
    interval: str = ""
    port: str = ""
    scheme: str = ""
    path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {"interval": self.interval, "port": self.port, "scheme": self.scheme, "path": self.path}
        )


@dataclass
class NamespaceSelector:
    match_names: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty({"matchNames": list(self.match_names)})


@dataclass
class PodMonitorSpec:
    job_label: str = ""
    namespace_selector: NamespaceSelector | None = None
    pod_metrics_endpoints: list[PodMetricsEndpoint] = field(default_factory=list)
    selector: dict[str, str] | None = None
    """Label selector, as the labels that pods must match."""

    def to_dict(self) -> dict[str, Any]:
        return _omit_empty(
            {
                "jobLabel": self.job_label,
                "namespaceSelector": (
                    self.namespace_selector.to_dict() if self.namespace_selector else None
                ),
                "podMetricsEndpoints": [e.to_dict() for e in self.pod_metrics_endpoints],
                "selector": (
                    {"matchLabels": dict(self.selector)} if self.selector is not None else None
                ),
            }
        )


@dataclass
class PodMonitor:
    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    spec: PodMonitorSpec = field(default_factory=PodMonitorSpec)

    def to_dict(self) -> dict[str, Any]:
        """The resource as a Kubernetes manifest."""
        metadata = _omit_empty(
            {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
                "annotations": dict(self.annotations),
            }
        )
        manifest: dict[str, Any] = {
            "apiVersion": API_VERSION,
            "kind": KIND,
            "metadata": metadata,
        }
        spec = self.spec.to_dict()
        if spec:
            manifest["spec"] = spec
        return manifest