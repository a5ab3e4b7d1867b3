from facade_operator.monitoring import (
    NamespaceSelector,
    PodMetricsEndpoint,
    PodMonitor,
    PodMonitorSpec,
)


def test_manifest_header():
    manifest = PodMonitor(name="gw-pod-monitor").to_dict()
    assert manifest["apiVersion"] == "monitoring.coreos.com/v1"
    assert manifest["kind"] == "PodMonitor"
    assert manifest["metadata"] == {"name": "gw-pod-monitor"}


def test_empty_spec_is_omitted():
    assert "spec" not in PodMonitor(name="m").to_dict()


def test_spec_fields_are_rendered():
    endpoint = PodMetricsEndpoint(interval="30s", port="admin", scheme="http", path="/metrics")
    monitor = PodMonitor(
        name="m",
        namespace="ns",
        labels={"app": "gw"},
        spec=PodMonitorSpec(
            job_label="job",
            namespace_selector=NamespaceSelector(match_names=["ns"]),
            pod_metrics_endpoints=[endpoint],
            selector={"name": "gw"},
        ),
    )
    manifest = monitor.to_dict()
    assert manifest["metadata"] == {"name": "m", "namespace": "ns", "labels": {"app": "gw"}}
    spec = manifest["spec"]
    assert spec["jobLabel"] == "job"
    assert spec["namespaceSelector"] == {"matchNames": ["ns"]}
    assert spec["podMetricsEndpoints"] == [
        {"interval": "30s", "port": "admin", "scheme": "http", "path": "/metrics"}
    ]
    assert spec["selector"] == {"matchLabels": {"name": "gw"}}


def test_endpoint_omits_empty_fields():
    assert PodMetricsEndpoint(port="admin").to_dict() == {"port": "admin"}


def test_manifest_does_not_share_label_dict():
    labels = {"app": "gw"}
    monitor = PodMonitor(name="m", labels=labels)
    monitor.to_dict()["metadata"]["labels"]["other"] = "x"
    assert labels == {"app": "gw"}