import pytest

from facade_operator.api import FacadeService, Gateway, Request
from facade_operator.controllers import FacadeServiceReconciler, GatewayReconciler
from facade_operator.errors import (
    CONTROL_PLANE_ERROR,
    GATEWAY_IMAGE_ERROR,
    UNEXPECTED_KUBERNETES_ERROR,
    UNKNOWN_ERROR_CODE,
    ApiError,
    CodedError,
    NotFoundError,
)
from facade_operator.reconciler import FacadeCommonReconciler


class Fake:
    """Records every method call; returns or raises what it was told to."""

    def __init__(self, **returns):
        self.calls = []
        self.returns = returns
        self.raises = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)

        def method(*args):
            self.calls.append((name, args))
            if name in self.raises:
                raise self.raises[name]
            return self.returns.get(name)

        return method

    def called(self, name):
        return [args for method, args in self.calls if method == name]


class FakeKube:
    def __init__(self, objects=None, errors=None):
        self.objects = objects or {}
        self.errors = errors or {}
        self.gets = []
        self.deleted = []

    def get(self, kind, namespace, name):
        self.gets.append((kind, namespace, name))
        if kind in self.errors:
            raise self.errors[kind]
        if (kind, name) not in self.objects:
            raise NotFoundError(f"{name} not found")
        return self.objects[(kind, name)]

    def list(self, kind, namespace, labels=None, fields=None):
        return []

    def update(self, obj):
        pass

    def delete(self, obj):
        self.deleted.append(obj)


def make_base(kube):
    fakes = {
        "service_client": Fake(),
        "deployments_client": Fake(),
        "config_map_client": Fake(get_gateway_image="publicGatewayImage"),
        "pod_monitor_client": Fake(),
        "hpa_client": Fake(),
        "ingress_client": Fake(),
        "control_plane_client": Fake(),
        "ingress_builder": Fake(),
        "status_updater": Fake(),
        "ready_service": Fake(),
        "common_cr_client": Fake(),
        "cr_priority_service": Fake(),
        "hpa_builder": Fake(),
    }
    base = FacadeCommonReconciler(client=kube, **fakes)
    return base, fakes


@pytest.fixture
def req():
    return Request(namespace="test-namespace", name="testName")


def test_facade_service_reconciler_requests_facade_service_kind(req):
    kube = FakeKube()
    base, _ = make_base(kube)
    FacadeServiceReconciler(base).reconcile(req)
    assert kube.gets[0] == (FacadeService, "test-namespace", "testName")


def test_gateway_reconciler_requests_gateway_kind(req):
    kube = FakeKube()
    base, _ = make_base(kube)
    GatewayReconciler(base).reconcile(req)
    assert kube.gets[0] == (Gateway, "test-namespace", "testName")


def test_missing_cr_deletes_facade_service(req):
    kube = FakeKube()
    base, fakes = make_base(kube)
    result = FacadeServiceReconciler(base).reconcile(req)
    assert result.requeue is False
    assert fakes["control_plane_client"].called("drop_gateway") == [("testName",)]
    assert fakes["deployments_client"].called("is_facade_gateway") == [
        (req, "testName-gateway")
    ]
    assert fakes["status_updater"].called("set_updating") == []


@pytest.mark.parametrize(
    "reconciler_type, detail",
    [
        (FacadeServiceReconciler, "Failed to get facade CR"),
        (GatewayReconciler, "Failed to get mesh gateway CR"),
    ],
)
def test_failure_while_getting_cr(req, reconciler_type, detail):
    unknown = ApiError("unknown error")
    kube = FakeKube(errors={reconciler_type.cr_type: unknown})
    base, fakes = make_base(kube)
    with pytest.raises(CodedError) as info:
        reconciler_type(base).reconcile(req)
    assert info.value.error_code == UNEXPECTED_KUBERNETES_ERROR
    assert info.value.detail == detail
    assert info.value.cause is unknown
    assert fakes["status_updater"].called("set_fail") == []


def test_apply_facade_router_without_errors(req):
    cr = FacadeService()
    cr.spec.replicas = "2"
    cr.spec.port = 8080
    kube = FakeKube(objects={(FacadeService, "testName"): cr})
    base, fakes = make_base(kube)
    result = FacadeServiceReconciler(base).reconcile(req)
    assert result.requeue is False
    assert fakes["control_plane_client"].called("register_gateway") == [("testName", cr)]
    applied = fakes["deployments_client"].called("apply")
    assert len(applied) == 1
    template = applied[0][1]
    assert template.gateway_name == "testName-gateway"
    assert template.service_name == "testName"
    assert template.image_name == "publicGatewayImage"
    assert template.replicas == 2
    assert template.mesh_router is False
    services = fakes["service_client"].called("apply")
    assert [t.name for _, t in services] == ["testName"]
    assert services[0][1].name_selector == "testName-gateway"
    assert services[0][1].port == 8080
    config_maps = fakes["config_map_client"].called("apply")
    assert config_maps[0][1].name == "testName-gateway.monitoring-config"


def test_gateway_cr_result_comes_from_readiness_check(req):
    cr = Gateway()
    ready = Fake()
    kube = FakeKube(objects={(Gateway, "testName"): cr})
    base, fakes = make_base(kube)
    expected = fakes["ready_service"]
    from facade_operator.api import Result

    expected.returns["check_deployment_ready"] = Result(requeue=True)
    result = GatewayReconciler(base).reconcile(req)
    assert result.requeue is True
    assert expected.called("check_deployment_ready") == [(req, cr)]
    assert ready.calls == []


def test_error_while_registering_gateway(req):
    cr = FacadeService()
    unknown = ApiError("unknown error")
    kube = FakeKube(objects={(FacadeService, "testName"): cr})
    base, fakes = make_base(kube)
    fakes["control_plane_client"].raises["register_gateway"] = CodedError(
        CONTROL_PLANE_ERROR, "control-plane err", unknown
    )
    with pytest.raises(CodedError) as info:
        FacadeServiceReconciler(base).reconcile(req)
    assert info.value.error_code == CONTROL_PLANE_ERROR
    assert info.value.detail == "control-plane err"
    assert info.value.cause is unknown
    assert fakes["status_updater"].called("set_fail") == [(cr,)]


def test_error_while_getting_image(req):
    cr = FacadeService()
    unknown = ApiError("unknown error")
    kube = FakeKube(objects={(FacadeService, "testName"): cr})
    base, fakes = make_base(kube)
    fakes["config_map_client"].raises["get_gateway_image"] = unknown
    with pytest.raises(CodedError) as info:
        FacadeServiceReconciler(base).reconcile(req)
    assert info.value.error_code == GATEWAY_IMAGE_ERROR
    assert info.value.detail == "gateway image is empty"
    assert info.value.cause is unknown


def test_error_while_applying_facade_service(req):
    cr = FacadeService()
    unknown = ApiError("unknown error")
    kube = FakeKube(objects={(FacadeService, "testName"): cr})
    base, fakes = make_base(kube)
    fakes["service_client"].raises["apply"] = unknown
    with pytest.raises(CodedError) as info:
        FacadeServiceReconciler(base).reconcile(req)
    assert info.value.error_code == UNKNOWN_ERROR_CODE
    assert info.value.detail == "Unknown error"
    assert info.value.cause is unknown
    assert fakes["deployments_client"].called("apply") == []