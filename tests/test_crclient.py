from __future__ import annotations

import pytest

from facade_operator.api import FacadeService, Gateway, ObjectMeta, Request
from facade_operator.crclient import (
    CommonCRClient,
    KubeClient,
    LastAppliedCr,
    parse_last_applied_cr,
)
from facade_operator.errors import (
    UNEXPECTED_KUBERNETES_ERROR,
    ApiError,
    CodedError,
    NotFoundError,
)

REQ = Request(namespace="test-namespace", name="testName")


class FakeKube(KubeClient):
    def __init__(self, objects=None, list_error=None, get_error=None):
        self.objects = list(objects or [])
        self.list_error = list_error
        self.get_error = get_error
        self.list_calls = []

    def get(self, kind, namespace, name):
        if self.get_error is not None:
            raise self.get_error
        for obj in self.objects:
            if isinstance(obj, kind) and obj.namespace == namespace and obj.name == name:
                return obj
        raise NotFoundError(name)

    def list(self, kind, namespace, labels=None, fields=None):
        self.list_calls.append((kind, namespace, labels, fields))
        if self.list_error is not None:
            raise self.list_error
        return [o for o in self.objects if isinstance(o, kind) and o.namespace == namespace]

    def update(self, obj):
        raise AssertionError("not used")

    def delete(self, obj):
        raise AssertionError("not used")


def facade(name):
    return FacadeService(metadata=ObjectMeta(name=name, namespace=REQ.namespace))


def gateway(name):
    return Gateway(metadata=ObjectMeta(name=name, namespace=REQ.namespace))


def test_last_applied_round_trip():
    original = LastAppliedCr(api_version="core.qubership.org/v1", kind="Gateway", name="gw", deleted=True)
    assert parse_last_applied_cr(original.to_json()) == original


def test_last_applied_without_deleted_round_trip():
    original = LastAppliedCr(api_version="qubership.org/v1alpha", kind="FacadeService", name="fs")
    parsed = parse_last_applied_cr(original.to_json())
    assert parsed == original
    assert parsed.deleted is False


def test_parse_last_applied_rejects_invalid():
    with pytest.raises(ValueError):
        parse_last_applied_cr("not json")
    with pytest.raises(ValueError):
        parse_last_applied_cr("[1, 2]")


def test_resolve_type():
    assert LastAppliedCr("qubership.org/v1alpha", "FacadeService", "a").resolve_type() is FacadeService
    assert LastAppliedCr("core.qubership.org/v1", "Gateway", "a").resolve_type() is Gateway
    with pytest.raises(ValueError):
        LastAppliedCr("core.qubership.org/v1", "FacadeService", "a").resolve_type()


def test_find_by_names_collects_both_kinds():
    objects = [facade("a"), gateway("a"), gateway("b"), facade("c")]
    client = CommonCRClient(FakeKube(objects))
    found = client.find_by_names(REQ, ["a", "b", "missing"])
    assert found == [objects[0], objects[1], objects[2]]


def test_find_by_names_wraps_unexpected_error():
    boom = ApiError("boom")
    client = CommonCRClient(FakeKube(get_error=boom))
    with pytest.raises(CodedError) as info:
        client.find_by_names(REQ, ["a"])
    assert info.value.error_code == UNEXPECTED_KUBERNETES_ERROR
    assert info.value.cause is boom


def test_find_by_fields_passes_selector():
    objects = [gateway("g"), facade("f")]
    kube = FakeKube(objects)
    fields = {"spec.gatewayType": "ingress"}
    found = CommonCRClient(kube).find_by_fields(REQ, fields)
    assert found == [objects[1], objects[0]]
    assert [call[3] for call in kube.list_calls] == [fields, fields]
    assert all(call[1] == REQ.namespace for call in kube.list_calls)


def test_find_by_fields_propagates_error():
    boom = ApiError("boom")
    with pytest.raises(ApiError) as info:
        CommonCRClient(FakeKube(list_error=boom)).find_by_fields(REQ, {})
    assert info.value is boom


def test_get_all_facades_first():
    objects = [gateway("g1"), facade("f1"), gateway("g2")]
    found = CommonCRClient(FakeKube(objects)).get_all(REQ)
    assert found == [objects[1], objects[0], objects[2]]


def test_get_all_wraps_error():
    boom = ApiError("boom")
    with pytest.raises(CodedError) as info:
        CommonCRClient(FakeKube(list_error=boom)).get_all(REQ)
    assert info.value.error_code == UNEXPECTED_KUBERNETES_ERROR
    assert info.value.detail == "Failed to get facade service list"
    assert info.value.cause is boom


def test_is_cr_exist_by_name():
    client = CommonCRClient(FakeKube([gateway("only-gw"), facade("only-fs")]))
    assert client.is_cr_exist_by_name(REQ, "only-gw") is True
    assert client.is_cr_exist_by_name(REQ, "only-fs") is True
    assert client.is_cr_exist_by_name(REQ, "nothing") is False


def test_get_by_last_applied_cr():
    gw = gateway("gw")
    client = CommonCRClient(FakeKube([gw, facade("gw")]))
    assert client.get_by_last_applied_cr(REQ, None) is None
    ref = LastAppliedCr(api_version="core.qubership.org/v1", kind="Gateway", name="gw")
    assert client.get_by_last_applied_cr(REQ, ref) is gw
    missing = LastAppliedCr(api_version="core.qubership.org/v1", kind="Gateway", name="gone")
    assert client.get_by_last_applied_cr(REQ, missing) is None


def test_get_by_last_applied_cr_unknown_type():
    client = CommonCRClient(FakeKube([]))
    with pytest.raises(ValueError):
        client.get_by_last_applied_cr(REQ, LastAppliedCr(api_version="x/v1", kind="Other", name="n"))