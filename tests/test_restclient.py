import json

import pytest
import requests
import responses

from facade_operator.api import FacadeService, FacadeServiceSpec, ObjectMeta
from facade_operator.errors import CONTROL_PLANE_ERROR, CodedError
from facade_operator.restclient import (
    ControlPlaneClient,
    GatewayDeclaration,
    Response,
    SimpleRestClient,
)

URL = "http://control-plane:8080/api/v3/gateways/specs"


@pytest.fixture
def rsps():
    with responses.RequestsMock() as mock:
        yield mock


def _cr(name="my-gateway", allow=True, gateway_type=""):
    return FacadeService(
        metadata=ObjectMeta(name=name),
        spec=FacadeServiceSpec(allow_virtual_hosts=allow, gateway_type=gateway_type),
    )


def test_declaration_json_omits_exists():
    doc = json.loads(GatewayDeclaration(name="gw").to_json())
    assert doc == {"name": "gw", "gatewayType": "", "allowVirtualHosts": None}


def test_declaration_json_with_exists():
    doc = json.loads(GatewayDeclaration(name="gw", exists=True).to_json())
    assert doc["exists"] is True


def test_response_text():
    assert Response(200, b"ok").text == "ok"


def test_do_request_adds_bearer_token(rsps):
    rsps.add(responses.GET, "http://localhost/x", body=b"payload", status=201)
    client = SimpleRestClient(token_provider=lambda: "token")
    result = client.do_request("GET", "http://localhost/x", "")
    assert result == Response(201, b"payload")
    assert rsps.calls[0].request.headers["Authorization"] == "Bearer token"


def test_do_request_without_token_has_no_authorization(rsps):
    rsps.add(responses.GET, "http://localhost/x", body=b"plain", status=200)
    result = SimpleRestClient(header_provider=lambda: {"X-Request-Id": "abc"}).do_request(
        "GET", "http://localhost/x", ""
    )
    assert result == Response(200, b"plain")
    headers = rsps.calls[0].request.headers
    assert "Authorization" not in headers
    assert headers["X-Request-Id"] == "abc"


def test_do_request_token_failure():
    def failing():
        raise ValueError("no token")

    with pytest.raises(RuntimeError, match="error getting m2m token"):
        SimpleRestClient(token_provider=failing).do_request("GET", "http://localhost/x", "")


def test_do_request_connection_failure(rsps):
    rsps.add(responses.GET, "http://localhost/x", body=requests.ConnectionError("down"))
    with pytest.raises(ConnectionError, match="can not perform request"):
        SimpleRestClient().do_request("GET", "http://localhost/x", "")


def test_register_gateway_sends_declaration(rsps):
    rsps.add(responses.POST, URL, status=200)
    result = ControlPlaneClient().register_gateway("svc", _cr())
    assert result is None
    assert len(rsps.calls) == 1
    sent = json.loads(rsps.calls[0].request.body)
    assert sent == {"name": "svc", "gatewayType": "mesh", "allowVirtualHosts": True}


def test_register_gateway_egress_by_name(rsps):
    rsps.add(responses.POST, URL, status=200)
    result = ControlPlaneClient().register_gateway("svc", _cr(name="egress-gateway", allow=None))
    assert result is None
    sent = json.loads(rsps.calls[0].request.body)
    assert sent["gatewayType"] == "egress"
    assert sent["allowVirtualHosts"] is None


def test_register_gateway_error_status(rsps):
    rsps.add(responses.POST, URL, status=500, body=b"boom")
    with pytest.raises(CodedError) as info:
        ControlPlaneClient().register_gateway("svc", _cr())
    assert info.value.error_code == CONTROL_PLANE_ERROR
    assert "500" in info.value.detail
    assert "'boom'" in info.value.detail
    assert info.value.cause is None


def test_register_gateway_transport_failure(rsps):
    rsps.add(responses.POST, URL, body=requests.ConnectionError("down"))
    with pytest.raises(CodedError) as info:
        ControlPlaneClient().register_gateway("svc", _cr())
    assert info.value.error_code == CONTROL_PLANE_ERROR
    assert info.value.detail == "POST request to control-plane /api/v3/gateways/specs failed with error"
    assert isinstance(info.value.cause, ConnectionError)


def test_drop_gateway_ok(rsps):
    rsps.add(responses.DELETE, URL, status=200)
    assert ControlPlaneClient().drop_gateway("svc") is True
    assert json.loads(rsps.calls[0].request.body)["name"] == "svc"


def test_drop_gateway_bad_request_is_tolerated(rsps):
    rsps.add(responses.DELETE, URL, status=400)
    assert ControlPlaneClient().drop_gateway("svc") is False


def test_drop_gateway_other_error(rsps):
    rsps.add(responses.DELETE, URL, status=503)
    with pytest.raises(CodedError) as info:
        ControlPlaneClient().drop_gateway("svc")
    assert info.value.error_code == CONTROL_PLANE_ERROR


def test_custom_control_plane_url(rsps):
    rsps.add(responses.DELETE, "http://localhost:9000/api/v3/gateways/specs", status=200)
    client = ControlPlaneClient(control_plane_url="http://localhost:9000")
    assert client.drop_gateway("svc") is True