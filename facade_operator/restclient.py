"""HTTP clients used to talk to the control plane."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import requests

from .api import GatewayType, MeshGateway
from .errors import CONTROL_PLANE_ERROR, UNKNOWN_ERROR_CODE, CodedError

GATEWAYS_SPECS_API = "/api/v3/gateways/specs"
DEFAULT_CONTROL_PLANE_URL = "http://control-plane:8080"


@dataclass(frozen=True)
class Response:
    status_code: int
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def _no_token() -> str:
    return ""


def _no_headers() -> Mapping[str, str]:
    return {}


class SimpleRestClient:
    """Performs HTTP requests, adding context headers and an M2M bearer token."""

    def __init__(
        self,
        token_provider: Callable[[], str] | None = None,
        header_provider: Callable[[], Mapping[str, str]] | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.logger = logging.getLogger("SimpleRestClient")
        self.token_provider = token_provider or _no_token
        self.header_provider = header_provider or _no_headers
        self.session = session or requests.Session()
        self.timeout = timeout

    def do_request(self, method: str, url: str, body: str) -> Response:
        """Send ``body`` to ``url`` and return the status and raw response body."""
        self.logger.info("Perform request: %s %s", method, url)
        try:
            headers = dict(self.header_provider())
        except Exception as exc:
            raise RuntimeError(f"error dump context data to request: {exc}") from exc

        try:
            m2m_token = self.token_provider()
        except Exception as exc:
            raise RuntimeError(
                f"error getting m2m token from tokenprovider: {exc}"
            ) from exc
        if m2m_token:
            headers["Authorization"] = "Bearer " + m2m_token

        try:
            response = self.session.request(
                method, url, data=body.encode("utf-8"), headers=headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise ConnectionError(f"can not perform request: {exc}") from exc
        return Response(status_code=response.status_code, body=response.content)


@dataclass
class GatewayDeclaration:
    name: str
    gateway_type: GatewayType | str = ""
    allow_virtual_hosts: bool | None = None
    exists: bool | None = None

    def to_json(self) -> str:
        """The declaration as the JSON document the control plane expects."""
        gateway_type = self.gateway_type
        if isinstance(gateway_type, Enum):
            gateway_type = gateway_type.value
        document: dict[str, Any] = {
            "name": self.name,
            "gatewayType": gateway_type,
            "allowVirtualHosts": self.allow_virtual_hosts,
        }
        if self.exists is not None:
            document["exists"] = self.exists
        return json.dumps(document, separators=(",", ":"))


class ControlPlaneClient:
    """Registers and drops gateway declarations in the control plane."""

    def __init__(
        self,
        rest_client: SimpleRestClient | None = None,
        control_plane_url: str = DEFAULT_CONTROL_PLANE_URL,
    ) -> None:
        self.logger = logging.getLogger("ControlPlaneClient")
        self.control_plane_url = control_plane_url
        self.rest_client = rest_client or SimpleRestClient()

    def _send(self, method: str, path: str, declaration: GatewayDeclaration) -> Response:
        try:
            body = declaration.to_json()
        except (TypeError, ValueError) as exc:
            raise CodedError(
                UNKNOWN_ERROR_CODE,
                "could not serialize gateway registration request body",
                exc,
            ) from exc
        try:
            return self.rest_client.do_request(method, self.control_plane_url + path, body)
        except Exception as exc:
            raise CodedError(
                CONTROL_PLANE_ERROR,
                f"{method} request to control-plane {path} failed with error",
                exc,
            ) from exc

    @staticmethod
    def _status_error(response: Response) -> CodedError:
        return CodedError(
            CONTROL_PLANE_ERROR,
            f"gateway registration request got {response.status_code} error "
            f"from control-plane with message '{response.text}'",
        )

    def register_gateway(self, gateway_service_name: str, cr: MeshGateway) -> None:
        declaration = GatewayDeclaration(
            name=gateway_service_name,
            gateway_type=cr.effective_gateway_type(),
            allow_virtual_hosts=cr.spec.allow_virtual_hosts,
        )
        self.logger.info("Sending gateway registration request to control-plane %s", declaration)
        response = self._send("POST", GATEWAYS_SPECS_API, declaration)
        if response.status_code != 200:
            raise self._status_error(response)
        self.logger.info("Gateway %s successfully registered", declaration)

    def drop_gateway(self, gateway_service_name: str) -> bool:
        """Drop the declaration; False when the control plane keeps it (HTTP 400)."""
        declaration = GatewayDeclaration(name=gateway_service_name)
        self.logger.info("Sending gateway %s drop request to control-plane", gateway_service_name)
        response = self._send("DELETE", GATEWAYS_SPECS_API, declaration)
        if response.status_code != 200:
            if response.status_code == 400:
                # The node group may still have routes associated with it.
                self.logger.info(
                    "Gateway %s will not be dropped in control-plane because this node "
                    "group still has some associated entities",
                    gateway_service_name,
                )
                return False
            raise self._status_error(response)
        self.logger.info("Gateway %s dropped successfully", gateway_service_name)
        return True