"""Lookup of gateway custom resources of both supported API versions."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from .api import FacadeService, Gateway, MeshGateway, Request
from .errors import UNEXPECTED_KUBERNETES_ERROR, CodedError, NotFoundError

_CR_TYPES: tuple[type[MeshGateway], ...] = (FacadeService, Gateway)


class KubeClient(ABC):
    """Minimal Kubernetes API used by the operator.

    ``kind`` is either a custom resource class or the name of a built-in kind
    such as ``"Deployment"``. Missing objects raise :class:`NotFoundError`,
    concurrent modifications raise :class:`ConflictError`.
    """

    @abstractmethod
    def get(self, kind: type | str, namespace: str, name: str) -> Any:
        """Return the named object."""

    @abstractmethod
    def list(
        self,
        kind: type | str,
        namespace: str,
        labels: Mapping[str, str] | None = None,
        fields: Mapping[str, str] | None = None,
    ) -> list[Any]:
        """Return the objects of ``kind`` in ``namespace`` matching the selectors."""

    @abstractmethod
    def update(self, obj: Any) -> None:
        """Replace an existing object."""

    @abstractmethod
    def delete(self, obj: Any) -> None:
        """Delete an object."""


@dataclass
class LastAppliedCr:
    """Reference to the custom resource that last configured a deployment."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    deleted: bool = False

    def to_json(self) -> str:
        document: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
        }
        if self.deleted:
            document["deleted"] = True
        return json.dumps(document, separators=(",", ":"))

    def resolve_type(self) -> type[MeshGateway]:
        """The resource class this reference points at."""
        for cr_type in _CR_TYPES:
            if self.kind == cr_type.KIND and self.api_version == f"{cr_type.GROUP}/{cr_type.VERSION}":
                return cr_type
        raise ValueError(f"unknown CR type: apiVersion={self.api_version!r} kind={self.kind!r}")


def parse_last_applied_cr(text: str) -> LastAppliedCr:
    """Parse the JSON stored in the last-applied-CR annotation."""
    document = json.loads(text)
    if not isinstance(document, dict):
        raise ValueError(f"last applied CR must be a JSON object, got: {text!r}")
    return LastAppliedCr(
        api_version=str(document.get("apiVersion", "")),
        kind=str(document.get("kind", "")),
        name=str(document.get("name", "")),
        deleted=bool(document.get("deleted", False)),
    )


class CommonCRClient:
    """Reads FacadeService and Gateway resources as one collection."""

    def __init__(self, client: KubeClient) -> None:
        self.client = client
        self.logger = logging.getLogger("CommonCRClient")

    def find_by_names(self, req: Request, names: Iterable[str]) -> list[MeshGateway]:
        result: list[MeshGateway] = []
        for name in names:
            for cr_type in _CR_TYPES:
                found = self._get(req, cr_type, name)
                if found is not None:
                    result.append(found)
        return result

    def find_by_fields(self, req: Request, fields: Mapping[str, str]) -> list[MeshGateway]:
        result: list[MeshGateway] = []
        for cr_type in _CR_TYPES:
            result.extend(self.client.list(cr_type, req.namespace, fields=fields))
        return result

    def get_all(self, req: Request) -> list[MeshGateway]:
        result: list[MeshGateway] = []
        for cr_type, what in ((FacadeService, "facade service"), (Gateway, "mesh gateway")):
            try:
                items = self.client.list(cr_type, req.namespace)
            except Exception as exc:
                raise CodedError(
                    UNEXPECTED_KUBERNETES_ERROR, f"Failed to get {what} list", exc
                ) from exc
            if items is None:
                raise CodedError(UNEXPECTED_KUBERNETES_ERROR, f"Failed to get {what} list")
            result.extend(items)
        return result

    def is_cr_exist_by_name(self, req: Request, name: str) -> bool:
        return any(self._get(req, cr_type, name) is not None for cr_type in _CR_TYPES)

    def get_by_last_applied_cr(
        self, req: Request, last_cr: LastAppliedCr | None
    ) -> MeshGateway | None:
        self.logger.info("[%s] Try to find CR by last applied cr. %s", req, last_cr)
        if last_cr is None:
            self.logger.info("[%s] Can not found CR by nil last applied cr", req)
            return None
        try:
            cr_type = last_cr.resolve_type()
        except ValueError as exc:
            self.logger.error("[%s] Can not resolve CR type. %s", req, exc)
            raise
        found = self._get(req, cr_type, last_cr.name)
        if found is None:
            self.logger.info("[%s] CR not found by last applied cr. %s", req, last_cr)
        return found

    def _get(self, req: Request, cr_type: type[MeshGateway], name: str) -> MeshGateway | None:
        try:
            return self.client.get(cr_type, req.namespace, name)
        except NotFoundError:
            self.logger.info("[%s] %s with name %s not found", req, cr_type.KIND, name)
            return None
        except Exception as exc:
            raise CodedError(
                UNEXPECTED_KUBERNETES_ERROR,
                f"Failed to get {cr_type.KIND} with name {name}",
                exc,
            ) from exc