"""Removal of mesh router deployments no longer referenced by any gateway CR."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .api import MeshGateway, Request
from .crclient import LastAppliedCr, parse_last_applied_cr
from .settings import MONITORING_CONFIG_SUFFIX, POD_MONITOR_SUFFIX, short_name

DEFAULT_MASTER_CR_LABEL = "facadeMasterCR"
DEFAULT_LAST_APPLIED_CR_ANNOTATION = "last-applied-cr"
DEFAULT_ANNOTATION_PREFIX = "qubership.cloud"


class _Deleter(Protocol):
    def delete(self, req: Request, name: str) -> None: ...


class _DeploymentClient(Protocol):
    def get_mesh_router_deployments(self, req: Request) -> list[dict[str, Any]] | None: ...

    def delete(self, req: Request, name: str) -> None: ...

    def delete_master_cr_label(self, req: Request, name: str) -> None: ...

    def set_last_applied_cr(self, req: Request, name: str, last: LastAppliedCr) -> None: ...


class _CRSource(Protocol):
    def get_all(self, req: Request) -> list[MeshGateway]: ...

    def get_by_last_applied_cr(
        self, req: Request, last_cr: LastAppliedCr | None
    ) -> MeshGateway | None: ...


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    return obj.get("metadata") or {}


def _name(deployment: Mapping[str, Any]) -> str:
    return _metadata(deployment).get("name", "")


def master_cr_of(deployment: Mapping[str, Any], label: str) -> str:
    """The master CR label of a deployment, or of its pod template."""
    value = (_metadata(deployment).get("labels") or {}).get(label, "")
    if value:
        return value
    template = (deployment.get("spec") or {}).get("template") or {}
    return (_metadata(template).get("labels") or {}).get(label, "")


class MeshRouterCleaner:
    """Deletes orphaned mesh routers and tidies the ones still in use."""

    def __init__(
        self,
        service_client: _Deleter,
        deployments_client: _DeploymentClient,
        config_map_client: _Deleter,
        pod_monitor_client: _Deleter,
        hpa_client: _Deleter,
        common_cr_client: _CRSource,
        master_cr_label: str = DEFAULT_MASTER_CR_LABEL,
        last_applied_annotation: str = DEFAULT_LAST_APPLIED_CR_ANNOTATION,
        annotation_prefix: str = DEFAULT_ANNOTATION_PREFIX,
    ) -> None:
        self.service_client = service_client
        self.deployments_client = deployments_client
        self.config_map_client = config_map_client
        self.pod_monitor_client = pod_monitor_client
        self.hpa_client = hpa_client
        self.common_cr_client = common_cr_client
        self.master_cr_label = master_cr_label
        self.last_applied_annotation = last_applied_annotation
        self.annotation_prefix = annotation_prefix
        self.logger = logging.getLogger("FacadeReconciler")

    def delete_not_used_mesh_routers(self, req: Request) -> None:
        self.logger.info("[%s] Start delete not used mesh routers", req)
        deployments = self.deployments_client.get_mesh_router_deployments(req)
        if not deployments:
            self.logger.debug("[%s] Can not found mesh routers deployments", req)
            return
        crs = self.common_cr_client.get_all(req)
        self.cleanup_deployments(req, deployments, crs)

    def cleanup_deployments(
        self,
        req: Request,
        deployments: Sequence[dict[str, Any]],
        crs: Sequence[MeshGateway],
    ) -> None:
        to_delete: list[str] = []
        to_drop_master_label: list[str] = []
        for deployment in deployments:
            name = _name(deployment)
            master = master_cr_of(deployment, self.master_cr_label)
            cr_exists = any(cr.spec.gateway == name for cr in crs)
            master_exists = any(
                cr.spec.master_configuration and master == cr.name for cr in crs
            )
            if not cr_exists:
                to_delete.append(name)
            else:
                self._cleanup_last_applied(req, deployment)
                if not master_exists:
                    to_drop_master_label.append(name)

        for name in to_delete:
            self.delete_mesh_router(req, name)
        for name in to_drop_master_label:
            self.deployments_client.delete_master_cr_label(req, name)
        self.logger.info("[%s] Done delete not used mesh routers", req)

    def delete_mesh_router(self, req: Request, name: str) -> None:
        self.logger.info("[%s] Delete not used mesh router %s", req, name)
        self.service_client.delete(req, name)
        self.deployments_client.delete(req, name)
        self.config_map_client.delete(req, name + MONITORING_CONFIG_SUFFIX)
        self.logger.info("[%s] Delete PodMonitor %s", req, name)
        self.pod_monitor_client.delete(req, short_name(name, POD_MONITOR_SUFFIX))
        self.hpa_client.delete(req, name)

    def _find_annotation(self, annotations: Mapping[str, str]) -> str | None:
        keys = [self.last_applied_annotation]
        if self.annotation_prefix:
            keys.insert(0, f"{self.annotation_prefix}/{self.last_applied_annotation}")
        for key in keys:
            if key in annotations:
                return annotations[key]
        return None

    def _cleanup_last_applied(self, req: Request, deployment: dict[str, Any]) -> None:
        name = _name(deployment)
        annotations = _metadata(deployment).get("annotations")
        if annotations is None:
            self.logger.info("[%s] Annotations not found on deployment '%s'", req, name)
            return
        text = self._find_annotation(annotations)
        if text is None:
            self.logger.info(
                "[%s] %s annotation not found on deployment '%s'",
                req, self.last_applied_annotation, name,
            )
            return
        try:
            last_applied = parse_last_applied_cr(text)
        except ValueError:
            self.logger.error(
                "[%s] Can not unmarshal '%s' annotation with value: %s",
                req, self.last_applied_annotation, text,
            )
            raise
        if self.common_cr_client.get_by_last_applied_cr(req, last_applied) is None:
            self.logger.info(
                "[%s] Last applied CR %s not found. Update deployment annotation",
                req, last_applied,
            )
            last_applied.deleted = True
            self.deployments_client.set_last_applied_cr(req, name, last_applied)