"""Reconcile logic shared by the FacadeService and Gateway resources."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from .api import (
    INTERNAL_GATEWAY_SERVICE,
    FacadeService,
    FacadeServiceEnv,
    GatewayPorts,
    GatewayType,
    MeshGateway,
    Request,
    Result,
)
from .configmap_controller import DEFAULT_FACADE_GATEWAY_LABEL
from .crclient import KubeClient, LastAppliedCr
from .errors import (
    GATEWAY_IMAGE_ERROR,
    UNEXPECTED_KUBERNETES_ERROR,
    UNKNOWN_ERROR_CODE,
    CodedError,
    ExpectedError,
    NotFoundError,
)
from .router_cleanup import (
    DEFAULT_ANNOTATION_PREFIX,
    DEFAULT_LAST_APPLIED_CR_ANNOTATION,
    DEFAULT_MASTER_CR_LABEL,
    MeshRouterCleaner,
)
from .settings import (
    MONITORING_CONFIG_SUFFIX,
    POD_MONITOR_SUFFIX,
    OperatorSettings,
    instance_label_value,
    resolve_concurrency,
    resolve_replicas,
    short_name,
)

DEFAULT_MESH_ROUTER_LABEL = "meshRouter"
DEFAULT_HOSTED_BY_LABEL = "app.kubernetes.io/hosted-by"
PART_OF_LABEL = "app.kubernetes.io/part-of"
PANIC_REQUEUE_AFTER = 5.0

# Programming errors: the reconcile is abandoned and retried later, like a recovered crash.
_CRASHES = (LookupError, AttributeError, TypeError)


@dataclass
class _LockEntry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class NamedLock:
    """A set of locks addressed by name, created on demand and dropped when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        """Hold the lock called ``name`` for the duration of the block."""
        with self._guard:
            entry = self._entries.setdefault(name, _LockEntry())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[name]


@dataclass
class _Owner:
    name: str
    api_version: str
    kind: str
    uid: str

    @classmethod
    def of(cls, cr: MeshGateway) -> _Owner:
        return cls(cr.name, cr.api_version, cr.kind, cr.uid)


@dataclass
class _ServiceTemplate:
    name: str
    namespace: str
    labels: Mapping[str, str]
    name_selector: str
    port: int
    gateway_ports: list[GatewayPorts]
    owner: _Owner


@dataclass
class _ConfigMapTemplate:
    name: str
    namespace: str
    part_of_label: str
    owner: _Owner


@dataclass
class _PodMonitorTemplate:
    name: str
    namespace: str
    name_label: str
    part_of_label: str
    name_selector: str
    owner: _Owner


@dataclass
class _DeploymentTemplate:
    service_name: str
    gateway_name: str
    namespace: str
    cr_labels: Mapping[str, str]
    instance_label: str
    artifact_description_version: str
    image_name: str
    env: FacadeServiceEnv
    tracing_enabled: str
    tracing_host: str
    ip_stack: str
    ip_bind: str
    mesh_router: bool
    replicas: int
    cloud_topology_key: str
    xds_cluster_host: str
    xds_cluster_port: str
    tls_secret_path: str
    tls_password_secret_name: str
    tls_password_key: str
    master_cr: str
    owner: _Owner
    gateway_ports: list[GatewayPorts]
    read_only_container_enabled: bool
    gw_termination_grace_period_s: int
    envoy_concurrency: int
    hosted_by: str
    last_applied_cr: str


def _has_gateway(cr: MeshGateway) -> bool:
    return cr.spec.gateway not in ("", "null")


def _gateway_service_name(req_name: str, cr: MeshGateway) -> str:
    return cr.spec.gateway if _has_gateway(cr) else req_name


class FacadeCommonReconciler:
    """Creates, updates and deletes the gateway resources described by a CR."""

    def __init__(
        self,
        client: KubeClient,
        service_client: Any,
        deployments_client: Any,
        config_map_client: Any,
        pod_monitor_client: Any,
        hpa_client: Any,
        ingress_client: Any,
        control_plane_client: Any,
        ingress_builder: Any,
        status_updater: Any,
        ready_service: Any,
        common_cr_client: Any,
        cr_priority_service: Any,
        hpa_builder: Any,
        settings: OperatorSettings | None = None,
        facade_gateway_label: str = DEFAULT_FACADE_GATEWAY_LABEL,
        mesh_router_label: str = DEFAULT_MESH_ROUTER_LABEL,
        master_cr_label: str = DEFAULT_MASTER_CR_LABEL,
        hosted_by_label: str = DEFAULT_HOSTED_BY_LABEL,
    ) -> None:
        self.client = client
        self.service_client = service_client
        self.deployments_client = deployments_client
        self.config_map_client = config_map_client
        self.pod_monitor_client = pod_monitor_client
        self.hpa_client = hpa_client
        self.ingress_client = ingress_client
        self.control_plane_client = control_plane_client
        self.ingress_builder = ingress_builder
        self.status_updater = status_updater
        self.ready_service = ready_service
        self.common_cr_client = common_cr_client
        self.cr_priority_service = cr_priority_service
        self.hpa_builder = hpa_builder
        self.settings = settings or OperatorSettings()
        self.facade_gateway_label = facade_gateway_label
        self.mesh_router_label = mesh_router_label
        self.hosted_by_label = hosted_by_label
        self.named_lock = NamedLock()
        self.cleaner = MeshRouterCleaner(
            service_client,
            deployments_client,
            config_map_client,
            pod_monitor_client,
            hpa_client,
            common_cr_client,
            master_cr_label=master_cr_label,
            last_applied_annotation=DEFAULT_LAST_APPLIED_CR_ANNOTATION,
            annotation_prefix=DEFAULT_ANNOTATION_PREFIX,
        )
        self.logger = logging.getLogger("FacadeReconciler")

    def reconcile(self, req: Request, cr: MeshGateway | None) -> Result:
        """Bring the cluster in line with ``cr``; ``None`` means the CR was deleted."""
        self.logger.info("[%s] Start reconcile", req)
        with self.named_lock.hold(req.namespaced_name):
            try:
                result = self._reconcile(req, cr)
            except ExpectedError as exc:
                # Races, e.g. several CRs sharing one composite gateway, are retried quietly.
                self.logger.warning("[%s] Found expected error. %s", req, exc)
                return Result(requeue=True)
            except CodedError as exc:
                self.logger.error("[%s] %s", req, exc.to_log_format())
                self._set_fail(req, cr)
                raise
            except _CRASHES as exc:
                self._set_fail(req, cr)
                self.logger.exception("Found panic. Err: %s", exc)
                return Result(requeue=True, requeue_after=PANIC_REQUEUE_AFTER)
            except Exception as exc:
                self._set_fail(req, cr)
                raise CodedError(UNKNOWN_ERROR_CODE, "Unknown error", exc) from exc
        if result.requeue:
            self.logger.info("[%s] Reconcile requeue", req)
        else:
            self.logger.info("[%s] Reconcile done", req)
        return result

    def service_should_be_deleted(
        self,
        req: Request,
        deployment: Mapping[str, Any] | None,
        service_name: str,
        service_selector: str,
    ) -> bool:
        """True when the service points at a missing deployment or at a mesh router."""
        if deployment is None:
            self.logger.info(
                "[%s] Mesh router %s already deleted. Delete service %s",
                req, service_selector, service_name,
            )
            return True
        labels = (deployment.get("metadata") or {}).get("labels") or {}
        if labels.get(self.facade_gateway_label) == "true" and labels.get(
            self.mesh_router_label
        ) == "true":
            self.logger.info("[%s] Found mesh router. Delete service %s", req, service_name)
            return True
        return False

    def _set_fail(self, req: Request, cr: MeshGateway | None) -> None:
        try:
            self.status_updater.set_fail(cr)
        except Exception as exc:
            self.logger.error("[%s] Can not update status on CR. Error: %s", req, exc)

    def _reconcile(self, req: Request, cr: MeshGateway | None) -> Result:
        self.cleaner.delete_not_used_mesh_routers(req)
        if cr is None:
            self._delete_facade_service(req)
            return Result()
        if not self.ready_service.is_updating_phase(req, cr):
            self.status_updater.set_updating(cr)
        self._apply_facade_service(req, cr)
        if isinstance(cr, FacadeService):
            return Result()
        return self.ready_service.check_deployment_ready(req, cr)

    # Deletion

    def _delete_facade_service(self, req: Request) -> None:
        self.logger.info("[%s] Start delete facade service", req)
        gateway_name = req.name + self.settings.gateway_suffix
        self._delete_service(req, gateway_name)
        self._delete_facade_gateway(req, gateway_name)
        self.ingress_client.delete_orphaned(req)
        self.control_plane_client.drop_gateway(req.name)
        self.logger.info("[%s] Facade service deleted", req)

    def _delete_service(self, req: Request, gateway_name: str) -> None:
        try:
            service = self.client.get("Service", req.namespace, req.name)
        except NotFoundError:
            self.logger.debug("[%s] Facade service %s not found", req, req.name)
            return
        except Exception as exc:
            raise CodedError(
                UNEXPECTED_KUBERNETES_ERROR, f"Failed to get service {req.name}", exc
            ) from exc

        selector = ((service.get("spec") or {}).get("selector") or {}).get("app", "")
        self.logger.info(
            "[%s] Facade service selector.app '%s'. Gateway name: '%s'",
            req, selector, gateway_name,
        )
        if selector == gateway_name:
            self._delete_service_object(req, service)
            return

        self.logger.info("[%s] Try to find mesh router for service", req)
        deployment = self.deployments_client.get(req, selector)
        service_name = (service.get("metadata") or {}).get("name", "")
        if self.service_should_be_deleted(req, deployment, service_name, selector):
            self._delete_service_object(req, service)
        else:
            self.logger.info("[%s] Found service %s but it is not mesh router", req, selector)

    def _delete_service_object(self, req: Request, service: Any) -> None:
        try:
            self.client.delete(service)
        except Exception as exc:
            raise CodedError(
                UNEXPECTED_KUBERNETES_ERROR, f"Failed to delete service {req.name}", exc
            ) from exc

    def _delete_facade_gateway(self, req: Request, name: str) -> None:
        self.logger.info("[%s] Start delete facade gateway %s", req, name)
        if not self.deployments_client.is_facade_gateway(req, name):
            return
        self.deployments_client.delete(req, name)
        self.config_map_client.delete(req, name + MONITORING_CONFIG_SUFFIX)
        self.logger.info("[%s] Delete PodMonitor %s", req, name)
        self.pod_monitor_client.delete(req, short_name(name, POD_MONITOR_SUFFIX))
        self.hpa_client.delete(req, name)
        self.logger.info("[%s] Facade gateway %s deleted", req, name)

    # Creation and update

    def _apply_facade_service(self, req: Request, cr: MeshGateway) -> None:
        self.logger.info("[%s] Start apply facade service", req)
        service_name = _gateway_service_name(req.name, cr)
        if _has_gateway(cr):
            with self.named_lock.hold(cr.spec.gateway):
                self._apply_gateway(req, cr, service_name, cr.spec.gateway, True)
        else:
            gateway_name = req.name + self.settings.gateway_suffix
            self._apply_gateway(req, cr, service_name, gateway_name, False)

    def _apply_gateway(
        self,
        req: Request,
        cr: MeshGateway,
        service_name: str,
        deployment_name: str,
        virtual_service_mode: bool,
    ) -> None:
        self.logger.info("[%s] Virtual service mode: %s", req, virtual_service_mode)
        self.control_plane_client.register_gateway(service_name, cr)

        try:
            image = self.config_map_client.get_gateway_image(req)
        except Exception as exc:
            raise CodedError(GATEWAY_IMAGE_ERROR, "gateway image is empty", exc) from exc
        if not image or image == "null":
            raise CodedError(GATEWAY_IMAGE_ERROR, "gateway image is empty")
        self.logger.info("[%s] frontend gateway image: %s", req, image)

        if virtual_service_mode:
            self._apply_mesh_router(req, deployment_name, image, cr)
            self._delete_facade_gateway(req, req.name + self.settings.gateway_suffix)
        else:
            self._apply_facade_gateway(req, deployment_name, image, cr)

        self._apply_ingresses(req, service_name, cr)

    def _apply_ingresses(self, req: Request, service_name: str, cr: MeshGateway) -> None:
        self.ingress_client.delete_orphaned(req)
        if cr.effective_gateway_type() != GatewayType.INGRESS:
            return
        for ingress_spec in cr.spec.ingresses:
            template = self.ingress_builder.build_ingress_template(ingress_spec, cr, service_name)
            self.logger.info("[%s] Applying ingress %s", req, ingress_spec)
            self.ingress_client.apply(req, template)

    def _is_plain_mesh(self, req: Request, cr: MeshGateway) -> bool:
        # The internal gateway is a mesh gateway too, but keeps its own service name.
        return (
            cr.effective_gateway_type() == GatewayType.MESH
            and req.name != INTERNAL_GATEWAY_SERVICE
        )

    def _apply_mesh_router(
        self, req: Request, gateway_name: str, image: str, cr: MeshGateway
    ) -> None:
        self.logger.info("[%s] Apply virtual service %s", req, req.name)
        self._apply_service(req, req.name, gateway_name, cr)
        if not self.cr_priority_service.update_available(req, gateway_name, cr):
            return

        plain_mesh = self._is_plain_mesh(req, cr)
        service_name = gateway_name if plain_mesh else req.name
        self._apply_deployment(req, service_name, gateway_name, image, cr, True)
        if plain_mesh:
            self.logger.info("[%s] Apply gateway service %s", req, gateway_name)
            self._apply_service(req, gateway_name, gateway_name, cr)
        self._apply_monitoring_resources(req, gateway_name, cr)

    def _apply_facade_gateway(
        self, req: Request, gateway_name: str, image: str, cr: MeshGateway
    ) -> None:
        self._apply_service(req, req.name, gateway_name, cr)
        self._apply_deployment(req, req.name, gateway_name, image, cr, False)
        self._apply_monitoring_resources(req, gateway_name, cr)

    def _apply_monitoring_resources(
        self, req: Request, gateway_name: str, cr: MeshGateway
    ) -> None:
        self.config_map_client.apply(
            req,
            _ConfigMapTemplate(
                name=gateway_name + MONITORING_CONFIG_SUFFIX,
                namespace=req.namespace,
                part_of_label=cr.labels.get(PART_OF_LABEL, ""),
                owner=_Owner.of(cr),
            ),
        )
        self.hpa_client.create(req, self.hpa_builder.build(req, cr, gateway_name))
        if self.settings.monitoring_enabled:
            name = short_name(gateway_name, POD_MONITOR_SUFFIX)
            self.pod_monitor_client.create(
                req,
                _PodMonitorTemplate(
                    name=name,
                    namespace=req.namespace,
                    name_label=name,
                    part_of_label=cr.labels.get(PART_OF_LABEL, ""),
                    name_selector=gateway_name,
                    owner=_Owner.of(cr),
                ),
            )

    def _apply_service(
        self, req: Request, name: str, gateway_name: str, cr: MeshGateway
    ) -> None:
        self.service_client.apply(
            req,
            _ServiceTemplate(
                name=name,
                namespace=req.namespace,
                labels=cr.labels,
                name_selector=gateway_name,
                port=cr.spec.port,
                gateway_ports=cr.spec.gateway_ports,
                owner=_Owner.of(cr),
            ),
        )

    def _apply_deployment(
        self,
        req: Request,
        service_name: str,
        gateway_name: str,
        image: str,
        cr: MeshGateway,
        mesh_router: bool,
    ) -> None:
        settings = self.settings
        instance_label = instance_label_value(
            gateway_name, req.namespace, settings.labels_delimiter
        )
        self.logger.info("[%s] Instance label value: %s", req, instance_label)
        replicas = resolve_replicas(cr.spec.replicas, settings.default_replicas)
        self.logger.info("[%s] Calculated replicas: %s", req, replicas)
        concurrency = resolve_concurrency(
            cr.spec.env.facade_gateway_concurrency, settings.default_concurrency
        )
        self.logger.info("[%s] Calculated facade gateway concurrency: %s", req, concurrency)

        last_applied = LastAppliedCr(api_version=cr.api_version, kind=cr.kind, name=cr.name)
        template = _DeploymentTemplate(
            service_name=service_name,
            gateway_name=gateway_name,
            namespace=req.namespace,
            cr_labels=cr.labels,
            instance_label=instance_label,
            artifact_description_version=settings.artifact_descriptor_version,
            image_name=image,
            env=cr.spec.env,
            tracing_enabled=settings.tracing_enabled,
            tracing_host=settings.tracing_host,
            ip_stack=settings.ip_stack,
            ip_bind=settings.ip_bind,
            mesh_router=mesh_router,
            replicas=replicas,
            cloud_topology_key=settings.cloud_topology_key,
            xds_cluster_host=settings.xds_cluster_host,
            xds_cluster_port=settings.xds_cluster_port,
            tls_secret_path=settings.tls_secret_path,
            tls_password_secret_name=settings.tls_password_secret_name,
            tls_password_key=settings.tls_password_key,
            master_cr=cr.name if cr.spec.master_configuration else "",
            owner=_Owner.of(cr),
            gateway_ports=cr.spec.gateway_ports,
            read_only_container_enabled=settings.read_only_container_enabled,
            gw_termination_grace_period_s=settings.gateway_termination_grace_period_s,
            envoy_concurrency=concurrency,
            hosted_by=cr.labels.get(self.hosted_by_label, ""),
            last_applied_cr=last_applied.to_json(),
        )
        self.deployments_client.apply(req, template)