"""Custom resource types handled by the operator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

EGRESS_GATEWAY = "egress-gateway"
PUBLIC_GATEWAY_SERVICE = "public-gateway-service"
PRIVATE_GATEWAY_SERVICE = "private-gateway-service"
INTERNAL_GATEWAY_SERVICE = "internal-gateway-service"
INGRESS_CLASS_NAME = "bg.mesh.qubership.org"


class GatewayType(str, Enum):
    """Kind of gateway described by a custom resource."""

    EGRESS = "egress"
    INGRESS = "ingress"
    MESH = "mesh"


class Phase(str, Enum):
    """Lifecycle phase reported in a gateway's status."""

    UPDATED = "Updated"
    BACKING_OFF = "BackingOff"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    WAITING_FOR_DEPENDENCY = "WaitingForDependency"
    UPDATING = "Updating"
    UNKNOWN = "Unknown"


@dataclass
class GatewayPorts:
    port: int
    name: str = ""
    protocol: str = ""


@dataclass
class IngressSpec:
    hostname: str = ""
    is_grpc: bool = False
    gateway_port: int = 0


@dataclass
class FacadeServiceEnv:
    facade_gateway_cpu_limit: Any = None
    facade_gateway_cpu_request: Any = None
    facade_gateway_memory_limit: str = ""
    facade_gateway_memory_request: str = ""
    facade_gateway_concurrency: Any = None


@dataclass
class HPAPolicy:
    type: str = ""
    value: Any = None
    period_seconds: Any = None


@dataclass
class HPABehavior:
    stabilization_window_seconds: Any = None
    select_policy: str = ""
    policies: list[HPAPolicy] = field(default_factory=list)


@dataclass
class HPA:
    min_replicas: Any = None
    max_replicas: Any = None
    average_cpu_utilization: Any = None
    scale_up_behavior: HPABehavior = field(default_factory=HPABehavior)
    scale_down_behavior: HPABehavior = field(default_factory=HPABehavior)


@dataclass
class FacadeServiceSpec:
    env: FacadeServiceEnv = field(default_factory=FacadeServiceEnv)
    replicas: Any = None
    gateway: str = ""
    port: int = 0
    gateway_ports: list[GatewayPorts] = field(default_factory=list)
    master_configuration: bool = False
    gateway_type: str = ""
    allow_virtual_hosts: bool | None = None
    ingresses: list[IngressSpec] = field(default_factory=list)
    hpa: HPA = field(default_factory=HPA)

    def resolved_gateway_type(self) -> GatewayType | str:
        """The declared gateway type, falling back to mesh when unset."""
        value = self.gateway_type
        if not value or value == "null":
            return GatewayType.MESH
        try:
            return GatewayType(value)
        except ValueError:
            return value


@dataclass
class ObjectMeta:
    name: str = ""
    namespace: str = ""
    uid: str = ""
    generation: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class MeshGateway:
    """Common shape of the gateway custom resources."""

    GROUP: ClassVar[str] = ""
    VERSION: ClassVar[str] = ""
    KIND: ClassVar[str] = ""
    priority: ClassVar[int] = 0

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: FacadeServiceSpec = field(default_factory=FacadeServiceSpec)
    api_version: str = ""
    kind: str = ""

    def __post_init__(self) -> None:
        if not self.api_version and self.GROUP:
            self.api_version = f"{self.GROUP}/{self.VERSION}"
        if not self.kind:
            self.kind = self.KIND

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def uid(self) -> str:
        return self.metadata.uid

    @property
    def generation(self) -> int:
        return self.metadata.generation

    @property
    def labels(self) -> dict[str, str]:
        return self.metadata.labels

    @property
    def annotations(self) -> dict[str, str]:
        return self.metadata.annotations

    def effective_gateway_type(self) -> GatewayType | str:
        """Gateway type, with the egress gateway recognised by its name."""
        if self.name == EGRESS_GATEWAY:
            return GatewayType.EGRESS
        return self.spec.resolved_gateway_type()


@dataclass
class FacadeService(MeshGateway):
    """The ``FacadeService`` resource of the ``qubership.org/v1alpha`` API."""

    GROUP: ClassVar[str] = "qubership.org"
    VERSION: ClassVar[str] = "v1alpha"
    KIND: ClassVar[str] = "FacadeService"
    priority: ClassVar[int] = 0


@dataclass
class GatewayStatus:
    observed_generation: int = 0
    phase: Phase | None = None


@dataclass
class Gateway(MeshGateway):
    """The ``Gateway`` resource of the ``core.qubership.org/v1`` API."""

    GROUP: ClassVar[str] = "core.qubership.org"
    VERSION: ClassVar[str] = "v1"
    KIND: ClassVar[str] = "Gateway"
    priority: ClassVar[int] = 1

    status: GatewayStatus = field(default_factory=GatewayStatus)


@dataclass(frozen=True)
class Request:
    """Identifies the object a reconcile call is about."""

    namespace: str
    name: str

    @property
    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"

    def __str__(self) -> str:
        return self.namespaced_name


@dataclass(frozen=True)
class Result:
    """Outcome of a reconcile call."""

    requeue: bool = False
    requeue_after: float = 0.0