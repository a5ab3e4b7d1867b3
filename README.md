# facade-operator

Reconciliation logic for facade and mesh gateways running in a cluster.
Given a gateway custom resource, the package decides what it turns into —
a service, a router deployment, a monitoring config map, an autoscaler, a
pod monitor and ingresses — and hands each piece to a client object you
supply. It also registers gateways with the control plane over HTTP and
cleans up mesh routers that no custom resource refers to any more.

## Installation

```
pip install .
```

The tests need the `test` extra:

```
pip install ".[test]"
pytest
```

## Modules

- `facade_operator.api` — the custom resource model. `FacadeService`
  (`qubership.org/v1alpha`, `priority` 0) and `Gateway`
  (`core.qubership.org/v1`, `priority` 1, with a `GatewayStatus`) are both
  `MeshGateway` dataclasses holding an `ObjectMeta` and a
  `FacadeServiceSpec`. `GatewayType` is `egress`, `ingress` or `mesh`;
  `FacadeServiceSpec.resolved_gateway_type()` treats an empty or `"null"`
  type as `mesh`, and `MeshGateway.effective_gateway_type()` also treats a
  resource named `egress-gateway` as egress. `Phase` lists status phases.
  `Request` names the resource being reconciled (`namespace`, `name`) and
  `Result` says whether, and after how long, to requeue.
- `facade_operator.errors` — `CodedError` carries an `ErrorCode` (for
  example `UNEXPECTED_KUBERNETES_ERROR`, code `CORE-MESH-OP-2001`), a
  `detail` and a `cause`; `to_log_format()` renders all three on one line.
  `ExpectedError` marks races that are retried quietly. `ApiError`,
  `NotFoundError` and `ConflictError` are the cluster API failures a
  `KubeClient` raises.
- `facade_operator.predicates` — event filters over `UpdateEvent`,
  `CreateEvent`, `DeleteEvent` and `GenericEvent`. `ignore_update_status`
  passes an update unless both objects are present with the same
  `generation`; `ObjectNamePredicate(name)` passes events about one name.
- `facade_operator.monitoring` — `PodMonitor`, `PodMonitorSpec`,
  `PodMetricsEndpoint` and `NamespaceSelector`; `PodMonitor.to_dict()`
  returns a `monitoring.coreos.com/v1` manifest with empty fields left out.
- `facade_operator.restclient` — `SimpleRestClient.do_request(method, url,
  body)` sends a request through `requests`, adding headers from an optional
  `header_provider` and an `Authorization: Bearer …` header when the
  optional `token_provider` returns a token; it returns a `Response` with
  `status_code` and raw `body`. `ControlPlaneClient` posts a
  `GatewayDeclaration` to `/api/v3/gateways/specs` in `register_gateway`
  and deletes it in `drop_gateway`. Any status other than 200 raises a
  `CodedError` with `CONTROL_PLANE_ERROR`, except a 400 on drop, for which
  `drop_gateway` returns `False` (the gateway may still have routes).
- `facade_operator.crclient` — `KubeClient` is the abstract cluster API
  (`get`, `list`, `update`, `delete`). `CommonCRClient` looks up both kinds
  of gateway resource through it: `find_by_names`, `find_by_fields`,
  `get_all`, `is_cr_exist_by_name` and `get_by_last_applied_cr`.
  `LastAppliedCr` records which resource last configured a router
  deployment; `parse_last_applied_cr` reads it back from JSON.
- `facade_operator.settings` — `OperatorSettings`, read from an
  environment mapping by `load_settings` (variables such as
  `FACADE_GATEWAY_REPLICAS`, `FACADE_GATEWAY_CONCURRENCY`,
  `MONITORING_ENABLED`, `TRACING_ENABLED`, `IP_STACK`, `LABELS_DELIMITER`,
  `FACADE_GATEWAY_TERMINATION_GRACE_PERIOD_S`). `resolve_replicas` and
  `resolve_concurrency` turn integer or string CR fields into numbers,
  falling back to a default; `short_name` and `instance_label_value` build
  names cut to 63 characters.
- `facade_operator.router_cleanup` — `MeshRouterCleaner` deletes mesh
  routers that no resource's `spec.gateway` points at (service, deployment,
  monitoring config map, pod monitor, autoscaler), drops the master-CR label
  where the master resource is gone, and marks a deployment's last-applied
  resource as deleted when it no longer exists. `master_cr_of` reads the
  master-CR label from a deployment or its pod template.
- `facade_operator.reconciler` — `FacadeCommonReconciler.reconcile(req,
  cr)` applies everything for a resource, or deletes it when `cr` is
  `None`, while holding a `NamedLock` for the request name (and for the
  shared gateway name). Expected errors give a requeue; coded errors mark
  the resource failed and are re-raised; other failures are wrapped in an
  `UNKNOWN_ERROR_CODE` error; lookup, attribute and type errors give a
  requeue after 5 seconds.
- `facade_operator.controllers` — `FacadeServiceReconciler` and
  `GatewayReconciler` fetch the resource of their kind through the base
  reconciler's `KubeClient` (a missing one is passed on as `None`) and call
  `FacadeCommonReconciler.reconcile`.
- `facade_operator.configmap_controller` — `ConfigMapReconciler.reconcile`
  rolls the current gateway image out to every deployment labelled as a
  facade gateway, requeueing when an update hits a conflict.
- `facade_operator.logformat` — `ContextFormatter`, a `logging.Formatter`
  that writes lines such as
  `[2023-02-03T04:05:06.000] [DEBUG] [request_id=-] [tenant_id=-] [thread=-] [class=setup] message {key=value}`.
  Context is added with `add`, or per record with
  `extra={"context": {...}}`.

## Example

```python
from facade_operator.api import FacadeService, FacadeServiceSpec, ObjectMeta, GatewayType

cr = FacadeService(
    metadata=ObjectMeta(name="public-gateway-service", namespace="demo"),
    spec=FacadeServiceSpec(gateway="public-gateway-service", gateway_type="ingress"),
)
print(cr.api_version)                                       # qubership.org/v1alpha
print(cr.effective_gateway_type() == GatewayType.INGRESS)   # True
```

## Supplying the cluster side

The reconcilers take their collaborators as constructor arguments and call
plain methods on them. `FacadeCommonReconciler` expects, among others:

- `service_client.apply(req, template)` / `.delete(req, name)`
- `deployments_client.get`, `.apply`, `.delete`, `.is_facade_gateway`,
  `.get_mesh_router_deployments`, `.delete_master_cr_label`,
  `.set_last_applied_cr`
- `config_map_client.get_gateway_image(req)`, `.apply`, `.delete`
- `pod_monitor_client.create` / `.delete`, `hpa_client.create` / `.delete`
- `ingress_client.delete_orphaned(req)` / `.apply(req, template)` and
  `ingress_builder.build_ingress_template(spec, cr, service_name)`
- `control_plane_client.register_gateway` / `.drop_gateway`
- `status_updater.set_fail(cr)` / `.set_updating(cr)`,
  `ready_service.is_updating_phase` / `.check_deployment_ready`,
  `cr_priority_service.update_available`, `hpa_builder.build`

Deployments and services fetched from the cluster are handled as manifest
dictionaries; what the reconciler passes to `apply` and `create` are
dataclasses describing the desired object.

## What this package does not do

It contains no cluster client: there is no `KubeClient` implementation and
no implementations of the service, deployment, config map, pod monitor,
autoscaler, ingress, status or readiness clients listed above, nor code that
renders the described objects into full manifests. It has no controller
manager, watch loop, leader election, health or metrics server, and no
command to start an operator. It is the decision-making part of one, to be
driven by code that provides those pieces.