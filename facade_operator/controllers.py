"""Entry points that reconcile FacadeService and Gateway custom resources."""

from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar

from .api import FacadeService, Gateway, MeshGateway, Request, Result
from .errors import UNEXPECTED_KUBERNETES_ERROR, CodedError, NotFoundError
from .reconciler import FacadeCommonReconciler

_request_id: ContextVar[str] = ContextVar("request_id", default="")

_logger = logging.getLogger("FacadeReconciler")


class _CRReconciler:
    """Loads one kind of gateway CR and hands it to the shared reconciler."""

    cr_type: type[MeshGateway]
    description: str
    kind_label: str

    def __init__(self, base: FacadeCommonReconciler) -> None:
        self.base = base

    def _reconcile(self, req: Request) -> Result:
        token = _request_id.set(uuid.uuid4().hex)
        try:
            _logger.info("Start processing %s", self.kind_label)
            cr = self._get_cr(req)
            return self.base.reconcile(req, cr)
        finally:
            _request_id.reset(token)

    def _get_cr(self, req: Request) -> MeshGateway | None:
        try:
            return self.base.client.get(self.cr_type, req.namespace, req.name)
        except NotFoundError:
            _logger.info("[%s] mesh gateway CR not found", req)
            return None
        except Exception as exc:
            raise CodedError(
                UNEXPECTED_KUBERNETES_ERROR, f"Failed to get {self.description}", exc
            ) from exc


class FacadeServiceReconciler(_CRReconciler):
    """Reconciles ``FacadeService`` resources of ``qubership.org/v1alpha``."""

    cr_type = FacadeService
    description = "facade CR"
    kind_label = "kind=FacadeService apiVersion=qubership.org/v1alpha"

    def reconcile(self, req: Request) -> Result:
        """Reconcile the FacadeService named by ``req``; a missing CR means it was deleted."""
        return self._reconcile(req)


class GatewayReconciler(_CRReconciler):
    """Reconciles ``Gateway`` resources of ``core.qubership.org/v1``."""

    cr_type = Gateway
    description = "mesh gateway CR"
    kind_label = "kind=Gateway apiVersion=core.qubership.org/v1"

    def reconcile(self, req: Request) -> Result:
        """Reconcile the Gateway named by ``req``; a missing CR means it was deleted."""
        return self._reconcile(req)