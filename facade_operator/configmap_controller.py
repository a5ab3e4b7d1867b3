"""Keeps facade gateway deployments on the image named in the gateway config map."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .api import Request, Result
from .crclient import KubeClient
from .errors import (
    GATEWAY_IMAGE_ERROR,
    UNKNOWN_ERROR_CODE,
    UPDATE_IMAGE_UNEXPECTED_KUBERNETES_ERROR,
    CodedError,
    ConflictError,
    ExpectedError,
    NotFoundError,
)

DEFAULT_FACADE_GATEWAY_LABEL = "facadeGateway"


class _GatewayImageSource(Protocol):
    def get_gateway_image(self, req: Request) -> str: ...


def _containers(deployment: dict[str, Any]) -> list[dict[str, Any]]:
    return deployment["spec"]["template"]["spec"]["containers"]


def _name(deployment: dict[str, Any]) -> str:
    return deployment.get("metadata", {}).get("name", "")


class ConfigMapReconciler:
    """Rolls the gateway image out to every facade gateway deployment in a namespace."""

    def __init__(
        self,
        client: KubeClient,
        config_map_client: _GatewayImageSource,
        facade_gateway_label: str = DEFAULT_FACADE_GATEWAY_LABEL,
    ) -> None:
        self.client = client
        self.config_map_client = config_map_client
        self.facade_gateway_label = facade_gateway_label
        self.logger = logging.getLogger("ConfigMapReconciler")

    def reconcile(self, req: Request) -> Result:
        try:
            return self._reconcile(req)
        except ExpectedError:
            # Races between concurrent updates are retried quietly.
            return Result(requeue=True)
        except CodedError as exc:
            self.logger.error("[%s] %s", req, exc.to_log_format())
            raise
        except Exception as exc:
            raise CodedError(UNKNOWN_ERROR_CODE, "Unknown error", exc) from exc

    def _reconcile(self, req: Request) -> Result:
        self.logger.info("[%s] Start sync images", req)
        try:
            gateway_image = self.config_map_client.get_gateway_image(req)
        except Exception as exc:
            raise CodedError(GATEWAY_IMAGE_ERROR, "Failed to get image", exc) from exc

        try:
            deployments = self.client.list(
                "Deployment", req.namespace, labels={self.facade_gateway_label: "true"}
            )
        except NotFoundError:
            self.logger.debug("[%s] Facade gateways not found", req)
            return Result()
        except Exception as exc:
            raise CodedError(
                UPDATE_IMAGE_UNEXPECTED_KUBERNETES_ERROR,
                "Failed to get facade gateway deployments",
                exc,
            ) from exc

        if self._update_images(req, deployments, gateway_image):
            self.logger.debug("[%s] Conflict error found", req)
            raise ExpectedError()

        self.logger.info("[%s] Done sync images", req)
        return Result()

    def _update_images(
        self, req: Request, deployments: list[dict[str, Any]], gateway_image: str
    ) -> bool:
        """Update stale images; True when some update hit a conflict."""
        conflict = False
        for deployment in deployments:
            container = _containers(deployment)[0]
            old_image = container.get("image", "")
            if old_image == gateway_image:
                continue
            name = _name(deployment)
            self.logger.info(
                "[%s] Update image %s. Old image: %s. New image: %s",
                req, name, old_image, gateway_image,
            )
            container["image"] = gateway_image
            try:
                self.client.update(deployment)
            except ConflictError as exc:
                self.logger.debug("[%s] Can not update image on %s. Error: %s", req, name, exc)
                conflict = True
            except Exception as exc:
                raise CodedError(
                    UPDATE_IMAGE_UNEXPECTED_KUBERNETES_ERROR,
                    f"Failed to update Deployment: {name}",
                    exc,
                ) from exc
        return conflict