"""Operator settings and the rules for deriving gateway names and numbers."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

MONITORING_CONFIG_SUFFIX = ".monitoring-config"
POD_MONITOR_SUFFIX = "-pod-monitor"
GATEWAY_SUFFIX = "-gateway"
MAX_NAME_LENGTH = 63

LABEL_PATTERN = re.compile(r"(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?")

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_logger = logging.getLogger("FacadeReconciler")


def _atoi(text: str) -> int | None:
    """Parse a strict decimal integer; None when the text is not one."""
    if not _INT_PATTERN.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def _int32(value: int) -> int:
    return ((value + 2**31) % 2**32) - 2**31


def _parse_bool(text: str | None, default: bool) -> bool:
    if text is None:
        return default
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


def resolve_replicas(value: Any, default: int) -> int:
    """Replica count from a CR field that may hold an integer or a string."""
    if value is None:
        return default
    if isinstance(value, bool):
        _logger.warning(
            "Not supported value for replica %s. Using default value %s",
            type(value).__name__, default,
        )
        return default
    if isinstance(value, int):
        replicas = _int32(value)
        return default if replicas == 0 else replicas
    if isinstance(value, str):
        parsed = _atoi(value)
        return default if parsed is None else _int32(parsed)
    _logger.warning(
        "Not supported value for replica %s. Using default value %s",
        type(value).__name__, default,
    )
    return default


def resolve_concurrency(value: Any, default: int) -> int:
    """Envoy concurrency from a CR field that may hold an integer or a string."""
    if value is None or isinstance(value, bool) or not isinstance(value, (int, str)):
        _logger.warning(
            "Not supported value for FacadeGatewayConcurrency %s. Using default value %s",
            type(value).__name__, default,
        )
        return default
    if isinstance(value, int):
        return default if value <= 0 else value
    parsed = _atoi(value)
    return default if parsed is None else parsed


def short_name(entity_name: str, suffix: str) -> str:
    """Append ``suffix``, truncating the name so the result fits 63 characters."""
    if len(entity_name) + len(suffix) > MAX_NAME_LENGTH:
        if len(suffix) > MAX_NAME_LENGTH:
            raise ValueError(f"suffix {suffix!r} is longer than {MAX_NAME_LENGTH} characters")
        return entity_name[: MAX_NAME_LENGTH - len(suffix)] + suffix
    return entity_name + suffix


def instance_label_value(entity_name: str, suffix: str, delimiter: str) -> str:
    """A valid label value built from the entity name and suffix."""
    label = short_name(entity_name, delimiter + suffix)
    match = LABEL_PATTERN.match(label)
    return match.group(0) if match else ""


@dataclass(frozen=True)
class OperatorSettings:
    """Deployment-wide settings the operator reads from its environment."""

    default_facade_gateway_replicas: str = "1"
    default_facade_gateway_concurrency: str = "0"
    monitoring_enabled: bool = False
    tracing_enabled: str = "false"
    tracing_host: str = ""
    ip_stack: str = "v4"
    ip_bind: str = "0.0.0.0"
    artifact_descriptor_version: str = ""
    xds_cluster_host: str = ""
    xds_cluster_port: str = ""
    tls_secret_path: str = ""
    tls_password_secret_name: str = ""
    tls_password_key: str = ""
    cloud_topology_key: str = ""
    read_only_container_enabled: bool = False
    gateway_termination_grace_period_s: int = 60
    labels_delimiter: str = "-"
    gateway_suffix: str = GATEWAY_SUFFIX

    @property
    def default_replicas(self) -> int:
        parsed = _atoi(self.default_facade_gateway_replicas)
        return 1 if parsed is None else _int32(parsed)

    @property
    def default_concurrency(self) -> int:
        parsed = _atoi(self.default_facade_gateway_concurrency)
        return 0 if parsed is None else parsed


def load_settings(environ: Mapping[str, str] | None = None) -> OperatorSettings:
    """Read the settings from ``environ`` (the process environment by default)."""
    env = os.environ if environ is None else environ
    base = OperatorSettings()
    grace_text = env.get("FACADE_GATEWAY_TERMINATION_GRACE_PERIOD_S")
    grace = _atoi(grace_text) if grace_text is not None else None
    return OperatorSettings(
        default_facade_gateway_replicas=env.get(
            "FACADE_GATEWAY_REPLICAS", base.default_facade_gateway_replicas
        ),
        default_facade_gateway_concurrency=env.get(
            "FACADE_GATEWAY_CONCURRENCY", base.default_facade_gateway_concurrency
        ),
        monitoring_enabled=env.get("MONITORING_ENABLED", "false") == "true",
        tracing_enabled=env.get("TRACING_ENABLED", base.tracing_enabled),
        tracing_host=env.get("TRACING_HOST", base.tracing_host),
        ip_stack=env.get("IP_STACK", base.ip_stack),
        ip_bind=env.get("IP_BIND", base.ip_bind),
        artifact_descriptor_version=env.get(
            "ARTIFACT_DESCRIPTOR_VERSION", base.artifact_descriptor_version
        ),
        xds_cluster_host=env.get("XDS_CLUSTER_HOST", base.xds_cluster_host),
        xds_cluster_port=env.get("XDS_CLUSTER_PORT", base.xds_cluster_port),
        tls_secret_path=env.get("TLS_SECRET_PATH", base.tls_secret_path),
        tls_password_secret_name=env.get(
            "TLS_PASSWORD_SECRET_NAME", base.tls_password_secret_name
        ),
        tls_password_key=env.get("TLS_PASSWORD_KEY", base.tls_password_key),
        cloud_topology_key=env.get("CLOUD_TOPOLOGY_KEY", base.cloud_topology_key),
        read_only_container_enabled=_parse_bool(
            env.get("READONLY_CONTAINER_FILE_SYSTEM_ENABLED"), False
        ),
        gateway_termination_grace_period_s=(
            base.gateway_termination_grace_period_s if grace is None else grace
        ),
        labels_delimiter=env.get("LABELS_DELIMITER", base.labels_delimiter),
        gateway_suffix=base.gateway_suffix,
    )