from typing import Dict

from rpk8s.models import (
    EnvironmentVariable,
    FieldRefEnvironmentVariable,
    LiteralEnvironmentVariable,
)

# Module that makes the app resolve services outside the cluster.
SERVICE_DISCOVERY_MODULE = "service-discovery"

# Convenience: these environment variables are injected into every Pod.
RESERVED_POD_ENVS = (
    "RP_PLATFORM",
    "RP_KUBERNETES_POD_NAME",
    "RP_KUBERNETES_POD_IP",
)


def pod_envs() -> Dict[str, EnvironmentVariable]:
    """Return the platform env vars, some of them sourced from the Pod itself."""
    return {
        "RP_PLATFORM": LiteralEnvironmentVariable(value="kubernetes"),
        "RP_KUBERNETES_POD_NAME": FieldRefEnvironmentVariable(
            fieldPath="metadata.name"
        ),
        "RP_KUBERNETES_POD_IP": FieldRefEnvironmentVariable(fieldPath="status.podIP"),
    }


def container_security_context(privileged: bool) -> dict | None:
    """Return the security context for the app container, if it needs one."""
    return dict(privileged=True) if privileged else None
