"""Synthesise the runtime environment variables of the application container.

Besides the variables declared in the image labels, every container learns
about itself through `RP_*` variables: its name, version, endpoints, secrets
and, if the service discovery module is enabled, the addresses of external
services.

"""
from typing import Dict, List, Set

import rpk8s.defaults
from rpk8s.manifest_utilities import env_var_name, secret_env_name, service_name
from rpk8s.models import (
    Annotations,
    ConfigMapEnvironmentVariable,
    Endpoint,
    EnvironmentVariable,
    FieldRefEnvironmentVariable,
    K8sEnvVar,
    LiteralEnvironmentVariable,
    Secret,
    SecretEnvironmentVariable,
    SecretKeyRefEnvironmentVariable,
    Version,
)
from rpk8s.ports import assign_ports

Envs = Dict[str, EnvironmentVariable]


def literal(value: str) -> LiteralEnvironmentVariable:
    return LiteralEnvironmentVariable(value=value)


def namespace_envs(namespace: str | None) -> Envs:
    return {"RP_NAMESPACE": literal(namespace)} if namespace else {}


def app_name_envs(app_name: str | None) -> Envs:
    return {"RP_APP_NAME": literal(app_name)} if app_name else {}


def app_type_envs(app_type: str | None, modules: Set[str]) -> Envs:
    out: Envs = {}
    if app_type:
        out["RP_APP_TYPE"] = literal(app_type)
    if modules:
        out["RP_MODULES"] = literal(str.join(",", sorted(modules)))
    return out


def version_envs(version: Version | None) -> Envs:
    if version is None:
        return {}

    out: Envs = {
        "RP_VERSION": literal(version.version),
        "RP_VERSION_MAJOR": literal(str(version.major)),
        "RP_VERSION_MINOR": literal(str(version.minor)),
        "RP_VERSION_PATCH": literal(str(version.patch)),
    }
    if version.patchLabel:
        out["RP_VERSION_PATCH_LABEL"] = literal(version.patchLabel)
    return out


def endpoint_envs(endpoints: Dict[str, Endpoint]) -> Envs:
    """Return the host and port variables of all endpoints.

    Each endpoint is reachable via its sanitised name and its index, eg
    `RP_ENDPOINT_HTTP_PORT` and `RP_ENDPOINT_0_PORT`.

    """
    out: Envs = {"RP_ENDPOINTS_COUNT": literal(str(len(endpoints)))}
    if not endpoints:
        return out

    ordered = sorted(endpoints.values(), key=lambda ep: ep.index)
    names = [env_var_name(ep.name) for ep in ordered]
    out["RP_ENDPOINTS"] = literal(str.join(",", names))

    host = FieldRefEnvironmentVariable(fieldPath="status.podIP")
    for assigned in assign_ports(endpoints):
        port = literal(str(assigned.port))
        for key in (env_var_name(assigned.endpoint.name), assigned.endpoint.index):
            out[f"RP_ENDPOINT_{key}_HOST"] = host
            out[f"RP_ENDPOINT_{key}_BIND_HOST"] = host
            out[f"RP_ENDPOINT_{key}_PORT"] = port
            out[f"RP_ENDPOINT_{key}_BIND_PORT"] = port
    return out


def secret_envs(secrets: List[Secret]) -> Envs:
    # The secret store entry `namespace/name` is the K8s Secret `namespace`
    # with key `name`.
    out: Envs = {}
    for secret in secrets:
        out[secret_env_name(secret.namespace, secret.name)] = (
            SecretKeyRefEnvironmentVariable(
                secretNamespace=secret.namespace,
                secretName=secret.namespace,
                key=secret.name,
            )
        )
    return out


def external_services_envs(
    modules: Set[str], external_services: Dict[str, List[str]]
) -> Envs:
    """Return the JVM arguments that list the external service addresses."""
    if rpk8s.defaults.SERVICE_DISCOVERY_MODULE not in modules:
        return {}

    args = []
    for name in sorted(external_services):
        # Service names use the `$service/$endpoint` convention and may contain
        # underscores, eg `cas_native`.
        sname = service_name(name, extra_chars="/_")
        for i, address in enumerate(external_services[name]):
            key = f"rp.service-discovery.external-service-addresses.{sname}.{i}"
            args.append(f"-D{key}={address}")
    return {"RP_JAVA_OPTS": literal(str.join(" ", args))}


def rp_envs(annotations: Annotations, external_services: Dict[str, List[str]]) -> Envs:
    """Return all the environment variables the platform injects."""
    return (
        rpk8s.defaults.pod_envs()
        | namespace_envs(annotations.namespace)
        | app_name_envs(annotations.appName)
        | version_envs(annotations.version)
        | app_type_envs(annotations.appType, annotations.modules)
        | endpoint_envs(annotations.endpoints)
        | secret_envs(annotations.secrets)
        | external_services_envs(annotations.modules, external_services)
    )


def k8s_env_var(name: str, env: EnvironmentVariable) -> K8sEnvVar:
    """Return the K8s container representation of a single variable."""
    if isinstance(env, LiteralEnvironmentVariable):
        return K8sEnvVar(name=name, value=env.value)
    if isinstance(env, SecretEnvironmentVariable):
        ref = dict(name=env.secretValue, key=name)
        return K8sEnvVar(name=name, valueFrom={"secretKeyRef": ref})
    if isinstance(env, ConfigMapEnvironmentVariable):
        ref = dict(name=env.mapName, key=env.key)
        return K8sEnvVar(name=name, valueFrom={"configMapKeyRef": ref})
    if isinstance(env, FieldRefEnvironmentVariable):
        ref = dict(fieldPath=env.fieldPath)
        return K8sEnvVar(name=name, valueFrom={"fieldRef": ref})
    if isinstance(env, SecretKeyRefEnvironmentVariable):
        ref = dict(name=env.secretName, key=env.key)
        return K8sEnvVar(name=name, valueFrom={"secretKeyRef": ref})
    raise TypeError(f"unsupported environment variable {env!r}")


def container_env(
    annotations: Annotations, external_services: Dict[str, List[str]]
) -> List[K8sEnvVar]:
    """Return the declared and injected variables sorted by name.

    Injected variables replace declared ones with the same name.

    """
    envs = annotations.environmentVariables | rp_envs(annotations, external_services)
    return [k8s_env_var(name, envs[name]) for name in sorted(envs)]
