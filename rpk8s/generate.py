import logging
from typing import Dict, List, Tuple

import rpk8s.annotations
import rpk8s.defaults
from rpk8s.environment import container_env
from rpk8s.manifest_utilities import app_names, service_name
from rpk8s.models import (
    RESOURCE_TYPES,
    AnnotationOverrides,
    Annotations,
    Check,
    CommandCheck,
    CompilerConfig,
    ConfigurationError,
    Endpoint,
    GeneratedResource,
    HostPathVolume,
    HttpCheck,
    HttpEndpoint,
    K8sContainer,
    K8sContainerPort,
    K8sDeployment,
    K8sDeploymentSpec,
    K8sIngress,
    K8sMetadata,
    K8sNamespace,
    K8sPodSpec,
    K8sPodTemplate,
    K8sProbe,
    K8sProbeExec,
    K8sProbeHttp,
    K8sProbeTcp,
    K8sRequestLimit,
    K8sResourceQuantities,
    K8sService,
    K8sServicePort,
    K8sServiceSpec,
    K8sVolume,
    K8sVolumeMount,
    ResourceType,
    SecretVolume,
    TcpCheck,
    TcpEndpoint,
    UdpEndpoint,
    Volume,
)
from rpk8s.ports import assign_ports

logit = logging.getLogger("app")

# Every generator returns the resource, `None` if there is nothing to
# generate, or an error.
GeneratorResult = Tuple[GeneratedResource | None, ConfigurationError | None]


def dump(manifest) -> dict:
    """Return the JSON representation of a K8s model."""
    return manifest.model_dump(exclude_none=True, by_alias=True)


def config_error(rtype: ResourceType, missing: List[str]) -> ConfigurationError:
    fields = str.join(" and ", missing)
    msg = f"Unable to generate {rtype} resource: {fields} required"
    return ConfigurationError(resourceType=rtype, missing=missing, message=msg)


def missing_app_fields(annotations: Annotations) -> List[str]:
    """Return the names of the fields that Deployments and Services need."""
    missing = []
    if not (annotations.appName and service_name(annotations.appName)):
        missing.append("appName")
    if annotations.version is None:
        missing.append("version")
    return missing


def k8s_namespace(annotations: Annotations) -> str | None:
    """Return the sanitised namespace or `None` if the app does not specify one."""
    if not annotations.namespace:
        return None
    return service_name(annotations.namespace) or None


# ----------------------------------------------------------------------
# Container helpers.
# ----------------------------------------------------------------------
def probe_port(check: HttpCheck | TcpCheck) -> int | str:
    """Return the explicit port or else the name of the container port."""
    return check.port if check.port else service_name(check.serviceName)


def k8s_probe(check: Check | None) -> K8sProbe | None:
    if check is None:
        return None
    if isinstance(check, CommandCheck):
        return K8sProbe(exec=K8sProbeExec(command=check.command))
    if isinstance(check, TcpCheck):
        return K8sProbe(
            tcpSocket=K8sProbeTcp(port=probe_port(check)),
            periodSeconds=check.intervalSeconds,
        )
    if isinstance(check, HttpCheck):
        return K8sProbe(
            httpGet=K8sProbeHttp(path=check.path, port=probe_port(check)),
            periodSeconds=check.intervalSeconds,
        )
    raise TypeError(f"unsupported check {check!r}")


def container_ports(endpoints: Dict[str, Endpoint]) -> List[K8sContainerPort]:
    return [
        K8sContainerPort(containerPort=_.port, name=service_name(_.endpoint.name))
        for _ in assign_ports(endpoints)
    ]


def k8s_volume(name: str, volume: Volume) -> K8sVolume:
    if isinstance(volume, HostPathVolume):
        return K8sVolume(name=name, hostPath=dict(path=volume.hostPath))
    if isinstance(volume, SecretVolume):
        return K8sVolume(name=name, secret=dict(secretName=volume.secretName))
    raise TypeError(f"unsupported volume {volume!r}")


def pod_volumes(
    volumes: Dict[str, Volume],
) -> Tuple[List[K8sVolumeMount] | None, List[K8sVolume] | None]:
    """Return the container mounts and the Pod volumes, ordered by guest path."""
    if not volumes:
        return None, None

    mounts, k8s_volumes = [], []
    used: set = set()
    for guest_path in sorted(volumes):
        # Distinct guest paths may sanitise to the same name, eg `/a/b` and `/a-b`.
        base = service_name(guest_path) or "volume"
        name, suffix = base, 1
        while name in used:
            name = f"{base}-{suffix}"
            suffix += 1
        used.add(name)

        mounts.append(K8sVolumeMount(name=name, mountPath=guest_path))
        k8s_volumes.append(k8s_volume(name, volumes[guest_path]))
    return mounts, k8s_volumes


def container_resources(annotations: Annotations) -> K8sRequestLimit | None:
    """Return the CPU, memory and disk requirements of the container."""
    cpus, memory, disk = annotations.nrOfCpus, annotations.memory, annotations.diskSpace
    if cpus is None and memory is None and disk is None:
        return None

    requests = K8sResourceQuantities(
        cpu=None if cpus is None else f"{cpus:g}",
        memory=None if memory is None else str(memory),
        ephemeralStorage=None if disk is None else str(disk),
    )
    limits = None
    if memory is not None:
        limits = K8sResourceQuantities(memory=str(memory))
    return K8sRequestLimit(requests=requests, limits=limits)


# ----------------------------------------------------------------------
# Resource generators.
# ----------------------------------------------------------------------
def namespace_manifest(
    annotations: Annotations, cfg: CompilerConfig
) -> GeneratorResult:
    """Return the Namespace of the app, or `None` if it does not declare one."""
    name = k8s_namespace(annotations)
    if not name:
        return None, None

    manifest = K8sNamespace(
        apiVersion=cfg.namespace_api_version,
        metadata=K8sMetadata(name=name, labels={"name": name}),
    )
    res = GeneratedResource(
        resourceType="namespace", name=name, payload=dump(manifest)
    )
    return res, None


def deployment_manifest(
    annotations: Annotations, cfg: CompilerConfig
) -> GeneratorResult:
    """Produce the Deployment of the app.

    Rolling deployments replace the Pods of the one and only Deployment of the
    app. Canary and blue/green deployments instead create a new Deployment for
    each version and select its Pods via the `major.minor` version label.

    """
    missing = missing_app_fields(annotations)
    if missing:
        return None, config_error("deployment", missing)
    assert annotations.appName and annotations.version

    names = app_names(annotations.appName, annotations.version)
    if cfg.deployment_type == "rolling":
        name = names["app"]
        labels = {"app": names["app"]}
        match_labels = {"app": names["app"]}
    else:
        name = names["appVersion"]
        labels = names
        match_labels = {"appVersionMajorMinor": names["appVersionMajorMinor"]}

    mounts, volumes = pod_volumes(annotations.volumes)
    container = K8sContainer(
        name=names["app"],
        image=cfg.image,
        imagePullPolicy=cfg.image_pull_policy,
        env=container_env(annotations, cfg.external_services),
        ports=container_ports(annotations.endpoints),
        volumeMounts=mounts,
        resources=container_resources(annotations),
        securityContext=rpk8s.defaults.container_security_context(
            annotations.privileged
        ),
        readinessProbe=k8s_probe(annotations.readinessCheck),
        livenessProbe=k8s_probe(annotations.healthCheck),
    )

    manifest = K8sDeployment(
        apiVersion=cfg.deployment_api_version,
        metadata=K8sMetadata(
            name=name, namespace=k8s_namespace(annotations), labels=labels
        ),
        spec=K8sDeploymentSpec(
            replicas=cfg.replicas,
            selector={"matchLabels": match_labels},
            template=K8sPodTemplate(
                metadata=K8sMetadata(labels=labels),
                spec=K8sPodSpec(containers=[container], volumes=volumes),
            ),
        ),
    )
    res = GeneratedResource(
        resourceType="deployment", name=name, payload=dump(manifest)
    )
    return res, None


def service_protocol(endpoint: Endpoint) -> str:
    if isinstance(endpoint, (HttpEndpoint, TcpEndpoint)):
        return "TCP"
    if isinstance(endpoint, UdpEndpoint):
        return "UDP"
    raise TypeError(f"unsupported endpoint {endpoint!r}")


def service_manifest(
    annotations: Annotations, cfg: CompilerConfig
) -> GeneratorResult:
    """Produce the Service for all endpoints, or `None` if there are none.

    Blue/green deployments route all traffic to one specific version whereas
    rolling and canary deployments spread it over all Pods of the app.

    """
    if not annotations.endpoints:
        return None, None

    missing = missing_app_fields(annotations)
    if missing:
        return None, config_error("service", missing)
    assert annotations.appName and annotations.version

    names = app_names(annotations.appName, annotations.version)
    if cfg.deployment_type == "blue-green":
        selector = {"appVersion": names["appVersion"]}
    else:
        selector = {"app": names["app"]}

    ports = [
        K8sServicePort(
            name=service_name(assigned.endpoint.name),
            port=assigned.port,
            protocol=service_protocol(assigned.endpoint),
            targetPort=assigned.port,
        )
        for assigned in assign_ports(annotations.endpoints)
    ]

    manifest = K8sService(
        apiVersion=cfg.service_api_version,
        metadata=K8sMetadata(
            name=names["app"],
            namespace=k8s_namespace(annotations),
            labels={"app": names["app"]},
        ),
        spec=K8sServiceSpec(
            clusterIP=cfg.cluster_ip or "None", ports=ports, selector=selector
        ),
    )
    res = GeneratedResource(
        resourceType="service", name=names["app"], payload=dump(manifest)
    )
    return res, None


def ingress_paths(
    endpoints: Dict[str, Endpoint], path_append: str | None
) -> List[Tuple[str, int]]:
    """Return the (path, port) tuple for every ACL of all HTTP endpoints."""
    out = []
    for assigned in assign_ports(endpoints):
        if not isinstance(assigned.endpoint, HttpEndpoint):
            continue
        for acl in assigned.endpoint.acls:
            out.append((acl.expression + (path_append or ""), assigned.port))
    return out


def ingress_manifest(
    annotations: Annotations, cfg: CompilerConfig
) -> GeneratorResult:
    """Produce the Ingress that routes the HTTP ACLs to the Service of the app.

    Returns `None` if no HTTP endpoint declares any ACLs.

    """
    paths = ingress_paths(annotations.endpoints, cfg.ingress_path_append)
    if not paths:
        return None, None

    if not (annotations.appName and service_name(annotations.appName)):
        return None, config_error("ingress", ["appName"])

    # The Service has the same name as the app.
    name = service_name(annotations.appName)
    Path = K8sIngress.Spec.Rule.Http.Path
    http = K8sIngress.Spec.Rule.Http(
        paths=[
            Path(path=path, backend=Path.Backend(serviceName=name, servicePort=port))
            for path, port in paths
        ]
    )

    manifest = K8sIngress(
        apiVersion=cfg.ingress_api_version,
        metadata=K8sMetadata(
            name=name,
            namespace=k8s_namespace(annotations),
            annotations=cfg.ingress_annotations or None,
        ),
        spec=K8sIngress.Spec(rules=[K8sIngress.Spec.Rule(http=http)]),
    )
    res = GeneratedResource(
        resourceType="ingress", name=name, payload=dump(manifest)
    )
    return res, None


# ----------------------------------------------------------------------
# Compiler.
# ----------------------------------------------------------------------
GENERATORS = {
    "namespace": namespace_manifest,
    "deployment": deployment_manifest,
    "service": service_manifest,
    "ingress": ingress_manifest,
}


def generate_resources(
    annotations: Annotations, cfg: CompilerConfig
) -> Tuple[List[GeneratedResource], List[ConfigurationError]]:
    """Produce all K8s resources of the app in the order they must be applied.

    A failing generator does not affect the others. The caller receives the
    successfully generated resources as well as the errors, but only for the
    resource types it requested in `cfg.generate`.

    """
    resources: List[GeneratedResource] = []
    errors: List[ConfigurationError] = []
    for rtype in RESOURCE_TYPES:
        resource, err = GENERATORS[rtype](annotations, cfg)
        if rtype not in cfg.generate:
            continue

        if err:
            logit.error(err.message)
            errors.append(err)
        elif resource:
            resources.append(resource)
    return resources, errors


def compile_resources(
    labels: Dict[str, str],
    cfg: CompilerConfig,
    overrides: AnnotationOverrides | None = None,
) -> Tuple[List[GeneratedResource], List[ConfigurationError]]:
    """Decode the image `labels` and produce all K8s resources of the app."""
    annotations = rpk8s.annotations.decode(labels, overrides)
    return generate_resources(annotations, cfg)
