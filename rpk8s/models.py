from typing import Annotated, Dict, List, Literal, Set, Union

from pydantic import BaseModel, ConfigDict, Field

# ----------------------------------------------------------------------
# Generic Types
# ----------------------------------------------------------------------
DeploymentType = Literal["rolling", "canary", "blue-green"]
ImagePullPolicy = Literal["Never", "IfNotPresent", "Always"]

# Resource type tags. These also prefix the output file names, eg
# `deployment-myapp.json`.
ResourceType = Literal["namespace", "deployment", "service", "ingress"]
RESOURCE_TYPES: List[ResourceType] = ["namespace", "deployment", "service", "ingress"]


# ----------------------------------------------------------------------
# Annotations: typed view of the image labels.
# ----------------------------------------------------------------------
class Version(BaseModel):
    """Semantic version of the application, eg `1.2.3-SNAPSHOT`."""

    model_config = ConfigDict(frozen=True)

    major: int
    minor: int
    patch: int
    patchLabel: str | None = None

    # The verbatim version string.
    version: str

    @property
    def versionMajorMinor(self) -> str:
        return f"{self.major}.{self.minor}"


class HttpAcl(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["http"] = "http"
    expression: str


class TcpAcl(BaseModel):
    """Single port if `toPort` is `None`, otherwise an inclusive range."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tcp"] = "tcp"
    fromPort: int
    toPort: int | None = None


class UdpAcl(BaseModel):
    """Single port if `toPort` is `None`, otherwise an inclusive range."""

    model_config = ConfigDict(frozen=True)

    type: Literal["udp"] = "udp"
    fromPort: int
    toPort: int | None = None


class HttpEndpoint(BaseModel):
    protocol: Literal["http"] = "http"
    name: str
    index: int
    port: int | None = None
    acls: List[HttpAcl] = []


class TcpEndpoint(BaseModel):
    protocol: Literal["tcp"] = "tcp"
    name: str
    index: int
    port: int | None = None
    acls: List[TcpAcl] = []


class UdpEndpoint(BaseModel):
    protocol: Literal["udp"] = "udp"
    name: str
    index: int
    port: int | None = None
    acls: List[UdpAcl] = []


Endpoint = Annotated[
    Union[HttpEndpoint, TcpEndpoint, UdpEndpoint], Field(discriminator="protocol")
]


class HostPathVolume(BaseModel):
    type: Literal["host-path"] = "host-path"
    hostPath: str


class SecretVolume(BaseModel):
    type: Literal["secret"] = "secret"
    secretName: str


Volume = Annotated[Union[HostPathVolume, SecretVolume], Field(discriminator="type")]


class LiteralEnvironmentVariable(BaseModel):
    type: Literal["literal"] = "literal"
    value: str


class SecretEnvironmentVariable(BaseModel):
    type: Literal["secret"] = "secret"
    secretValue: str


class ConfigMapEnvironmentVariable(BaseModel):
    type: Literal["configMap"] = "configMap"
    mapName: str
    key: str


class FieldRefEnvironmentVariable(BaseModel):
    type: Literal["fieldRef"] = "fieldRef"
    fieldPath: str


class SecretKeyRefEnvironmentVariable(BaseModel):
    type: Literal["secretKeyRef"] = "secretKeyRef"

    # Informational only: K8s can only reference secrets in the Pod namespace.
    secretNamespace: str = ""
    secretName: str
    key: str


EnvironmentVariable = Annotated[
    Union[
        LiteralEnvironmentVariable,
        SecretEnvironmentVariable,
        ConfigMapEnvironmentVariable,
        FieldRefEnvironmentVariable,
        SecretKeyRefEnvironmentVariable,
    ],
    Field(discriminator="type"),
]


class CommandCheck(BaseModel):
    type: Literal["command"] = "command"
    command: List[str]


class HttpCheck(BaseModel):
    """Probe via HTTP GET.

    The probe targets `port` if it is non-zero and the named port
    `serviceName` otherwise.

    """

    type: Literal["http"] = "http"
    port: int = 0
    serviceName: str = ""
    intervalSeconds: int
    path: str


class TcpCheck(BaseModel):
    type: Literal["tcp"] = "tcp"
    port: int = 0
    serviceName: str = ""
    intervalSeconds: int


Check = Annotated[
    Union[CommandCheck, HttpCheck, TcpCheck], Field(discriminator="type")
]


class Secret(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str


class Annotations(BaseModel):
    """Application descriptor decoded from the image labels."""

    diskSpace: int | None = None
    memory: int | None = None
    nrOfCpus: float | None = None
    privileged: bool = False
    namespace: str | None = None
    appName: str | None = None
    appType: str | None = None
    version: Version | None = None
    modules: Set[str] = set()
    endpoints: Dict[str, Endpoint] = {}
    volumes: Dict[str, Volume] = {}
    environmentVariables: Dict[str, EnvironmentVariable] = {}
    secrets: List[Secret] = []
    healthCheck: Check | None = None
    readinessCheck: Check | None = None


class AnnotationOverrides(BaseModel):
    """User supplied values that take precedence over the image labels."""

    model_config = ConfigDict(extra="forbid")

    appName: str | None = None
    version: str | None = None
    namespace: str | None = None
    diskSpace: int | None = None
    memory: int | None = None
    nrOfCpus: float | None = None
    environmentVariables: Dict[str, str] = {}


# ----------------------------------------------------------------------
# Compiler results.
# ----------------------------------------------------------------------
class AssignedPort(BaseModel):
    endpoint: Endpoint
    port: int


class GeneratedResource(BaseModel):
    model_config = ConfigDict(frozen=True)

    resourceType: ResourceType
    name: str
    payload: dict


class ConfigurationError(BaseModel):
    """Explain why a resource could not be generated."""

    model_config = ConfigDict(frozen=True)

    resourceType: ResourceType
    missing: List[str] = []
    message: str


class CompilerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Docker image of the application container.
    image: str

    namespace_api_version: str = "v1"
    deployment_api_version: str = "apps/v1"
    service_api_version: str = "v1"
    ingress_api_version: str = "networking.k8s.io/v1beta1"

    image_pull_policy: ImagePullPolicy = "IfNotPresent"
    replicas: int = Field(default=1, ge=0)
    cluster_ip: str | None = None

    # Only emit these resource types.
    generate: Set[ResourceType] = set(RESOURCE_TYPES)

    ingress_annotations: Dict[str, str] = {}
    ingress_path_append: str | None = None
    deployment_type: DeploymentType = "canary"

    # Addresses of services outside the cluster, eg `{"cas_native": ["a:9042"]}`.
    external_services: Dict[str, List[str]] = {}


class ImageName(BaseModel):
    """Docker image reference, eg `docker.io/library/nginx:1.25`."""

    model_config = ConfigDict(extra="forbid")

    registry: str
    repository: str

    # Tag or digest.
    reference: str


# ----------------------------------------------------------------------
# Kubernetes
# ----------------------------------------------------------------------
class K8sMetadata(BaseModel):
    name: str | None = None
    namespace: str | None = None
    labels: Dict[str, str] | None = None
    annotations: Dict[str, str] | None = None


class K8sNamespace(BaseModel):
    apiVersion: str
    kind: str = "Namespace"
    metadata: K8sMetadata


class K8sEnvVar(BaseModel):
    name: str
    value: str | None = None
    valueFrom: dict | None = None


class K8sContainerPort(BaseModel):
    containerPort: int
    name: str


class K8sProbeExec(BaseModel):
    command: List[str] = []


class K8sProbeHttp(BaseModel):
    path: str = ""
    port: int | str = 0


class K8sProbeTcp(BaseModel):
    port: int | str = 0


class K8sProbe(BaseModel):
    exec: K8sProbeExec | None = None
    httpGet: K8sProbeHttp | None = None
    tcpSocket: K8sProbeTcp | None = None
    periodSeconds: int | None = None


class K8sResourceQuantities(BaseModel):
    cpu: str | None = None
    memory: str | None = None
    ephemeralStorage: str | None = Field(
        default=None, serialization_alias="ephemeral-storage"
    )


class K8sRequestLimit(BaseModel):
    requests: K8sResourceQuantities | None = None
    limits: K8sResourceQuantities | None = None


class K8sVolumeMount(BaseModel):
    name: str
    mountPath: str


class K8sVolume(BaseModel):
    name: str
    hostPath: dict | None = None
    secret: dict | None = None


class K8sContainer(BaseModel):
    name: str
    image: str
    imagePullPolicy: ImagePullPolicy
    env: List[K8sEnvVar] = []
    ports: List[K8sContainerPort] = []
    volumeMounts: List[K8sVolumeMount] | None = None
    resources: K8sRequestLimit | None = None
    securityContext: dict | None = None
    readinessProbe: K8sProbe | None = None
    livenessProbe: K8sProbe | None = None


class K8sPodSpec(BaseModel):
    containers: List[K8sContainer] = []
    volumes: List[K8sVolume] | None = None


class K8sPodTemplate(BaseModel):
    metadata: K8sMetadata
    spec: K8sPodSpec


class K8sDeploymentSpec(BaseModel):
    replicas: int
    selector: dict
    template: K8sPodTemplate


class K8sDeployment(BaseModel):
    apiVersion: str
    kind: str = "Deployment"
    metadata: K8sMetadata
    spec: K8sDeploymentSpec


class K8sServicePort(BaseModel):
    name: str
    port: int
    protocol: Literal["TCP", "UDP"]
    targetPort: int


class K8sServiceSpec(BaseModel):
    clusterIP: str
    ports: List[K8sServicePort] = []
    selector: Dict[str, str] = {}


class K8sService(BaseModel):
    apiVersion: str
    kind: str = "Service"
    metadata: K8sMetadata
    spec: K8sServiceSpec


class K8sIngress(BaseModel):
    class Spec(BaseModel):
        class Rule(BaseModel):
            class Http(BaseModel):
                class Path(BaseModel):
                    class Backend(BaseModel):
                        serviceName: str
                        servicePort: int

                    path: str
                    backend: Backend

                paths: List[Path] = []

            http: Http = Http()

        rules: List[Rule] = []

    apiVersion: str
    kind: str = "Ingress"
    metadata: K8sMetadata
    spec: Spec = Spec()
