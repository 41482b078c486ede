import logging
import re
from typing import Dict, List, Set

from rpk8s.labels import (
    decode_boolean,
    decode_double,
    decode_int,
    decode_long,
    select_array,
    select_indexed_array,
    select_subset,
)
from rpk8s.models import (
    AnnotationOverrides,
    Annotations,
    Check,
    CommandCheck,
    ConfigMapEnvironmentVariable,
    Endpoint,
    EnvironmentVariable,
    FieldRefEnvironmentVariable,
    HostPathVolume,
    HttpAcl,
    HttpCheck,
    HttpEndpoint,
    LiteralEnvironmentVariable,
    Secret,
    SecretEnvironmentVariable,
    SecretKeyRefEnvironmentVariable,
    SecretVolume,
    TcpAcl,
    TcpCheck,
    TcpEndpoint,
    UdpAcl,
    UdpEndpoint,
    Version,
    Volume,
)

# Convenience.
logit = logging.getLogger("app")

# All labels we understand live in this namespace.
LABEL_PREFIX = "com.lightbend.rp"

# Largest valid TCP/UDP port.
MAX_PORT = 65535

# Checks without an explicit interval probe every 10s.
DEFAULT_CHECK_INTERVAL = 10

VERSION_RE = re.compile(r"([0-9]+)\.([0-9]+)\.([0-9]+)(?:-(.+))?")


def ns(suffix: str) -> str:
    """Return the fully qualified label key for `suffix`."""
    return f"{LABEL_PREFIX}.{suffix}"


def decode_version(value: str) -> Version | None:
    match = VERSION_RE.fullmatch(value)
    if not match:
        return None

    major, minor, patch, label = match.groups()
    return Version(
        major=int(major),
        minor=int(minor),
        patch=int(patch),
        patchLabel=label,
        version=value,
    )


def decode_modules(labels: Dict[str, str]) -> Set[str]:
    """Return the names of all modules labelled with `modules.{name}.enabled=true`."""
    out = set()
    for key, value in select_subset(labels, ns("modules")).items():
        name, _, attr = key.rpartition(".")
        if name and attr == "enabled" and decode_boolean(value):
            out.add(name)
    return out


def decode_port_acl(acl: Dict[str, str], protocol: str) -> TcpAcl | UdpAcl | None:
    ports = [decode_int(_.get("", "")) for _ in select_array(acl, "ports")]
    if len(ports) not in (1, 2) or None in ports:
        return None

    from_port, to_port = ports[0], (ports[1] if len(ports) == 2 else None)
    if protocol == "tcp":
        return TcpAcl(fromPort=from_port, toPort=to_port)
    return UdpAcl(fromPort=from_port, toPort=to_port)


def decode_acls(entry: Dict[str, str], protocol: str) -> List:
    """Return the ACLs of an endpoint.

    ACLs whose `type` does not match the endpoint `protocol` are dropped.

    """
    out = []
    for acl in select_array(entry, "acls"):
        if acl.get("type", "") != protocol:
            logit.debug(f"dropping ACL {acl} for {protocol} endpoint")
            continue

        if protocol == "http":
            if "expression" in acl:
                out.append(HttpAcl(expression=acl["expression"]))
            continue

        port_acl = decode_port_acl(acl, protocol)
        if port_acl:
            out.append(port_acl)
    return out


def decode_endpoint(entry: Dict[str, str], index: int) -> Endpoint | None:
    name = entry.get("name", "")
    protocol = entry.get("protocol", "")
    if not name:
        logit.debug(f"dropping endpoint #{index}: no name")
        return None

    # Port zero means the port will be assigned automatically. Invalid ports
    # are treated the same way.
    port = decode_int(entry.get("port", ""))
    port = port if port and 0 < port <= MAX_PORT else None

    acls = decode_acls(entry, protocol)
    if protocol == "http":
        return HttpEndpoint(name=name, index=index, port=port, acls=acls)
    if protocol == "tcp":
        return TcpEndpoint(name=name, index=index, port=port, acls=acls)
    if protocol == "udp":
        return UdpEndpoint(name=name, index=index, port=port, acls=acls)

    logit.debug(f"dropping endpoint {name}: unknown protocol <{protocol}>")
    return None


def decode_endpoints(labels: Dict[str, str]) -> Dict[str, Endpoint]:
    """Return the declared endpoints.

    The array index in the label key becomes the `index` of the endpoint. It
    never changes afterwards and determines the default port assignment.

    """
    out: Dict[str, Endpoint] = {}
    for index, entry in select_indexed_array(labels, ns("endpoints")):
        endpoint = decode_endpoint(entry, index)
        if endpoint:
            out[endpoint.name] = endpoint
    return out


def decode_volume(entry: Dict[str, str]) -> Volume | None:
    vtype = entry.get("type", "")
    if vtype == "host-path" and "path" in entry:
        return HostPathVolume(hostPath=entry["path"])
    if vtype == "secret" and "secret" in entry:
        return SecretVolume(secretName=entry["secret"])
    return None


def decode_volumes(labels: Dict[str, str]) -> Dict[str, Volume]:
    # Volumes are keyed by their guest path. A later volume for the same guest
    # path replaces an earlier one.
    out: Dict[str, Volume] = {}
    for entry in select_array(labels, ns("volumes")):
        guest_path = entry.get("guest-path", "")
        volume = decode_volume(entry)
        if not (guest_path and volume):
            logit.debug(f"dropping volume {entry}")
            continue
        out[guest_path] = volume
    return out


def decode_environment_variable(entry: Dict[str, str]) -> EnvironmentVariable | None:
    etype = entry.get("type", "")
    get = entry.get
    try:
        if etype == "literal":
            return LiteralEnvironmentVariable(value=entry["value"])
        if etype == "secret":
            return SecretEnvironmentVariable(secretValue=entry["secret"])
        if etype == "configMap":
            return ConfigMapEnvironmentVariable(
                mapName=entry["map-name"], key=entry["key"]
            )
        if etype == "fieldRef":
            return FieldRefEnvironmentVariable(fieldPath=entry["field-path"])
        if etype == "secretKeyRef":
            return SecretKeyRefEnvironmentVariable(
                secretNamespace=get("secret-namespace", ""),
                secretName=entry["secret-name"],
                key=entry["key"],
            )
    except KeyError:
        return None
    return None


def decode_environment_variables(
    labels: Dict[str, str],
) -> Dict[str, EnvironmentVariable]:
    out: Dict[str, EnvironmentVariable] = {}
    for entry in select_array(labels, ns("environment-variables")):
        name = entry.get("name", "")
        env = decode_environment_variable(entry)
        if not (name and env):
            logit.debug(f"dropping environment variable {entry}")
            continue
        out[name] = env
    return out


def decode_secrets(labels: Dict[str, str]) -> List[Secret]:
    out = []
    for entry in select_array(labels, ns("secrets")):
        namespace, name = entry.get("namespace", ""), entry.get("name", "")
        if namespace and name:
            out.append(Secret(namespace=namespace, name=name))
    return out


def decode_check(labels: Dict[str, str], prefix: str) -> Check | None:
    """Return the health or readiness check stored under `prefix`."""
    check = select_subset(labels, prefix)
    ctype = check.get("type", "")

    if ctype == "command":
        args = [_[""] for _ in select_array(check, "args") if "" in _]
        return CommandCheck(command=args) if args else None

    if ctype not in ("http", "tcp"):
        return None

    # The probe must either target an explicit port or a named one.
    port = decode_int(check.get("port", "")) or 0
    service_name = check.get("service-name", "")
    if port <= 0 and not service_name:
        return None
    port = max(port, 0)

    interval = decode_int(check.get("interval", ""))
    interval = DEFAULT_CHECK_INTERVAL if interval is None else interval

    if ctype == "tcp":
        return TcpCheck(port=port, serviceName=service_name, intervalSeconds=interval)

    if "path" not in check:
        return None
    return HttpCheck(
        port=port,
        serviceName=service_name,
        intervalSeconds=interval,
        path=check["path"],
    )


def apply_overrides(
    annotations: Annotations, overrides: AnnotationOverrides
) -> Annotations:
    """Return a copy of `annotations` with all set `overrides` applied."""
    update: dict = {}
    for field in ("appName", "namespace", "diskSpace", "memory", "nrOfCpus"):
        value = getattr(overrides, field)
        if value is not None:
            update[field] = value

    if overrides.version is not None:
        version = decode_version(overrides.version)
        if version:
            update["version"] = version
        else:
            logit.warning(f"ignoring invalid version override <{overrides.version}>")

    if overrides.environmentVariables:
        envs = dict(annotations.environmentVariables)
        for name, value in overrides.environmentVariables.items():
            envs[name] = LiteralEnvironmentVariable(value=value)
        update["environmentVariables"] = envs

    return annotations.model_copy(update=update)


def decode(
    labels: Dict[str, str], overrides: AnnotationOverrides | None = None
) -> Annotations:
    """Return the `Annotations` encoded in the image `labels`.

    Unknown labels are ignored and malformed ones dropped. This function
    therefore never fails, although the result may be empty.

    """
    get = labels.get

    version = decode_version(get(ns("app-version"), ""))
    annotations = Annotations(
        diskSpace=decode_long(get(ns("disk-space"), "")),
        memory=decode_long(get(ns("memory"), "")),
        nrOfCpus=decode_double(get(ns("nr-of-cpus"), "")),
        privileged=decode_boolean(get(ns("privileged"), "")) or False,
        namespace=get(ns("namespace")),
        appName=get(ns("app-name")),
        appType=get(ns("app-type")),
        version=version,
        modules=decode_modules(labels),
        endpoints=decode_endpoints(labels),
        volumes=decode_volumes(labels),
        environmentVariables=decode_environment_variables(labels),
        secrets=decode_secrets(labels),
        healthCheck=decode_check(labels, ns("health-check")),
        readinessCheck=decode_check(labels, ns("readiness-check")),
    )

    if overrides:
        annotations = apply_overrides(annotations, overrides)
    return annotations
