import string
from typing import Iterable

from rpk8s.models import Version

# Characters allowed in environment variable names. Everything else becomes `_`.
ENV_VAR_CHARS = frozenset(string.ascii_letters + string.digits + "_")

# Characters allowed in K8s resource names. Everything else becomes `-`.
SERVICE_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "-")

# Strip these from both ends of sanitised names.
TRIM_CHARS = "_-"

# Separates the app name from its version, eg `myapp-v1.2.3`.
VERSION_SEPARATOR = "-v"


def env_var_name(name: str) -> str:
    """Return `name` as a valid environment variable name, eg `MY_ENDPOINT`."""
    out = "".join(c if c in ENV_VAR_CHARS else "_" for c in name)
    return out.strip(TRIM_CHARS).upper()


def service_name(name: str, extra_chars: Iterable[str] = ()) -> str:
    """Return `name` as a valid K8s resource name, eg `my-endpoint`.

    Use `extra_chars` to allow additional characters, eg `.` for names that
    contain a version.

    """
    allowed = SERVICE_NAME_CHARS.union(extra_chars)
    out = "".join(c if c in allowed else "-" for c in name)
    return out.strip(TRIM_CHARS).lower()


def secret_env_name(namespace: str, name: str) -> str:
    """Return the name of the environment variable that exposes a secret."""
    raw = f"RP_SECRETS_{namespace}_{name}".upper()
    return "".join(c if c.isalnum() else "_" for c in raw)


def versioned_name(app_name: str, version: str) -> str:
    """Return the version qualified app name, eg `myapp-v1.2`."""
    return service_name(f"{app_name}{VERSION_SEPARATOR}{version}", extra_chars=".")


def app_names(raw_app_name: str, version: Version) -> dict:
    """Return the app name and its version qualified variants.

    Deployments and Services use these names for their resource names and
    label values.

    """
    app_name = service_name(raw_app_name)
    return {
        "app": app_name,
        "appVersionMajor": versioned_name(app_name, str(version.major)),
        "appVersionMajorMinor": versioned_name(app_name, version.versionMajorMinor),
        "appVersion": versioned_name(app_name, version.version),
    }
