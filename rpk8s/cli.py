import argparse
import asyncio
import logging
import os
import ssl
import sys
from pathlib import Path
from typing import Dict, List, Tuple

import httpx
import pydantic
import yaml

import rpk8s.generate
import rpk8s.logstreams
import rpk8s.output
import rpk8s.registry
from rpk8s.models import RESOURCE_TYPES, AnnotationOverrides, CompilerConfig

# Convenience.
logit = logging.getLogger("app")


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rpk8s",
        description="Generate Kubernetes resources from the labels of a Docker image.",
    )
    padd = parser.add_argument
    padd("image", help="Docker image, eg `my-registry.io/myapp:1.0.0`")
    padd(
        "--labels-file",
        type=Path,
        default=None,
        help="Read the image labels from this JSON/YAML file instead of the registry",
    )
    padd("--output", type=Path, default=None, help="Write one file per resource here")

    # Resource options.
    padd("--namespace-api-version", default="v1")
    padd("--deployment-api-version", default="apps/v1")
    padd("--service-api-version", default="v1")
    padd("--ingress-api-version", default="networking.k8s.io/v1beta1")
    padd(
        "--image-pull-policy",
        choices=("Never", "IfNotPresent", "Always"),
        default="IfNotPresent",
    )
    padd("--replicas", type=int, default=1)
    padd("--cluster-ip", default=None)
    padd(
        "--generate",
        choices=RESOURCE_TYPES,
        nargs="+",
        default=list(RESOURCE_TYPES),
        help="Only generate these resource types",
    )
    padd("--ingress-annotation", action="append", default=[], metavar="KEY=VALUE")
    padd("--ingress-path-append", default=None)
    padd(
        "--deployment-type",
        choices=("rolling", "canary", "blue-green"),
        default="canary",
    )
    padd("--external-service", action="append", default=[], metavar="NAME=ADDRESS")

    # Annotation overrides.
    padd("--name", default=None, help="Override the application name")
    padd("--version", default=None, help="Override the application version")
    padd("--namespace", default=None, help="Override the namespace")
    padd("--env", action="append", default=[], metavar="KEY=VALUE")
    padd("--cpu", type=float, default=None)
    padd("--memory", type=int, default=None)
    padd("--disk-space", type=int, default=None)
    return parser.parse_args(argv)


def parse_key_values(items: List[str]) -> Tuple[List[Tuple[str, str]], bool]:
    """Split `KEY=VALUE` strings into `(KEY, VALUE)` tuples."""
    out = []
    for item in items:
        key, sep, value = item.partition("=")
        if not (key and sep):
            logit.error(f"expected KEY=VALUE but got <{item}>")
            return [], True
        out.append((key, value))
    return out, False


def compile_config(
    args: argparse.Namespace,
) -> Tuple[CompilerConfig, AnnotationOverrides, bool]:
    """Return the compiler configuration and annotation overrides."""
    ingress_annotations, err1 = parse_key_values(args.ingress_annotation)
    external, err2 = parse_key_values(args.external_service)
    envs, err3 = parse_key_values(args.env)
    if err1 or err2 or err3:
        return CompilerConfig(image=""), AnnotationOverrides(), True

    # Allow several addresses for the same external service.
    external_services: Dict[str, List[str]] = {}
    for name, address in external:
        external_services.setdefault(name, []).append(address)

    try:
        cfg = CompilerConfig(
            image=args.image,
            namespace_api_version=args.namespace_api_version,
            deployment_api_version=args.deployment_api_version,
            service_api_version=args.service_api_version,
            ingress_api_version=args.ingress_api_version,
            image_pull_policy=args.image_pull_policy,
            replicas=args.replicas,
            cluster_ip=args.cluster_ip,
            generate=set(args.generate),
            ingress_annotations=dict(ingress_annotations),
            ingress_path_append=args.ingress_path_append,
            deployment_type=args.deployment_type,
            external_services=external_services,
        )
        overrides = AnnotationOverrides(
            appName=args.name,
            version=args.version,
            namespace=args.namespace,
            diskSpace=args.disk_space,
            memory=args.memory,
            nrOfCpus=args.cpu,
            environmentVariables=dict(envs),
        )
    except pydantic.ValidationError as err:
        logit.error(f"invalid configuration: {err}")
        return CompilerConfig(image=""), AnnotationOverrides(), True
    return cfg, overrides, False


def make_httpclient() -> Tuple[httpx.AsyncClient, bool]:
    """Return a client that trusts the certificates in `CA_FILE`, if set."""
    ca_path = os.environ.get("CA_FILE", None)
    try:
        if ca_path:
            ctx = ssl.create_default_context(cafile=str(Path(ca_path).expanduser()))
            client = httpx.AsyncClient(verify=ctx)
        else:
            client = httpx.AsyncClient()
    except OSError as err:
        logit.error(f"cannot create http client: {err}")
        return httpx.AsyncClient(), True
    return client, False


def load_labels_file(path: Path) -> Tuple[Dict[str, str], bool]:
    """Return the labels stored as a flat JSON or YAML mapping in `path`."""
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as err:
        logit.error(f"cannot read labels from {path}: {err}")
        return {}, True

    if not isinstance(data, dict):
        logit.error(f"labels in {path} must be a mapping")
        return {}, True
    return {str(k): str(v) for k, v in data.items()}, False


async def load_labels(args: argparse.Namespace) -> Tuple[Dict[str, str], bool]:
    if args.labels_file:
        return load_labels_file(args.labels_file)

    client, err = make_httpclient()
    if err:
        return {}, True
    async with client:
        return await rpk8s.registry.fetch_labels(client, args.image)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    if rpk8s.logstreams.setup(os.getenv("RPK8S_LOGLEVEL", "info")):
        print("invalid log level in RPK8S_LOGLEVEL", file=sys.stderr)
        return 1

    cfg, overrides, err = compile_config(args)
    if err:
        return 1

    labels, err = asyncio.run(load_labels(args))
    if err:
        return 1
    if not labels:
        logit.error("Unable to generate Kubernetes resources from empty labels")
        return 1

    resources, errors = rpk8s.generate.compile_resources(labels, cfg, overrides)
    if args.output:
        err = rpk8s.output.save_to_file(args.output, resources)
    else:
        rpk8s.output.pipe_to_stream(sys.stdout, resources)

    return 1 if (err or errors) else 0
