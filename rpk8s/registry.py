"""Read the labels of a Docker image from its registry.

The labels live in the image config blob. Getting there takes two requests to
the registry v2 API: one for the image manifest and one for the config blob
the manifest references. Registries like Docker Hub also require an anonymous
bearer token for public images, which we request on demand whenever the
registry responds with 401.

"""
import asyncio
import json
import logging
import re
import ssl
from typing import Dict, Tuple

import httpx
import tenacity as tc

from rpk8s.models import ImageName

DOCKER_HUB = "registry-1.docker.io"
DOCKER_HUB_ALIASES = ("docker.io", "index.docker.io")

MANIFEST_TYPES = (
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
)

# Parse the `key="value"` pairs of a `WWW-Authenticate` header.
CHALLENGE_RE = re.compile(r'(\w+)="([^"]*)"')

# Define the exceptions we want to retry on.
WEB_EXCEPTIONS = (httpx.RequestError, ssl.SSLError, asyncio.TimeoutError)

logit = logging.getLogger("app")


def parse_image_name(image: str) -> Tuple[ImageName, bool]:
    """Split `image` into registry, repository and tag (or digest).

    Images without an explicit registry live on Docker Hub, and official
    Docker Hub images live in the `library/` namespace.

    """
    if "@" in image:
        name, _, reference = image.partition("@")
    else:
        name, reference = image, "latest"
        head, sep, tail = image.rpartition(":")
        if sep and "/" not in tail:
            name, reference = head, tail

    registry, repository = DOCKER_HUB, name
    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        registry, repository = first, rest
    if registry in DOCKER_HUB_ALIASES:
        registry = DOCKER_HUB
    if registry == DOCKER_HUB and "/" not in repository:
        repository = f"library/{repository}"

    if not (repository and reference) or repository.endswith("/"):
        logit.error(f"invalid image name <{image}>")
        return ImageName(registry="", repository="", reference=""), True
    out = ImageName(registry=registry, repository=repository, reference=reference)
    return out, False


def _on_backoff(retry_state: tc.RetryCallState):
    """Log a warning on each retry."""
    attempt = retry_state.attempt_number
    _, method, url = retry_state.args[:3]
    logit.warning(f"Back off {attempt} - {method} {url}.")


async def _mysleep(delay: float):
    """This trivial function exists to mock out the `sleep` call during tests."""
    await asyncio.sleep(delay)


@tc.retry(
    stop=(tc.stop_after_delay(60) | tc.stop_after_attempt(5)),
    wait=tc.wait_exponential(multiplier=1, min=0, max=10),
    retry=tc.retry_if_exception_type(WEB_EXCEPTIONS),
    before_sleep=_on_backoff,
    reraise=True,
    sleep=_mysleep,
)
async def _call(
    client: httpx.AsyncClient, method: str, url: str, headers: dict | None
) -> httpx.Response:
    return await client.request(method, url, headers=headers, follow_redirects=True)


async def request(
    client: httpx.AsyncClient, url: str, headers: dict | None = None
) -> Tuple[dict, httpx.Headers, int, bool]:
    """Return the decoded JSON response of a GET request to `url`.

    Returns:
        (dict, Headers, int, bool): the JSON response, the response headers,
        the HTTP status code and the error flag.

    """
    # Make the HTTP request via our backoff/retry handler.
    try:
        ret = await _call(client, "GET", url, headers=headers)
    except WEB_EXCEPTIONS as err:
        logit.error(f"Giving up - {err} - GET {url}")
        return ({}, httpx.Headers(), -1, True)

    # Decode the JSON response and abort if that is impossible.
    try:
        response = json.loads(ret.text)
    except json.decoder.JSONDecodeError as err:
        logit.error(f"JSON error - {err.msg} in line {err.lineno} column {err.colno}")
        return ({}, ret.headers, ret.status_code, True)

    # The registry API only ever responds with JSON objects.
    if not isinstance(response, dict):
        logit.error(f"Expected JSON object but got {type(response).__name__}")
        return ({}, ret.headers, ret.status_code, True)

    logit.debug(f"GET {ret.status_code} {ret.url}")
    return (response, ret.headers, ret.status_code, False)


async def bearer_token(client: httpx.AsyncClient, challenge: str) -> Tuple[str, bool]:
    """Return an anonymous token for the `WWW-Authenticate` `challenge`."""
    if not challenge.lower().startswith("bearer "):
        logit.error(f"unsupported authentication challenge <{challenge}>")
        return "", True

    params = dict(CHALLENGE_RE.findall(challenge))
    realm = params.pop("realm", "")
    if not realm:
        logit.error(f"authentication challenge without realm <{challenge}>")
        return "", True

    url = str(httpx.URL(realm, params=params))
    resp, _, code, err = await request(client, url)
    token = resp.get("token") or resp.get("access_token") or ""
    if err or code != 200 or not token:
        logit.error(f"{code} - cannot obtain registry token from {realm}")
        return "", True
    return token, False


async def get(client: httpx.AsyncClient, url: str, headers: dict) -> Tuple[dict, bool]:
    """Make an authenticated GET request to the registry.

    Stores the bearer token in `headers` to reuse it for subsequent requests.

    """
    resp, resp_headers, code, err = await request(client, url, headers)
    if code == 401:
        challenge = resp_headers.get("www-authenticate", "")
        token, err = await bearer_token(client, challenge)
        if err:
            return resp, True

        headers["Authorization"] = f"Bearer {token}"
        resp, _, code, err = await request(client, url, headers)

    if err or code != 200:
        logit.error(f"{code} - GET - {url} - {resp}")
        return (resp, True)
    return (resp, False)


async def fetch_manifest(
    client: httpx.AsyncClient, image: ImageName, headers: dict
) -> Tuple[dict, bool]:
    """Return the image manifest.

    Resolve multi platform images to their `linux/amd64` variant, or to the
    first variant if that does not exist.

    """
    base = f"https://{image.registry}/v2/{image.repository}"
    headers["Accept"] = str.join(", ", MANIFEST_TYPES)

    manifest, err = await get(client, f"{base}/manifests/{image.reference}", headers)
    if err:
        return {}, True

    variants = manifest.get("manifests")
    if not variants:
        return manifest, False

    preferred = [
        _
        for _ in variants
        if _.get("platform", {}).get("os") == "linux"
        and _.get("platform", {}).get("architecture") == "amd64"
    ]
    digest = (preferred or variants)[0].get("digest", "")
    return await get(client, f"{base}/manifests/{digest}", headers)


async def fetch_labels(
    client: httpx.AsyncClient, image: str
) -> Tuple[Dict[str, str], bool]:
    """Return the labels of the Docker `image`."""
    name, err = parse_image_name(image)
    if err:
        return {}, True

    headers: dict = {}
    manifest, err = await fetch_manifest(client, name, headers)
    if err:
        return {}, True

    try:
        digest = manifest["config"]["digest"]
    except (KeyError, TypeError):
        logit.error(f"image manifest of {image} has no config")
        return {}, True

    url = f"https://{name.registry}/v2/{name.repository}/blobs/{digest}"
    blob, err = await get(client, url, headers)
    if err:
        return {}, True

    config = blob.get("config") or {}
    labels = (config.get("Labels") if isinstance(config, dict) else None) or {}
    if not isinstance(labels, dict):
        logit.error(f"image config of {image} has malformed labels")
        return {}, True
    return {str(k): str(v) for k, v in labels.items()}, False
