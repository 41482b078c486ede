import httpx
import pytest
from httpx import Response
from tenacity import wait_none

import rpk8s.registry
from rpk8s.models import ImageName
from rpk8s.registry import DOCKER_HUB, fetch_labels, parse_image_name

BASE = "https://my-registry.io/v2/myapp"
IMAGE = "my-registry.io/myapp:1.2.3"
LABELS = {"com.lightbend.rp.app-name": "myapp", "maintainer": "me"}


def config_blob(labels: dict) -> dict:
    return {"architecture": "amd64", "config": {"Labels": labels}}


class TestParseImageName:
    @pytest.mark.parametrize(
        "image, expected",
        [
            ("nginx", (DOCKER_HUB, "library/nginx", "latest")),
            ("nginx:1.25", (DOCKER_HUB, "library/nginx", "1.25")),
            ("docker.io/foo/bar:1", (DOCKER_HUB, "foo/bar", "1")),
            ("foo/bar@sha256:abc", (DOCKER_HUB, "foo/bar", "sha256:abc")),
            ("my-registry.io/myapp:1.2.3", ("my-registry.io", "myapp", "1.2.3")),
            ("localhost:5000/a/b", ("localhost:5000", "a/b", "latest")),
        ],
    )
    def test_valid(self, image, expected):
        registry, repository, reference = expected
        ret, err = parse_image_name(image)
        assert not err
        assert ret == ImageName(
            registry=registry, repository=repository, reference=reference
        )

    def test_invalid(self):
        for image in ("", "myapp:", "my-registry.io/"):
            _, err = parse_image_name(image)
            assert err


class TestRequest:
    async def test_corrupt_json_payload(self, respx_mock, httpclient):
        """Gracefully handle JSON decoding errors."""
        url = f"{BASE}/manifests/1.2.3"
        respx_mock.get(url).mock(return_value=Response(200, text="{invalid json]"))

        _, _, code, err = await rpk8s.registry.request(httpclient, url)
        assert err and code == 200

    async def test_non_object_payload(self, respx_mock, httpclient):
        """Valid JSON that is not an object must be an error."""
        url = f"{BASE}/manifests/1.2.3"
        respx_mock.get(url).mock(return_value=Response(200, json=[]))

        resp, _, code, err = await rpk8s.registry.request(httpclient, url)
        assert err and code == 200
        assert resp == {}

    async def test_handled_exceptions(self, respx_mock, httpclient):
        """`request` must intercept standard network and async exceptions."""
        url = f"{BASE}/manifests/1.2.3"

        # Disable Tenacity's sleep function.
        rpk8s.registry._call.retry.wait = wait_none()  # type: ignore

        route = respx_mock.get(url).mock(side_effect=httpx.ConnectTimeout)
        _, _, code, err = await rpk8s.registry.request(httpclient, url)
        assert err and code == -1

        # Must have retried.
        assert route.call_count > 1


class TestFetchLabels:
    async def test_basic(self, respx_mock, httpclient):
        manifest = {"schemaVersion": 2, "config": {"digest": "sha256:cfg"}}
        respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            return_value=Response(200, json=manifest)
        )
        respx_mock.get(f"{BASE}/blobs/sha256:cfg").mock(
            return_value=Response(200, json=config_blob(LABELS))
        )

        labels, err = await fetch_labels(httpclient, IMAGE)
        assert not err
        assert labels == LABELS

    async def test_bearer_token(self, respx_mock, httpclient):
        """Must request a token if the registry demands one and then reuse it."""
        challenge = (
            'Bearer realm="https://auth.my-registry.io/token",'
            'service="my-registry.io",scope="repository:myapp:pull"'
        )
        manifest = {"schemaVersion": 2, "config": {"digest": "sha256:cfg"}}
        m_manifest = respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            side_effect=[
                Response(401, json={}, headers={"www-authenticate": challenge}),
                Response(200, json=manifest),
            ]
        )
        m_token = respx_mock.get("https://auth.my-registry.io/token").mock(
            return_value=Response(200, json={"token": "secret-token"})
        )
        m_blob = respx_mock.get(f"{BASE}/blobs/sha256:cfg").mock(
            return_value=Response(200, json=config_blob(LABELS))
        )

        labels, err = await fetch_labels(httpclient, IMAGE)
        assert not err
        assert labels == LABELS

        # The token request must forward the challenge parameters.
        params = m_token.calls.last.request.url.params
        assert params["service"] == "my-registry.io"
        assert params["scope"] == "repository:myapp:pull"

        # All subsequent requests must use the token.
        auth = "Bearer secret-token"
        assert m_manifest.calls.last.request.headers["Authorization"] == auth
        assert m_blob.calls.last.request.headers["Authorization"] == auth

    async def test_unauthorized(self, respx_mock, httpclient):
        """Must fail if the registry does not explain how to authenticate."""
        respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            return_value=Response(401, json={})
        )
        labels, err = await fetch_labels(httpclient, IMAGE)
        assert err and labels == {}

    async def test_manifest_list(self, respx_mock, httpclient):
        """Must pick the `linux/amd64` image of a multi platform image."""
        manifest_list = {
            "schemaVersion": 2,
            "manifests": [
                {
                    "digest": "sha256:arm",
                    "platform": {"os": "linux", "architecture": "arm64"},
                },
                {
                    "digest": "sha256:amd",
                    "platform": {"os": "linux", "architecture": "amd64"},
                },
            ],
        }
        manifest = {"schemaVersion": 2, "config": {"digest": "sha256:cfg"}}
        respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            return_value=Response(200, json=manifest_list)
        )
        respx_mock.get(f"{BASE}/manifests/sha256:amd").mock(
            return_value=Response(200, json=manifest)
        )
        respx_mock.get(f"{BASE}/blobs/sha256:cfg").mock(
            return_value=Response(200, json=config_blob(LABELS))
        )

        labels, err = await fetch_labels(httpclient, IMAGE)
        assert not err
        assert labels == LABELS

    async def test_no_labels(self, respx_mock, httpclient):
        manifest = {"schemaVersion": 2, "config": {"digest": "sha256:cfg"}}
        respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            return_value=Response(200, json=manifest)
        )
        respx_mock.get(f"{BASE}/blobs/sha256:cfg").mock(
            return_value=Response(200, json={"config": {"Labels": None}})
        )

        labels, err = await fetch_labels(httpclient, IMAGE)
        assert not err
        assert labels == {}

    async def test_manifest_without_config(self, respx_mock, httpclient):
        respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            return_value=Response(200, json={"schemaVersion": 2})
        )
        labels, err = await fetch_labels(httpclient, IMAGE)
        assert err and labels == {}

    async def test_non_object_blob(self, respx_mock, httpclient):
        """Must not crash if the config blob is a JSON list."""
        manifest = {"schemaVersion": 2, "config": {"digest": "sha256:cfg"}}
        respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            return_value=Response(200, json=manifest)
        )
        respx_mock.get(f"{BASE}/blobs/sha256:cfg").mock(
            return_value=Response(200, json=["not", "an", "object"])
        )

        labels, err = await fetch_labels(httpclient, IMAGE)
        assert err and labels == {}

    async def test_not_found(self, respx_mock, httpclient):
        respx_mock.get(f"{BASE}/manifests/1.2.3").mock(
            return_value=Response(404, json={"errors": []})
        )
        labels, err = await fetch_labels(httpclient, IMAGE)
        assert err and labels == {}

    async def test_invalid_image(self, httpclient):
        labels, err = await fetch_labels(httpclient, "myapp:")
        assert err and labels == {}
