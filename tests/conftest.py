from typing import Dict

import pytest
from httpx import AsyncClient

import rpk8s.logstreams
from rpk8s.models import CompilerConfig


def pytest_configure(*args, **kwargs):
    """Pytest calls this hook on startup."""
    # Set log level to DEBUG for all unit tests.
    rpk8s.logstreams.setup("DEBUG")


def get_compiler_config(**kwargs) -> CompilerConfig:
    return CompilerConfig(image="my-registry.io/myapp:1.2.3", **kwargs)


def get_labels() -> Dict[str, str]:
    """Return the labels of a typical app with two endpoints."""
    return {
        "com.lightbend.rp.app-name": "myapp",
        "com.lightbend.rp.app-type": "basic",
        "com.lightbend.rp.app-version": "1.2.3-SNAPSHOT",
        "com.lightbend.rp.namespace": "chirper",
        "com.lightbend.rp.modules.service-discovery.enabled": "true",
        "com.lightbend.rp.modules.akka-cluster-bootstrapping.enabled": "false",
        "com.lightbend.rp.endpoints.0.name": "http",
        "com.lightbend.rp.endpoints.0.protocol": "http",
        "com.lightbend.rp.endpoints.0.acls.0.type": "http",
        "com.lightbend.rp.endpoints.0.acls.0.expression": "/api",
        "com.lightbend.rp.endpoints.1.name": "akka-remote",
        "com.lightbend.rp.endpoints.1.protocol": "tcp",
        "com.lightbend.rp.endpoints.1.port": "2552",
        "com.lightbend.rp.secrets.0.namespace": "myns",
        "com.lightbend.rp.secrets.0.name": "db-password",
    }


@pytest.fixture
async def httpclient(respx_mock):
    """Return an async client whose requests are intercepted by `respx`."""
    async with AsyncClient() as client:
        yield client
