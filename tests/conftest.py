import base64

import pytest
from fastapi.testclient import TestClient

from webhook_server import main
from webhook_server.authentication import AuthConfig
from webhook_server.config import Settings
from webhook_server.registry import Action, ActionRegistry
from webhook_server.runners import InMemoryRunner
from webhook_server.util import signature_header_value

SECRET = b"A secret string"
USER = "TestUser"
PASSWORD = "TestPassword"
BODY = b'{"parameters": {"param1": "-al", "param2": "/tmp"}}'

ACTIONS = [
    Action("ls", "/bin/ls {{param1}} {{param2}}", "/tmp"),
    Action("deploy", "./deploy.sh --branch {{ branch }}", "/srv/app", "deployments"),
    Action("ping", "echo pong", "/"),
]


def make_settings(secret=SECRET, credentials=None, require_both=False, actions=None) -> Settings:
    return Settings(
        auth=AuthConfig(shared_secret=secret, basic_auth_credentials=credentials, require_both=require_both),
        registry=ActionRegistry(ACTIONS if actions is None else actions),
        runner="memory",
    )


def sign(body: bytes, secret: bytes = SECRET, algorithm: str = "sha1") -> str:
    return signature_header_value(secret, body, algorithm)


def basic_auth(user: str = USER, password: str = PASSWORD) -> str:
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return "Basic " + token


@pytest.fixture
def runner():
    return InMemoryRunner()


@pytest.fixture
def client(runner):
    main.configure(make_settings(), runner)
    yield TestClient(main.app)
    main.DISPATCHER = None


@pytest.fixture
def configure_app(runner):
    """Reconfigure the app with custom settings for one test."""
    def _configure(**kwargs):
        main.configure(make_settings(**kwargs), runner)
        return TestClient(main.app)
    yield _configure
    main.DISPATCHER = None
