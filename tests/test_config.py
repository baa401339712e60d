import json

import pytest
import yaml

from webhook_server import config
from webhook_server.config import build_settings, load_settings, merge_config
from webhook_server.security import ConfigError

WEBHOOKS = [
    {"name": "ls", "command": "/bin/ls {{param1}} {{param2}}", "cwd": "/tmp"},
    {"name": "deploy", "command": "./deploy.sh", "cwd": "/srv", "pueue_group": "deploys"},
]


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture
def isolated(monkeypatch, tmp_path):
    """Keep the real config search paths and environment out of the tests."""
    monkeypatch.setattr(config, "get_config_paths", lambda: [])
    for key in config.SCALAR_KEYS:
        monkeypatch.delenv(config.ENV_PREFIX + key.upper(), raising=False)
    return tmp_path


def test_defaults():
    settings = build_settings(dict(config.DEFAULTS))
    assert settings.domain == "127.0.0.1"
    assert settings.port == 8000
    assert settings.runner == "pueue"
    assert not settings.auth.has_secret
    assert not settings.auth.has_basic_auth
    assert len(settings.registry) == 0
    assert not settings.tls_enabled


def test_load_settings_from_file(isolated):
    path = write_yaml(isolated / "webhook_server.yml", {
        "port": 9000,
        "secret": "A secret string",
        "basic_auth_user": "TestUser",
        "basic_auth_password": "TestPassword",
        "webhooks": WEBHOOKS,
    })
    settings = load_settings(str(path))

    assert settings.port == 9000
    assert settings.auth.shared_secret == b"A secret string"
    assert settings.auth.basic_auth_credentials == ("TestUser", "TestPassword")
    assert settings.auth.require_both is False
    assert settings.registry.resolve("deploy").execution_target == "deploys"
    assert settings.registry.resolve("ls").execution_target == "webhook"


def test_json_config_is_accepted(isolated):
    path = isolated / "webhook_server.json"
    path.write_text(json.dumps({"webhooks": WEBHOOKS}))
    assert len(load_settings(str(path)).registry) == 2


def test_later_files_override_earlier(tmp_path):
    first = write_yaml(tmp_path / "a.yml", {"port": 1000, "domain": "0.0.0.0"})
    second = write_yaml(tmp_path / "b.yml", {"port": 2000})
    merged = merge_config([first, tmp_path / "missing.yml", second], environ={})
    assert merged["port"] == 2000
    assert merged["domain"] == "0.0.0.0"


def test_environment_overrides_files(tmp_path):
    path = write_yaml(tmp_path / "a.yml", {"port": 1000, "secret": "from-file"})
    merged = merge_config([path], environ={"WEBHOOK_SERVER_PORT": "3000", "WEBHOOK_SERVER_SECRET": "from-env"})
    settings = build_settings(merged)
    assert settings.port == 3000
    assert settings.auth.shared_secret == b"from-env"


def test_explicit_config_env_path(monkeypatch, tmp_path):
    path = write_yaml(tmp_path / "custom.yml", {"port": 4242})
    monkeypatch.setenv(config.CONFIG_PATH_ENV, str(path))
    assert config.get_config_paths()[-1] == path


def test_missing_explicit_file(isolated):
    with pytest.raises(ConfigError):
        load_settings(str(isolated / "nope.yml"))


def test_invalid_yaml(isolated):
    path = isolated / "broken.yml"
    path.write_text("port: [1, 2\n")
    with pytest.raises(ConfigError):
        load_settings(str(path))


def test_unreadable_file(isolated):
    # Opening a directory fails with an OSError
    with pytest.raises(ConfigError) as exc:
        config.load_config_file(isolated)
    assert "cannot be read" in exc.value.message


def test_non_utf8_file(isolated):
    path = isolated / "latin1.yml"
    path.write_bytes(b"secret: caf\xe9\n")
    with pytest.raises(ConfigError):
        load_settings(str(path))


def test_non_mapping_file(isolated):
    path = isolated / "list.yml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        load_settings(str(path))


@pytest.mark.parametrize("overrides, field", [
    ({"basic_auth_user": "u"}, "basic_auth_password"),
    ({"basic_auth_password": "p"}, "basic_auth_user"),
    ({"basic_auth_and_secret": True, "secret": "s"}, "basic_auth_user"),
    ({"basic_auth_and_secret": True, "basic_auth_user": "u", "basic_auth_password": "p"}, "secret"),
    ({"port": "http"}, "port"),
    ({"port": 0}, "port"),
    ({"ssl_private_key": "key.pem"}, "ssl_cert_chain"),
    ({"runner": "cron"}, "runner"),
    ({"runner": "http"}, "runner_url"),
    ({"basic_auth_and_secret": "maybe"}, "basic_auth_and_secret"),
    ({"webhooks": {"name": "ls"}}, "webhooks"),
])
def test_invalid_settings(overrides, field):
    raw = dict(config.DEFAULTS)
    raw.update(overrides)
    with pytest.raises(ConfigError) as exc:
        build_settings(raw)
    assert exc.value.field == field


def test_duplicate_webhook_names():
    raw = dict(config.DEFAULTS, webhooks=[WEBHOOKS[0], WEBHOOKS[0]])
    with pytest.raises(ConfigError):
        build_settings(raw)


def test_webhook_name_must_be_path_segment():
    raw = dict(config.DEFAULTS, webhooks=[{"name": "a/b", "command": "ls", "cwd": "/"}])
    with pytest.raises(ConfigError):
        build_settings(raw)


def test_require_both_enabled():
    raw = dict(
        config.DEFAULTS,
        secret="s", basic_auth_user="u", basic_auth_password="p", basic_auth_and_secret="true",
    )
    assert build_settings(raw).auth.require_both is True


def test_tls_and_http_runner():
    raw = dict(
        config.DEFAULTS,
        ssl_private_key="key.pem", ssl_cert_chain="chain.pem",
        runner="http", runner_url="http://runner:9000", runner_timeout="2.5",
    )
    settings = build_settings(raw)
    assert settings.tls_enabled
    assert settings.runner_url == "http://runner:9000"
    assert settings.runner_timeout == 2.5


def test_settings_are_immutable():
    settings = build_settings(dict(config.DEFAULTS))
    with pytest.raises(AttributeError):
        settings.port = 1
