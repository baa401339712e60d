import subprocess
from types import SimpleNamespace

import pytest
import requests

from webhook_server import runners
from webhook_server.runners import (
    HttpRunner,
    InMemoryRunner,
    PueueRunner,
    RunnerError,
    get_runner,
)


class FakeRun:
    """Stand-in for subprocess.run that records its arguments."""

    def __init__(self, returncode=0, stdout="", stderr="", exc=None):
        self.calls = []
        self.result = subprocess.CompletedProcess([], returncode, stdout, stderr)
        self.exc = exc

    def __call__(self, args, **kwargs):
        self.calls.append((args, kwargs))
        if self.exc:
            raise self.exc
        return self.result


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body
        self.ok = status_code < 400

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


# ============================================================
# Pueue
# ============================================================

def test_pueue_submit_builds_add_command(monkeypatch):
    fake = FakeRun(stdout="42\n")
    monkeypatch.setattr(runners.subprocess, "run", fake)

    result = PueueRunner().submit("/bin/ls -al /tmp", "/tmp", "webhook")

    assert result.task_id == "42"
    args, kwargs = fake.calls[0]
    assert args == [
        "pueue", "add", "--print-task-id",
        "--working-directory", "/tmp",
        "--group", "webhook",
        "--", "/bin/ls -al /tmp",
    ]
    assert kwargs["timeout"] == 10


def test_pueue_passes_config_path(monkeypatch):
    fake = FakeRun(stdout="1")
    monkeypatch.setattr(runners.subprocess, "run", fake)

    PueueRunner(binary="/usr/bin/pueue", config_path="/etc/pueue.yml").submit("true", "/", "g")

    assert fake.calls[0][0][:3] == ["/usr/bin/pueue", "--config", "/etc/pueue.yml"]


def test_pueue_nonzero_exit_raises(monkeypatch):
    monkeypatch.setattr(runners.subprocess, "run", FakeRun(returncode=1, stderr="Couldn't connect"))
    with pytest.raises(RunnerError, match="Couldn't connect"):
        PueueRunner().submit("true", "/", "webhook")


def test_pueue_missing_binary_raises(monkeypatch):
    monkeypatch.setattr(runners.subprocess, "run", FakeRun(exc=FileNotFoundError()))
    with pytest.raises(RunnerError, match="not found"):
        PueueRunner().submit("true", "/", "webhook")


def test_pueue_timeout_raises(monkeypatch):
    monkeypatch.setattr(runners.subprocess, "run", FakeRun(exc=subprocess.TimeoutExpired("pueue", 10)))
    with pytest.raises(RunnerError, match="timed out"):
        PueueRunner().submit("true", "/", "webhook")


def test_pueue_ping(monkeypatch):
    monkeypatch.setattr(runners.subprocess, "run", FakeRun(stdout="{}"))
    assert PueueRunner().ping()

    monkeypatch.setattr(runners.subprocess, "run", FakeRun(returncode=1))
    assert not PueueRunner().ping()

    monkeypatch.setattr(runners.subprocess, "run", FakeRun(exc=FileNotFoundError()))
    assert not PueueRunner().ping()


# ============================================================
# HTTP
# ============================================================

def test_http_submit_posts_task(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return FakeResponse(body={"task_id": 7})

    monkeypatch.setattr(runners.requests, "post", fake_post)

    result = HttpRunner("http://runner:9000/", timeout=3).submit("make", "/src", "builds")

    assert result.task_id == "7"
    assert calls == [("http://runner:9000/tasks", {"command": "make", "path": "/src", "group": "builds"}, 3)]


def test_http_submit_without_json_body(monkeypatch):
    monkeypatch.setattr(runners.requests, "post", lambda *a, **kw: FakeResponse(body=None))
    result = HttpRunner("http://runner").submit("make", "/src", "builds")
    assert result.task_id is None


def test_http_submit_error_status(monkeypatch):
    monkeypatch.setattr(runners.requests, "post", lambda *a, **kw: FakeResponse(status_code=503))
    with pytest.raises(RunnerError):
        HttpRunner("http://runner").submit("make", "/src", "builds")


def test_http_submit_connection_error(monkeypatch):
    def boom(*a, **kw):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(runners.requests, "post", boom)
    with pytest.raises(RunnerError, match="refused"):
        HttpRunner("http://runner").submit("make", "/src", "builds")


def test_http_ping(monkeypatch):
    monkeypatch.setattr(runners.requests, "get", lambda *a, **kw: FakeResponse(status_code=200))
    assert HttpRunner("http://runner").ping()

    def boom(*a, **kw):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(runners.requests, "get", boom)
    assert not HttpRunner("http://runner").ping()


# ============================================================
# In-memory and factory
# ============================================================

def test_in_memory_runner_records_tasks():
    runner = InMemoryRunner()
    first = runner.submit("a", "/", "g")
    second = runner.submit("b", "/", "g")
    assert (first.task_id, second.task_id) == ("0", "1")
    assert [t.command for t in runner.tasks] == ["a", "b"]
    assert runner.ping()


def test_in_memory_runner_failure():
    runner = InMemoryRunner(fail_with="down")
    with pytest.raises(RunnerError):
        runner.submit("a", "/", "g")
    assert not runner.ping()


def _settings(**kwargs):
    base = dict(runner="pueue", runner_url=None, runner_timeout=5, pueue_binary="pueue", pueue_config=None)
    base.update(kwargs)
    return SimpleNamespace(**base)


def test_get_runner_selects_backend():
    assert isinstance(get_runner(_settings()), PueueRunner)
    assert isinstance(get_runner(_settings(runner="memory")), InMemoryRunner)
    http = get_runner(_settings(runner="http", runner_url="http://runner"))
    assert isinstance(http, HttpRunner)
    assert http.timeout == 5
