"""
Task runner backends.

The webhook server never executes commands itself. Rendered commands are
handed to an external runner which owns execution, output capture and
retries. Backends:
  - PueueRunner: adds tasks to a Pueue daemon through the `pueue` client
  - HttpRunner: posts tasks to a remote runner over HTTP
  - InMemoryRunner: records tasks (development/testing)
"""

import logging
import re
import subprocess
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests

logger = logging.getLogger(__name__)


class RunnerError(Exception):
    """Raised when a task could not be handed to the runner."""


@dataclass(frozen=True)
class SubmissionResult:
    """Result of handing one task to the runner."""
    task_id: Optional[str] = None


class TaskRunner(ABC):
    """Abstract interface for submitting rendered commands."""

    @abstractmethod
    def submit(self, command: str, working_directory: str, execution_target: str) -> SubmissionResult:
        """
        Hand a command to the runner.

        Args:
            command: Fully rendered command line
            working_directory: Directory to run the command in
            execution_target: Runner group for the task

        Returns:
            SubmissionResult of the accepted task

        Raises:
            RunnerError: If the runner is unreachable or rejects the task
        """
        pass

    @abstractmethod
    def ping(self) -> bool:
        """Check whether the runner is reachable."""
        pass


class PueueRunner(TaskRunner):
    """
    Adds tasks to a Pueue daemon using the `pueue` command line client.

    The client reads the daemon's connection settings (port or unix
    socket and shared secret) from its own configuration file.
    """

    TASK_ID_PATTERN = re.compile(r'(\d+)')

    def __init__(self, binary: str = "pueue", config_path: Optional[str] = None, timeout: float = 10):
        self.binary = binary
        self.config_path = config_path
        self.timeout = timeout

    def _base_command(self) -> List[str]:
        cmd = [self.binary]
        if self.config_path:
            cmd += ["--config", self.config_path]
        return cmd

    def _run(self, args: List[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                self._base_command() + args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise RunnerError(f"Pueue client not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise RunnerError("Pueue daemon cannot be reached: timed out") from e

    def submit(self, command: str, working_directory: str, execution_target: str) -> SubmissionResult:
        proc = self._run([
            "add",
            "--print-task-id",
            "--working-directory", working_directory,
            "--group", execution_target,
            "--",
            command,
        ])
        if proc.returncode != 0:
            raise RunnerError(f"Failed to send message to Pueue daemon: {proc.stderr.strip()}")

        match = self.TASK_ID_PATTERN.search(proc.stdout)
        task_id = match.group(1) if match else None
        return SubmissionResult(task_id=task_id)

    def ping(self) -> bool:
        try:
            proc = self._run(["status", "--json"])
        except RunnerError as e:
            logger.warning("%s", e)
            return False
        return proc.returncode == 0


class HttpRunner(TaskRunner):
    """
    Posts tasks as JSON to a remote runner.

    The runner answers 2xx with an optional `{"task_id": ...}` body.
    """

    def __init__(self, url: str, timeout: float = 10):
        self.url = url.rstrip("/")
        self.timeout = timeout

    def submit(self, command: str, working_directory: str, execution_target: str) -> SubmissionResult:
        payload = {"command": command, "path": working_directory, "group": execution_target}
        try:
            r = requests.post(self.url + "/tasks", json=payload, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise RunnerError(f"Runner rejected task: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = {}
        task_id = body.get("task_id") if isinstance(body, dict) else None
        return SubmissionResult(task_id=None if task_id is None else str(task_id))

    def ping(self) -> bool:
        try:
            r = requests.get(self.url + "/health", timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Runner cannot be reached: %s", e)
            return False
        return r.ok


@dataclass
class SubmittedTask:
    """A task recorded by the in-memory runner."""
    task_id: str
    command: str
    working_directory: str
    execution_target: str


class InMemoryRunner(TaskRunner):
    """
    In-memory runner for development/testing.

    WARNING: Nothing is executed. Tasks are only recorded.
    """

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.tasks: List[SubmittedTask] = []
        self._lock = threading.Lock()

    def submit(self, command: str, working_directory: str, execution_target: str) -> SubmissionResult:
        if self.fail_with:
            raise RunnerError(self.fail_with)
        with self._lock:
            task = SubmittedTask(str(len(self.tasks)), command, working_directory, execution_target)
            self.tasks.append(task)
        return SubmissionResult(task_id=task.task_id)

    def ping(self) -> bool:
        return self.fail_with is None


def get_runner(settings) -> TaskRunner:
    """Build the runner backend selected by the `runner` setting."""
    if settings.runner == "http":
        return HttpRunner(url=settings.runner_url, timeout=settings.runner_timeout)
    if settings.runner == "memory":
        return InMemoryRunner()
    return PueueRunner(
        binary=settings.pueue_binary,
        config_path=settings.pueue_config,
        timeout=settings.runner_timeout,
    )
