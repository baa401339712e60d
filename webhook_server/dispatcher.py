"""
Webhook dispatcher.

Drives one request through the pipeline:

    RECEIVED -> RESOLVED -> AUTHORIZED -> RENDERED -> DISPATCHED

Every stage may end the request instead:

    RESOLVED   fails with NOT_FOUND       (unknown webhook name)
    AUTHORIZED fails with UNAUTHORIZED    (authorization policy denied)
    RENDERED   fails with INVALID_PAYLOAD (body is not a parameter object)
               or with RENDER_FAILED      (template parameter missing)
    DISPATCHED fails with RUNNER_ERROR    (runner did not accept the task)

The body is only parsed once the request is authorized. The dispatcher
holds no per-request state. Settings and runner are shared read-only
between concurrent requests, and nothing is retried here.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from .authentication import authorize
from .config import Settings
from .logging_config import audit_log
from .models import parse_parameters
from .registry import Action
from .runners import RunnerError, SubmissionResult, TaskRunner
from .templating import RenderError, render

logger = logging.getLogger(__name__)


class DispatchState(str, Enum):
    """Pipeline states, including the terminal failures."""
    RECEIVED = "RECEIVED"
    RESOLVED = "RESOLVED"
    AUTHORIZED = "AUTHORIZED"
    RENDERED = "RENDERED"
    DISPATCHED = "DISPATCHED"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    RENDER_FAILED = "RENDER_FAILED"
    RUNNER_ERROR = "RUNNER_ERROR"


@dataclass(frozen=True)
class IncomingRequest:
    """
    One webhook call as seen by the dispatcher.

    `raw_body` must be the exact bytes received; the signature is computed
    over them. `headers` must use lower-case names. Leave `parameters` as
    None to have them parsed from the JSON body after authorization.
    """
    action_name: str
    raw_body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)
    parameters: Optional[Mapping[str, str]] = None
    method: str = "POST"


@dataclass
class DispatchOutcome:
    """Final state of a request and what was handed to the runner."""
    state: DispatchState
    action: Optional[Action] = None
    command: Optional[str] = None
    missing_parameter: Optional[str] = None
    submission: Optional[SubmissionResult] = None
    details: Optional[str] = None

    def succeeded(self) -> bool:
        return self.state == DispatchState.DISPATCHED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "webhook": self.action.name if self.action else None,
            "missing_parameter": self.missing_parameter,
            "task_id": self.submission.task_id if self.submission else None,
        }


class Dispatcher:
    """
    Resolve, authorize, render and submit webhook requests.

    Usage:
        dispatcher = Dispatcher(settings, runner)
        outcome = dispatcher.dispatch(IncomingRequest("deploy", body, headers, params))
        if outcome.succeeded():
            ...
    """

    def __init__(self, settings: Settings, runner: TaskRunner):
        self.settings = settings
        self.runner = runner

    def dispatch(self, request: IncomingRequest) -> DispatchOutcome:
        name = request.action_name
        audit_log.webhook_received(name, request.method, len(request.raw_body))

        # RECEIVED -> RESOLVED
        action = self.settings.registry.resolve(name)
        if action is None:
            return self._fail(DispatchState.NOT_FOUND, name, details="unknown webhook")

        # RESOLVED -> AUTHORIZED
        decision = authorize(request.raw_body, request.headers, self.settings.auth)
        audit_log.authorization_decision(
            name,
            decision.allowed,
            signature=decision.signature.value,
            basic_auth=decision.basic_auth.value,
            reason=decision.reason.value if decision.reason else None,
        )
        if not decision.allowed:
            return self._fail(DispatchState.UNAUTHORIZED, name, action=action)

        # AUTHORIZED -> RENDERED
        parameters = request.parameters
        if parameters is None:
            try:
                parameters = parse_parameters(request.method, request.raw_body)
            except ValidationError as e:
                details = "; ".join(err["msg"] for err in e.errors(include_input=False))
                return self._fail(DispatchState.INVALID_PAYLOAD, name, action=action, details=details)
        logger.debug("Parameters for %s: %s", name, sorted(parameters))

        try:
            command = render(action.command_template, parameters)
        except RenderError as e:
            return self._fail(
                DispatchState.RENDER_FAILED, name,
                action=action, missing_parameter=e.parameter, details=str(e),
            )
        logger.debug("Template renders properly: %s", command)

        # RENDERED -> DISPATCHED
        try:
            submission = self.runner.submit(command, action.working_directory, action.execution_target)
        except RunnerError as e:
            return self._fail(DispatchState.RUNNER_ERROR, name, action=action, command=command, details=str(e))

        audit_log.dispatch_complete(name, action.execution_target, submission.task_id)
        return DispatchOutcome(
            state=DispatchState.DISPATCHED,
            action=action,
            command=command,
            submission=submission,
        )

    def _fail(self, state: DispatchState, name: str, **kwargs) -> DispatchOutcome:
        audit_log.dispatch_failed(name, state.value, kwargs.get("details"))
        return DispatchOutcome(state=state, **kwargs)
