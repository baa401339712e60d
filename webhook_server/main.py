from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from .config import Settings, load_settings
from .dispatcher import Dispatcher, DispatchState, IncomingRequest
from .logging_config import audit_log, set_request_id
from .models import DispatchResponse
from .runners import TaskRunner, get_runner
from .security import normalize_headers, request_id_from_headers

app = FastAPI(title="Webhook Server")

# Replaced as a whole by configure(), never mutated in place
DISPATCHER: Optional[Dispatcher] = None


def configure(settings: Settings, runner: Optional[TaskRunner] = None) -> Dispatcher:
    """Install a new settings snapshot and runner for all following requests."""
    global DISPATCHER
    DISPATCHER = Dispatcher(settings, runner or get_runner(settings))
    return DISPATCHER


def get_dispatcher() -> Dispatcher:
    if DISPATCHER is None:
        raise HTTPException(503, "NOT_CONFIGURED")
    return DISPATCHER


@app.on_event("startup")
def _startup():
    if DISPATCHER is None:
        configure(load_settings())


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    headers = normalize_headers(request.headers.items())
    request_id = set_request_id(request_id_from_headers(headers))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.api_route("/{webhook_name}", methods=["GET", "POST"], response_model=DispatchResponse)
async def webhook(webhook_name: str, request: Request):
    dispatcher = get_dispatcher()
    # Raw bytes are kept for the signature; the dispatcher parses them once authorized
    body = await request.body()

    incoming = IncomingRequest(
        action_name=webhook_name,
        raw_body=body,
        headers=normalize_headers(request.headers.items()),
        method=request.method,
    )
    outcome = await run_in_threadpool(dispatcher.dispatch, incoming)

    if outcome.state == DispatchState.NOT_FOUND:
        raise HTTPException(404, "NOT_FOUND")

    if outcome.state == DispatchState.UNAUTHORIZED:
        # Never reveal which mechanism failed
        headers = None
        if dispatcher.settings.auth.has_basic_auth:
            headers = {"WWW-Authenticate": 'Basic realm="webhook-server"'}
            audit_log.security_event("basic_auth_challenge", severity="low", webhook=webhook_name)
        raise HTTPException(401, "UNAUTHORIZED", headers=headers)

    if outcome.state == DispatchState.INVALID_PAYLOAD:
        raise HTTPException(400, "INVALID_PAYLOAD")

    if outcome.state == DispatchState.RENDER_FAILED:
        raise HTTPException(400, {
            "error": "RENDER_FAILED",
            "missing_parameter": outcome.missing_parameter,
            "message": outcome.details,
        })

    if outcome.state == DispatchState.RUNNER_ERROR:
        raise HTTPException(502, "RUNNER_ERROR")

    return DispatchResponse(
        status=outcome.state.value,
        webhook=webhook_name,
        task_id=outcome.submission.task_id if outcome.submission else None,
    )
