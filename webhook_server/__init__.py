"""
Webhook Server

Executes scripts on incoming HTTP requests. Each configured webhook maps
an endpoint name to a command template; verified requests render the
template with their parameters and hand the command to an external task
runner (Pueue by default).

Usage:
    from webhook_server import Dispatcher, IncomingRequest, load_settings
    from webhook_server.runners import get_runner

    settings = load_settings()
    dispatcher = Dispatcher(settings, get_runner(settings))
    outcome = dispatcher.dispatch(IncomingRequest("deploy", body, headers, {"branch": "main"}))
"""

__version__ = "0.1.5"

from .authentication import AuthConfig, VerificationResult, authorize, verify_basic_auth, verify_signature
from .config import Settings, load_settings
from .dispatcher import DispatchOutcome, DispatchState, Dispatcher, IncomingRequest
from .registry import Action, ActionRegistry
from .templating import RenderError, render

__all__ = [
    "Action",
    "ActionRegistry",
    "AuthConfig",
    "DispatchOutcome",
    "DispatchState",
    "Dispatcher",
    "IncomingRequest",
    "RenderError",
    "Settings",
    "VerificationResult",
    "authorize",
    "load_settings",
    "render",
    "verify_basic_auth",
    "verify_signature",
]
