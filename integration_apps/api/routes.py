"""FastAPI route definitions: tool invocations and vendor webhooks."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from integration_apps.api.schemas import HealthResponse, ToolInvocationRequest
from integration_apps.config import HOST_API_TOKEN_KEY
from integration_apps.errors import (
    AuthInvalidError,
    ConfigurationError,
    InputValidationError,
    RequestFailedError,
    UnknownHandlerError,
)
from integration_apps.registry import get_webhook, invoke_tool
from integration_apps.services.host_platform import HostPlatformClient, LazyHostPlatform
from integration_apps.tools.common import ToolContext
from integration_apps.webhooks.models import WebhookContext, WebhookRequest, WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter()

# Set by the host platform when it forwards a registered webhook call.
WEBHOOK_CONTEXT_HEADER = "X-Webhook-Context"
INSTALLATION_HEADER = "X-App-Installation-Id"


def _call_env(request: Request, overrides: Mapping[str, str | None] | None = None) -> dict[str, str | None]:
    """Provision-level env from app state, overlaid with per-call values."""
    env: dict[str, str | None] = dict(getattr(request.app.state, "provision_env", {}) or {})
    env.update(overrides or {})
    return env


def _error(status_code: int, message: str, code: str | None = None) -> JSONResponse:
    body = {"error": message}
    if code:
        body["code"] = code
    return JSONResponse(status_code=status_code, content=body)


def _to_response(result: WebhookResponse) -> Response:
    if result.media_type == "application/json":
        return JSONResponse(status_code=result.status, content=result.body)
    return Response(
        content=result.body or "",
        status_code=result.status,
        media_type=result.media_type,
    )


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/apps/{app}/tools/{tool}")
async def run_tool(app: str, tool: str, body: ToolInvocationRequest, http_request: Request):
    """Invoke one tool with the caller's inputs and installation env.

    Ordinary vendor failures come back as a 200 with ``success: false``.
    Invalid credentials map to 401 ``AUTH_INVALID`` so the host can prompt
    the user to re-authorise the app.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    env = _call_env(http_request, body.env)
    host = None
    if env.get(HOST_API_TOKEN_KEY):
        host = HostPlatformClient.from_env(env, body.app_installation_id)
    context = ToolContext(env=env, host=host, app_installation_id=body.app_installation_id)

    try:
        result = await invoke_tool(app, tool, body.inputs, context)
    except UnknownHandlerError as e:
        return _error(404, str(e))
    except ValidationError as e:
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid tool input", "details": e.errors(include_url=False)},
        )
    except InputValidationError as e:
        return _error(422, str(e))
    except AuthInvalidError as e:
        logger.warning("[%s] %s/%s: credentials rejected", request_id, app, tool)
        return _error(401, str(e), code="AUTH_INVALID")
    except ConfigurationError as e:
        logger.warning("[%s] %s/%s: %s", request_id, app, tool, e)
        return _error(400, str(e), code="CONFIGURATION")
    except RequestFailedError as e:
        logger.warning("[%s] %s/%s failed: %s", request_id, app, tool, e)
        return _error(502, str(e), code=e.kind.value.upper())
    except Exception:
        logger.exception("[%s] Error running %s/%s", request_id, app, tool)
        return _error(500, "An internal error occurred. Please try again.")
    finally:
        if host is not None:
            await host.aclose()

    logger.info("[%s] %s/%s success=%s", request_id, app, tool, result.success)
    return result.model_dump()


@router.api_route("/apps/{app}/webhooks/{name}", methods=["GET", "POST"])
async def run_webhook(app: str, name: str, http_request: Request):
    """Dispatch a vendor callback to its webhook handler.

    The raw body is passed through untouched so signatures can be checked
    against exactly what the vendor sent.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    try:
        definition = get_webhook(app, name)
    except UnknownHandlerError as e:
        return _error(404, str(e))
    if http_request.method not in definition.methods:
        return _error(405, "Method not allowed")

    raw_context = http_request.headers.get(WEBHOOK_CONTEXT_HEADER)
    try:
        registration = json.loads(raw_context) if raw_context else {}
    except ValueError:
        return _error(400, f"Malformed {WEBHOOK_CONTEXT_HEADER} header")

    webhook_request = WebhookRequest(
        method=http_request.method,
        url=str(http_request.url),
        headers=dict(http_request.headers),
        query=dict(http_request.query_params),
        raw_body=await http_request.body(),
    )
    env = _call_env(http_request)
    installation_id = http_request.headers.get(INSTALLATION_HEADER)

    host = LazyHostPlatform(env, installation_id)
    context = WebhookContext(
        env=env, host=host, registration=registration, app_installation_id=installation_id,
    )
    try:
        result = await definition.handler(webhook_request, context)
    except ConfigurationError:
        logger.exception("[%s] Host platform not configured for webhook %s/%s", request_id, app, name)
        return _error(500, "An internal error occurred")
    except Exception:
        logger.exception("[%s] Error handling webhook %s/%s", request_id, app, name)
        return _error(500, "An internal error occurred")
    finally:
        await host.aclose()

    logger.info("[%s] webhook %s/%s -> %d", request_id, app, name, result.status)
    return _to_response(result)
