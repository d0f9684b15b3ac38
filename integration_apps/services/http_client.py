"""Async HTTP base client shared by every vendor integration.

One call to :meth:`VendorHTTPClient._request` performs exactly one HTTP
request: no retries happen at this layer.  The booking coordinator is the only
component that retries, because only it knows what a retry means.

Subclasses set the vendor name, credentials and headers and may override
:meth:`VendorHTTPClient._error_kind` to recognise vendor-specific auth error
codes, or :meth:`VendorHTTPClient._check_success_payload` for vendors that
embed errors in 2xx responses.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from integration_apps.config import REQUEST_TIMEOUT_SECONDS
from integration_apps.errors import (
    ErrorKind,
    RequestFailedError,
    VendorErrorEnvelope,
    classify_error,
    raise_for_kind,
)
from integration_apps.services.metrics import metrics

logger = logging.getLogger(__name__)


class _NoContent:
    """Sentinel returned for 2xx responses that carry no JSON body."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_CONTENT"


NO_CONTENT = _NoContent()


def parse_error_body(text: str) -> tuple[Any, VendorErrorEnvelope | None]:
    """Best-effort JSON parse of an error body into ``(payload, envelope)``."""
    if not text:
        return None, None
    try:
        payload = json.loads(text)
    except ValueError:
        return text, None
    return payload, VendorErrorEnvelope.from_payload(payload)


class VendorHTTPClient:
    """Thin async wrapper around :class:`httpx.AsyncClient` for one vendor."""

    vendor = "vendor"

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers or {},
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Hooks ────────────────────────────────────────────────────────

    def _error_kind(self, status_code: int, envelope: VendorErrorEnvelope | None) -> ErrorKind:
        return classify_error(status_code, envelope)

    def _check_success_payload(self, status_code: int, payload: Any) -> None:
        """Inspect a parsed 2xx payload; raise if it is really an error."""

    def _failure_message(self, status_code: int, reason: str, text: str) -> str:
        return f"{self.vendor} API request failed: {status_code} {reason}" + (
            f" - {text}" if text else ""
        )

    # ── Request ──────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        form: dict[str, Any] | None = None,
    ) -> Any:
        """Execute one request and return parsed JSON or :data:`NO_CONTENT`.

        Raises:
            AuthInvalidError: credentials rejected (401/403 or vendor auth code).
            RequestFailedError: any other failure, including transport errors.
        """
        operation = f"{method} {path.split('?')[0]}"
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json_body,
                data=form,
            )
        except httpx.HTTPError as exc:
            latency_ms = (time.perf_counter() - started) * 1000
            metrics.record_failure(self.vendor, operation, ErrorKind.TRANSIENT.value, latency_ms)
            logger.warning("%s %s failed: %s", self.vendor, operation, type(exc).__name__)
            raise RequestFailedError(
                f"{self.vendor} API request failed: {type(exc).__name__}: {exc}",
                kind=ErrorKind.TRANSIENT,
            ) from exc

        latency_ms = (time.perf_counter() - started) * 1000

        if not 200 <= response.status_code < 300:
            text = response.text
            _, envelope = parse_error_body(text)
            kind = self._error_kind(response.status_code, envelope)
            metrics.record_failure(self.vendor, operation, kind.value, latency_ms)
            logger.warning(
                "%s %s returned %d (%s)", self.vendor, operation, response.status_code, kind.value,
            )
            if kind is ErrorKind.AUTH_INVALID:
                message = (
                    envelope.message
                    if envelope and envelope.message
                    else f"{self.vendor} API authentication failed ({response.status_code})"
                )
                raise_for_kind(
                    kind,
                    f"{message}. Please re-authorize the app.",
                    status_code=response.status_code,
                )
            raise_for_kind(
                kind,
                self._failure_message(response.status_code, response.reason_phrase, text),
                status_code=response.status_code,
                envelope=envelope,
            )

        content_type = response.headers.get("content-type", "")
        if response.status_code == 204 or not response.content or "json" not in content_type:
            metrics.record_success(self.vendor, operation, latency_ms)
            return NO_CONTENT

        payload = response.json()
        self._check_success_payload(response.status_code, payload)
        metrics.record_success(self.vendor, operation, latency_ms)
        return payload
