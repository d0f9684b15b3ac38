"""Centralized configuration for the integration apps.

Two kinds of configuration exist:

* **Server settings** (host, port, timeouts, feature flags): module-level
  constants read once from the environment / ``.env`` file.
* **Credentials**: resolved per call from an explicit env mapping supplied
  by the host platform for one installation.  Handlers never read
  ``os.environ`` themselves; the server gathers provision-level secrets once
  at start-up (:func:`provision_env`) and merges them into each call's env.

Secret resolution order (per variable, see :func:`resolve_secret`):
  1. The per-call env mapping
  2. Environment variable / ``.env`` file  (local dev)
  3. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/integration-apps/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from dotenv import load_dotenv

from integration_apps.errors import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))

SSM_PREFIX = "/integration-apps"


def _env_flag(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes")


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or the lookup fails.
    Errors are logged but never raised so that local-dev fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 - lazy import keeps boto3 out of the hot path

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"{SSM_PREFIX}/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def resolve_secret(
    name: str,
    env: Mapping[str, str | None] | None = None,
    *,
    required: bool = True,
) -> str | None:
    """Return a config value from the call env, process env or SSM.

    Raises:
        ConfigurationError: if *required* and no source has a usable value.
    """
    if env is not None:
        value = env.get(name)
        if value:
            return value

    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    if required:
        raise ConfigurationError(
            f"Missing required configuration: {name}. "
            f"Set it in .env (local) or SSM Parameter Store {SSM_PREFIX}/{name} (AWS)."
        )
    return None


def env_value(
    env: Mapping[str, str | None],
    name: str,
    *,
    required: bool = True,
) -> str | None:
    """Read *name* from an explicit call env only (no process-env fallback)."""
    value = env.get(name)
    if value:
        return value
    if required:
        raise ConfigurationError(f"Missing required configuration: {name}.")
    return None


# Provision-level secrets shared by every installation of an app.  Per-install
# values (Petbooqz credentials, META_ACCESS_TOKEN, Twilio account) arrive in
# the call env instead.
PROVISION_KEYS: tuple[str, ...] = (
    "META_APP_ID",
    "META_APP_SECRET",
    "META_WEBHOOK_VERIFY_TOKEN",
    "GRAPH_API_VERSION",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "PUBLIC_WEBHOOK_HOST",
    "HOST_API_TOKEN",
    "HOST_API_BASE_URL",
)


def provision_env() -> dict[str, str]:
    """Collect provision-level secrets once, for merging into each call env."""
    collected: dict[str, str] = {}
    for key in PROVISION_KEYS:
        value = resolve_secret(key, required=False)
        if value:
            collected[key] = value
    logger.info(
        "Loaded provision env: %s",
        ", ".join(sorted(collected)) or "(none)",
    )
    return collected


# ── Vendor defaults ──────────────────────────────────────────────────
GRAPH_API_VERSION: str = os.getenv("GRAPH_API_VERSION", "v24.0")
GRAPH_API_BASE_URL: str = "https://graph.facebook.com"
TWILIO_API_BASE_URL: str = "https://api.twilio.com/2010-04-01"
TWILIO_NUMBERS_BASE_URL: str = "https://numbers.twilio.com/v2"
REQUEST_TIMEOUT_SECONDS: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15"))

# ── Booking ─────────────────────────────────────────────────────────
AUTO_RELEASE_ON_CONFIRM_FAILURE: bool = _env_flag("AUTO_RELEASE_ON_CONFIRM_FAILURE")

# ── Host platform ───────────────────────────────────────────────────
HOST_API_BASE_URL: str = os.getenv("HOST_API_BASE_URL", "http://localhost:3000/api/v1")
HOST_API_TOKEN_KEY = "HOST_API_TOKEN"

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000",
).split(",")
