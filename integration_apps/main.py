"""CLI entry point for invoking a single tool during development.

Credentials come from the process environment / ``.env`` file.  For
production, use the FastAPI server (integration_apps/server.py).

Usage:
    python -m integration_apps.main petbooqz calendars_list
    python -m integration_apps.main phone send_sms --inputs '{"to": "+15550100", ...}'
    python -m integration_apps.main meta list_instagram_accounts --debug
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

from integration_apps.config import HOST_API_TOKEN_KEY
from integration_apps.errors import IntegrationError
from integration_apps.registry import APPS, invoke_tool
from integration_apps.services.host_platform import HostPlatformClient
from integration_apps.tools.common import ToolContext, ToolResult

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("integration_apps").setLevel(logging.DEBUG if debug else logging.INFO)


async def _run(app: str, tool: str, inputs: dict, installation_id: str | None) -> ToolResult:
    env = dict(os.environ)
    host = None
    if env.get(HOST_API_TOKEN_KEY):
        host = HostPlatformClient.from_env(env, installation_id)
    try:
        return await invoke_tool(
            app, tool, inputs, ToolContext(env=env, host=host, app_installation_id=installation_id),
        )
    finally:
        if host is not None:
            await host.aclose()


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run one tool and print its result as JSON."""
    parser = argparse.ArgumentParser(description="Invoke an integration app tool")
    parser.add_argument("app", choices=sorted(APPS), help="App name")
    parser.add_argument("tool", help="Tool name within the app")
    parser.add_argument("--inputs", default="{}", help="Tool inputs as a JSON object")
    parser.add_argument("--installation", default=None, help="Host app installation ID")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    try:
        inputs = json.loads(args.inputs)
    except ValueError as e:
        parser.error(f"--inputs is not valid JSON: {e}")

    try:
        result = asyncio.run(_run(args.app, args.tool, inputs, args.installation))
    except (IntegrationError, ValidationError) as e:
        logger.debug("Tool invocation failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.model_dump(), indent=2, default=str))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
