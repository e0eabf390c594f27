"""CLI entry point for lmss-hosting.

Entry point:
    lmss-cli status [--json]
    lmss-cli models
    lmss-cli chat "Hello" [--system "You are terse."] [--stream]
    lmss-cli monitor
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from lmss_hosting.service import LmssService

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# ARGUMENT PARSING
# ─────────────────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lmss-cli",
        description="Talk to and monitor an LM Studio server.",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )
    parser.add_argument("--base-url", default=None, help="Override LMSS_BASE_URL")
    parser.add_argument("--model", default=None, help="Pin a model (overrides LMSS_MODEL)")
    sub = parser.add_subparsers(dest="command")

    status_p = sub.add_parser("status", help="Show readiness and server status")
    status_p.add_argument(
        "--json", action="store_true", dest="json_output", help="Full JSON output"
    )

    sub.add_parser("models", help="List loaded models")

    chat_p = sub.add_parser("chat", help="Send a single message")
    chat_p.add_argument("message", help="User message")
    chat_p.add_argument("--system", default=None, help="System prompt")
    chat_p.add_argument("--stream", action="store_true", help="Stream the reply")

    sub.add_parser("monitor", help="Run the background monitor until interrupted")

    return parser


# ─────────────────────────────────────────────────────────────────────
# COMMANDS
# ─────────────────────────────────────────────────────────────────────


async def _cmd_status(service: LmssService, json_output: bool = False) -> int:
    """Print readiness and status. Returns 0 only when ready."""
    readiness = await service.check_readiness()
    status = await service.get_server_status()

    if json_output:
        json.dump(
            {
                "readiness": readiness.model_dump(mode="json"),
                "status": status.model_dump(mode="json"),
            },
            sys.stdout,
            indent=2,
        )
        sys.stdout.write("\n")
    else:
        print(readiness.status_description)
        if readiness.message:
            print(readiness.message)
        print(f"Server: {status.base_url}")
        print(f"Current model: {status.current_model or '(first loaded)'}")
    return 0 if readiness.is_ready else 1


async def _cmd_models(service: LmssService) -> int:
    for model_id in await service.get_available_models():
        print(model_id)
    return 0


async def _cmd_chat(
    service: LmssService, message: str, system_prompt: Optional[str], stream: bool
) -> int:
    if stream:
        async for chunk in service.chat_stream(message, system_prompt):
            sys.stdout.write(chunk)
            sys.stdout.flush()
        sys.stdout.write("\n")
        return 0

    result = await service.chat(message, system_prompt)
    if not result.success:
        print(result.user_friendly_error, file=sys.stderr)
        return 1
    print(result.response)
    return 0


async def _cmd_monitor(service: LmssService) -> int:
    from lmss_hosting.monitor import LmssMonitor

    monitor = LmssMonitor(service)
    try:
        await monitor.run()
    finally:
        logger.info(f"Monitor finished in state {monitor.state.value}")
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    from lmss_hosting.config import LmssSettings
    from lmss_hosting.factory import create_service

    settings = LmssSettings.from_env()
    if args.base_url:
        settings.base_url = args.base_url.rstrip("/")
    if args.model:
        settings.default_model = args.model

    async with create_service(settings) as service:
        if args.command == "status":
            return await _cmd_status(service, json_output=args.json_output)
        if args.command == "models":
            return await _cmd_models(service)
        if args.command == "chat":
            return await _cmd_chat(service, args.message, args.system, args.stream)
        if args.command == "monitor":
            return await _cmd_monitor(service)
    return 1


# ─────────────────────────────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────────────────────────────


def main():
    parser = _build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    if args.command == "monitor" and not args.verbose:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s", stream=sys.stderr)

    # Load env
    from dotenv import load_dotenv
    load_dotenv()

    try:
        code = asyncio.run(_dispatch(args))
    except KeyboardInterrupt:
        code = 130

    sys.exit(code)


if __name__ == "__main__":
    main()
