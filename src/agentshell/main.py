"""
agentshell entry point.

This file handles startup concerns (arg-parsing, settings, logging) and launches either the HTTP
API or a one-shot agent run.
"""

import argparse
import asyncio
import logging
import sys

from agentshell.agent.agent import Agent
from agentshell.api.app import run_api
from agentshell.common import (
    AnsiColors,
    colored_print,
)
from agentshell.config import Settings
from agentshell.llm.transport import TransportError
from agentshell.pipeline.processors import InputValidationError
from agentshell.pipeline.smart_agent import SmartAgent

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Reduce httpx request logging to WARNING
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the agentshell coding agent")
    parser.add_argument(
        "--mode",
        choices=["api", "run"],
        type=str.lower,
        default="api",
        help="Serve the REST API or run a single message and exit (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--intelligent",
        dest="intelligent",
        action="store_true",
        default=settings.INTELLIGENT_MODE,
        help="Answer with the local planner instead of the model loop",
    )
    parser.add_argument(
        "--standard",
        dest="intelligent",
        action="store_false",
        help="Answer with the model loop (default unless INTELLIGENT_MODE is set)",
    )
    parser.add_argument("message", nargs="*", help="Message to send in run mode")
    return parser


async def run_once(settings: Settings, message: str) -> int:
    """Send *message* through a fresh smart agent and print the reply; return an exit code."""
    smart_agent = SmartAgent(Agent(settings), enable_logging=False)
    try:
        result = await smart_agent.execute(message)
    except InputValidationError as exc:
        colored_print(f"❌ {exc}", AnsiColors.RED)
        return 2
    except TransportError as exc:
        logger.error("LLM transport failed: %s", exc)
        colored_print(f"❌ LLM request failed: {exc}", AnsiColors.RED)
        return 1

    response = result.response
    for tool in response.tools_used:
        status, color = ("ok", AnsiColors.GREEN) if tool.success else ("failed", AnsiColors.RED)
        colored_print(f"🔧 {tool.tool_name}: {status}", color)
    print(result.message)
    if result.tokens:
        colored_print(f"Tokens: {result.tokens.total_tokens}", AnsiColors.CYAN)
    return 0


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for agentshell.

    Settings are loaded once here and passed down; the command line overrides the log level and
    the planner mode.
    """
    if argv is None:
        argv = sys.argv[1:]

    settings = Settings()
    parser = build_parser(settings)
    args = parser.parse_args(argv)

    # Override settings with command-line arguments
    settings.LOG_LEVEL = args.log_level
    settings.INTELLIGENT_MODE = args.intelligent

    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting agentshell [%s mode]", args.mode)
    logger.debug("Settings: %s", settings.model_dump(exclude={"LLM_API_KEY"}))

    if args.mode == "api":
        if args.message:
            parser.error("A message is only accepted in run mode")
        run_api(settings, port=settings.API_PORT)
        return

    message = " ".join(args.message)
    if not message:
        parser.error("run mode needs a message")
    sys.exit(asyncio.run(run_once(settings, message)))


if __name__ == "__main__":
    main()
