"""Command-line entrypoint.

Responsibilities (and nothing more):
- Parse options and layer them over the loaded settings
- Configure structlog
- Build RunState (http client, execution client, context cache)
- Dispatch to the pipeline and map failures to an exit status
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

from docweaver import __version__
from docweaver.cache import ContentCache
from docweaver.client import ExecutionClient, build_http_client
from docweaver.config import Settings
from docweaver.errors import DocWeaverError, ErrorCode
from docweaver.inputs import parse_input_spec
from docweaver.pipeline import RunOptions, run_document, run_simple, run_summaries
from docweaver.state import RunState

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1

_COMMAND_HELP = {
    "doc": "Generate a multi-section narrative document (API or CLI docs).",
    "openapi": "Generate an OpenAPI specification from server sources.",
    "simple": "One-pass generation of a single document (release notes, highlights).",
    "summarize": "Summarise every input file into a path -> summary map.",
}


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr; stdout carries generated output for simple/summarize
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-e", "--env", dest="environment", help="Execution environment id")
    common.add_argument("-m", "--model", help="Model id")
    common.add_argument(
        "-i",
        "--input",
        dest="inputs",
        action="append",
        default=[],
        metavar="KEY=GLOB",
        help="Source files tagged by prompt key; repeat for more keys or patterns",
    )
    common.add_argument("--instruction", help="Free-text instruction added to every prompt")
    common.add_argument("--server", help="Execution service base URL")
    common.add_argument("--token", help="Execution service API key")
    common.add_argument(
        "--context", help="Named context for caching and resumption (default: command name)"
    )
    common.add_argument("--prefix", help="Output folder under the content dir (default: context)")
    common.add_argument("-o", "--output", help="Output file (simple and summarize)")
    common.add_argument("--interaction", help="Interaction name on the execution service")
    common.add_argument("--context-dir", help="Directory holding context caches")
    common.add_argument("--content-dir", help="Directory receiving generated documents")
    common.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    common.add_argument("--log-format", choices=["json", "text"])

    parser = argparse.ArgumentParser(
        prog="docweaver",
        description="Resumable document generation from a remote model-execution service.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for command, help_text in _COMMAND_HELP.items():
        sub = subparsers.add_parser(command, parents=[common], help=help_text)
        if command == "doc":
            sub.add_argument("--page-ext", choices=["md", "mdx"], default="mdx")
        if command == "openapi":
            sub.add_argument("--title", default="API", help="info.title of the generated spec")
            sub.add_argument("--api-version", default="1.0.0", help="info.version of the spec")

    return parser


def _overrides(**values: Any) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def build_settings(args: argparse.Namespace) -> Settings:
    """Layer command-line flags over env / YAML / default settings."""
    settings = Settings()
    return settings.model_copy(
        update={
            "server": settings.server.model_copy(
                update=_overrides(url=args.server, token=args.token)
            ),
            "generation": settings.generation.model_copy(
                update=_overrides(environment=args.environment, model=args.model)
            ),
            "paths": settings.paths.model_copy(
                update=_overrides(context_dir=args.context_dir, content_dir=args.content_dir)
            ),
            "logging": settings.logging.model_copy(
                update=_overrides(level=args.log_level, format=args.log_format)
            ),
        }
    )


def build_options(args: argparse.Namespace) -> RunOptions:
    return RunOptions(
        mode=args.command,
        context=args.context or args.command,
        inputs=parse_input_spec(args.inputs),
        instruction=args.instruction,
        interaction=args.interaction,
        prefix=args.prefix,
        output=args.output,
        title=getattr(args, "title", "API"),
        api_version=getattr(args, "api_version", "1.0.0"),
        page_extension=getattr(args, "page_ext", "mdx"),
    )


def check_settings(settings: Settings) -> None:
    """Reject configurations that cannot run, before any generation starts."""
    if not settings.server.url:
        raise DocWeaverError(
            code=ErrorCode.INVALID_CONFIG,
            message="Server URL is required",
            suggestion="Pass --server, set DOCWEAVER__SERVER__URL, or add server.url to docweaver.yaml.",
        )


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


async def run(settings: Settings, options: RunOptions) -> None:
    async with build_http_client(settings.server) as http_client:
        state = RunState(
            settings=settings,
            cache=ContentCache(options.context, settings.paths.context_dir),
            executor=ExecutionClient(http_client),
        )
        if options.mode in ("doc", "openapi"):
            await run_document(state, options)
        elif options.mode == "simple":
            text = await run_simple(state, options)
            if not options.output:
                sys.stdout.write(text + "\n")
        else:
            summaries = await run_summaries(state, options)
            if not options.output:
                sys.stdout.write(json.dumps(summaries, indent=2, ensure_ascii=False) + "\n")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = build_settings(args)
    _setup_logging(settings)

    try:
        check_settings(settings)
        options = build_options(args)
        log.info(
            "run_starting",
            version=__version__,
            command=options.mode,
            context=options.context,
            model=settings.generation.model,
            environment=settings.generation.environment,
        )
        asyncio.run(run(settings, options))
    except DocWeaverError as exc:
        log.error(
            "run_failed",
            code=exc.code,
            message=exc.message,
            suggestion=exc.suggestion,
            recoverable=exc.recoverable,
        )
        return EXIT_FAILURE
    except Exception:
        log.error("run_unexpected_error", exc_info=True)
        raise

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
