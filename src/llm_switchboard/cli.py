from __future__ import annotations

import argparse
import os
import sys
import textwrap
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

import anyio
from dotenv import load_dotenv

from llm_switchboard.backends.base import (
    ChatMessage,
    ChatRequest,
    CompletionRequest,
    CompletionResult,
    NoBackendsConfigured,
)
from llm_switchboard.config import ConfigurationError, OrchestratorSettings, load_settings
from llm_switchboard.logging_config import configure_logging
from llm_switchboard.runtime import BackendOrchestrator
from llm_switchboard.server import CONFIG_ENV_VAR

_ACCENT_DEFAULT = "cyan"
_DEFAULT_CONFIG = "llm-switchboard.json"
_RESET = "\033[0m"
_COLOUR_CODES: Mapping[str, str] = {
    "cyan": "\033[38;5;45m",
    "violet": "\033[38;5;177m",
    "green": "\033[38;5;48m",
    "amber": "\033[38;5;214m",
    "red": "\033[38;5;203m",
}


@dataclass(slots=True)
class _CLIContext:
    accent: str
    config_path: str


def _colourise(text: str, style: str) -> str:
    colour = _COLOUR_CODES.get(style, _COLOUR_CODES.get("cyan", ""))
    reset = _RESET if colour else ""
    return f"{colour}{text}{reset}"


def _panel(title: str, body: str, style: str = "cyan") -> str:
    raw_lines: list[str] = []
    for line in body.splitlines() or [""]:
        if not line.strip():
            raw_lines.append("")
            continue
        raw_lines.extend(textwrap.wrap(line, width=72) or [""])

    content_width = max([len(title), *(len(line) for line in raw_lines)])
    border = "=" * (content_width + 4)
    title_line = f"= {title.center(content_width)} ="
    body_lines = [f"| {line.ljust(content_width)} |" for line in (raw_lines or [""])]
    panel_lines = [border, title_line, border, *body_lines, border]
    coloured = [_colourise(line, style) for line in panel_lines]
    return "\n".join(coloured)


def _print_panel(title: str, body: str, style: str = "cyan") -> None:
    print(_panel(title, body, style))


def _load_orchestrator(ctx: _CLIContext) -> BackendOrchestrator:
    settings: OrchestratorSettings = load_settings(ctx.config_path)
    return BackendOrchestrator.from_settings(settings)


def _format_result(result: CompletionResult) -> str:
    lines = [result.text if result.success else f"Error: {result.error_message}"]
    if not result.success and result.alternative_results:
        cause = result.alternative_results[-1]
        lines.append(f"Cause: {cause.error_message or 'unknown error'} ({cause.backend_name})")
    lines.append("")
    lines.append(f"Backend: {result.backend_name or 'unknown'}")
    if result.model:
        lines.append(f"Model: {result.model}")
    if result.total_tokens is not None:
        lines.append(f"Tokens: {result.prompt_tokens} prompt / {result.completion_tokens} completion")
    lines.append(f"Duration: {result.duration_ms:.1f} ms")
    for alternative in result.alternative_results:
        outcome = "ok" if alternative.success else f"failed ({alternative.error_message})"
        lines.append(f"Alternative {alternative.backend_name}: {outcome}")
    return "\n".join(lines)


def _run_request(
    ctx: _CLIContext,
    title: str,
    call: Callable[[BackendOrchestrator], Any],
) -> int:
    try:
        orchestrator = _load_orchestrator(ctx)
    except ConfigurationError as exc:
        _print_panel(title, f"Configuration error: {exc}", "red")
        return 1

    async def _invoke() -> CompletionResult:
        async with orchestrator:
            return await call(orchestrator)

    try:
        result = anyio.run(_invoke)
    except NoBackendsConfigured as exc:
        _print_panel(title, str(exc) or "No backends are configured.", "red")
        return 1
    except Exception as exc:
        _print_panel(title, f"Backend raised {type(exc).__name__}: {exc}", "red")
        return 1

    _print_panel(title, _format_result(result), ctx.accent if result.success else "red")
    return 0 if result.success else 1


def _complete_command(args: argparse.Namespace, ctx: _CLIContext) -> int:
    request = CompletionRequest(
        prompt=args.prompt_text,
        system_message=args.system,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
    )
    return _run_request(
        ctx,
        "Completion",
        lambda orchestrator: orchestrator.acomplete(request, preferred_backend=args.backend),
    )


def _parse_message(raw: str) -> ChatMessage:
    role, sep, content = raw.partition(":")
    if sep and role.strip().lower() in {"system", "user", "assistant"}:
        return ChatMessage(role=role.strip().lower(), content=content.strip())
    return ChatMessage(role="user", content=raw)


def _chat_command(args: argparse.Namespace, ctx: _CLIContext) -> int:
    request = ChatRequest(
        messages=tuple(_parse_message(message) for message in args.messages),
        system_message=args.system,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
    )
    return _run_request(
        ctx,
        "Chat",
        lambda orchestrator: orchestrator.achat(request, preferred_backend=args.backend),
    )


def _check_command(_args: argparse.Namespace, ctx: _CLIContext) -> int:
    try:
        orchestrator = _load_orchestrator(ctx)
    except ConfigurationError as exc:
        _print_panel("Backends", f"Configuration error: {exc}", "red")
        return 1

    async def _check_health():
        async with orchestrator:
            return await orchestrator.test_backends()

    health = anyio.run(_check_health)
    if not health:
        _print_panel("Backends", "No backends are configured.", "amber")
        return 1

    lines: list[str] = []
    for name, entry in health.items():
        status = "HEALTHY" if entry.is_healthy else "UNHEALTHY"
        line = f"- {name}: {status}"
        if not entry.within_budget:
            line += " (over budget)"
        if entry.last_error:
            line += f"\n  Last error: {entry.last_error}"
        lines.append(line)

    all_healthy = all(entry.is_healthy for entry in health.values())
    _print_panel("Backends", "\n".join(lines), ctx.accent if all_healthy else "amber")
    return 0 if all_healthy else 1


def _run_with_uvicorn(options: Mapping[str, object]) -> None:
    import uvicorn

    uvicorn.run("llm_switchboard.server:create_app_from_env", factory=True, **options)


def _serve_command(args: argparse.Namespace, ctx: _CLIContext) -> int:
    os.environ[CONFIG_ENV_VAR] = ctx.config_path
    options: dict[str, object] = {
        "host": args.host,
        "port": args.port,
        "reload": args.reload,
        "workers": None if args.reload else args.workers,
        "log_config": None,
    }

    mode = "with auto-reload" if args.reload else f"with {args.workers} workers"
    _print_panel("Server", f"Uvicorn on {args.host}:{args.port} {mode}", ctx.accent)

    try:
        _run_with_uvicorn(options)
    except KeyboardInterrupt:
        _print_panel("Server", "Interrupted by user", "amber")
    return 0


def _add_sampling_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--backend", default=None, help="Route the request to this backend when registered.")
    parser.add_argument("--system", default=None, help="System message prepended to the request.")
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature.")
    parser.add_argument("--max-tokens", type=int, default=None, help="Maximum tokens for the completion.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Route completions across LLM backends.")
    parser.add_argument(
        "--accent",
        default=_ACCENT_DEFAULT,
        choices=sorted(_COLOUR_CODES.keys()),
        help="Accent colour for decorated output.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to the JSON configuration (defaults to ${CONFIG_ENV_VAR} or {_DEFAULT_CONFIG}).",
    )
    parser.add_argument("--log-level", default=None, help="Log level (defaults to $LOG_LEVEL or INFO).")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host interface for the HTTP server.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port for the HTTP server.")
    serve_parser.add_argument("--workers", type=int, default=1, help="Number of worker processes.")
    serve_parser.add_argument("--reload", action="store_true", help="Restart the server when code changes.")
    serve_parser.set_defaults(handler=_serve_command)

    complete_parser = subparsers.add_parser("complete", help="Submit a prompt and display the completion.")
    complete_parser.add_argument("prompt_text", help="Prompt text to submit.")
    _add_sampling_arguments(complete_parser)
    complete_parser.set_defaults(handler=_complete_command)

    chat_parser = subparsers.add_parser("chat", help="Submit a conversation and display the reply.")
    chat_parser.add_argument(
        "messages",
        nargs="+",
        help="Conversation turns as 'role: content'; turns without a role are sent as user messages.",
    )
    _add_sampling_arguments(chat_parser)
    chat_parser.set_defaults(handler=_chat_command)

    check_parser = subparsers.add_parser("check", help="Check every configured backend and report health.")
    check_parser.set_defaults(handler=_check_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    config_path = args.config or os.environ.get(CONFIG_ENV_VAR, _DEFAULT_CONFIG)
    context = _CLIContext(accent=args.accent, config_path=config_path)
    handler: Callable[[argparse.Namespace, _CLIContext], int] = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args, context)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
