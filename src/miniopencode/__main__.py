import argparse
import asyncio
import contextlib
import sys

import httpx
from dotenv import load_dotenv
from loguru import logger

from miniopencode.app_config import AppConfig, apply_env_overrides, load_json_config, parse_app_config
from miniopencode.bootstrap import AppRuntime, bootstrap_runtime, build_resolver, event_feed_for
from miniopencode.catalog_client import CatalogClient
from miniopencode.commands.router import CommandRouter
from miniopencode.errors import MiniOpencodeError
from miniopencode.headless import HeadlessProxy
from miniopencode.logging_config import setup_logging
from miniopencode.services.session_controller import SessionController

_LINE_PREFIX = "assistant> "

_HELP_LINES = [
    "Commands:",
    "  /help        show this help",
    "  /session     show the active session",
    "  /sessions    list sessions on the server",
    "  /thinking    toggle reasoning output",
    "  /tools       toggle tool output",
    "  /transcript  print the whole transcript",
    "  exit, quit   leave",
]

# CLI flag -> config key
_CLI_KEYS = {
    "host": "Host",
    "port": "Port",
    "session": "DefaultSession",
    "daily_max_tokens": "DailyMaxTokens",
    "daily_max_messages": "DailyMaxMessages",
    "agent": "Agent",
    "provider": "ProviderId",
    "model": "ModelId",
    "show_thinking": "ShowThinking",
    "show_tools": "ShowTools",
    "max_output_lines": "MaxOutputLines",
    "log_level": "LogLevel",
}


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="miniopencode", description="Terminal client for an opencode server.")
    parser.add_argument("--config", help="path to a JSON config file")
    parser.add_argument("--headless", action="store_true", help="JSON lines on stdin/stdout instead of a chat prompt")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--session", help="session id, title, or 'daily'")
    parser.add_argument("--daily-max-tokens", type=int)
    parser.add_argument("--daily-max-messages", type=int)
    parser.add_argument("--agent")
    parser.add_argument("--provider")
    parser.add_argument("--model")
    parser.add_argument("--show-thinking", dest="show_thinking", action="store_true", default=None)
    parser.add_argument("--hide-thinking", dest="show_thinking", action="store_false", default=None)
    parser.add_argument("--show-tools", dest="show_tools", action="store_true", default=None)
    parser.add_argument("--hide-tools", dest="show_tools", action="store_false", default=None)
    parser.add_argument("--max-output-lines", type=int)
    parser.add_argument("--log-level")
    return parser


def load_app_config(args: argparse.Namespace) -> AppConfig:
    config = apply_env_overrides(load_json_config(args.config))
    for attr, key in _CLI_KEYS.items():
        value = getattr(args, attr, None)
        if value is not None:
            config[key] = value
    return parse_app_config(config)


async def run_interactive(app: AppConfig) -> None:
    runtime = await bootstrap_runtime(app)
    controller = runtime.controller
    sessions = SessionController(line_prefix=_LINE_PREFIX)

    async def on_help() -> None:
        for line in _HELP_LINES:
            print(f"{_LINE_PREFIX}{line}")

    async def on_session() -> None:
        print(sessions.format_active_session(runtime.session_id, base_url=app.base_url))

    async def on_sessions() -> None:
        listed = await runtime.catalog.list_sessions()
        for line in sessions.format_session_list(listed, active_session_id=runtime.session_id):
            print(line)

    async def on_thinking() -> None:
        controller.set_show_thinking(not controller.options.show_thinking)
        print(f"\n{_LINE_PREFIX}Thinking output {'on' if controller.options.show_thinking else 'off'}")

    async def on_tools() -> None:
        controller.set_show_tools(not controller.options.show_tools)
        print(f"\n{_LINE_PREFIX}Tool output {'on' if controller.options.show_tools else 'off'}")

    async def on_transcript() -> None:
        print()
        print(controller.render(max_lines=app.max_output_lines))

    def on_unknown(command: str) -> None:
        print(f"{_LINE_PREFIX}Unknown command: {command} (try /help)")

    router = CommandRouter(
        on_help=on_help,
        on_session=on_session,
        on_sessions=on_sessions,
        on_thinking=on_thinking,
        on_tools=on_tools,
        on_transcript=on_transcript,
        on_unknown=on_unknown,
    )

    _print_banner(app, runtime)
    runtime.streamer.start()
    run_task = asyncio.create_task(controller.run())
    try:
        while not run_task.done():
            try:
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                if await router.try_handle(trimmed):
                    continue
                print()
                if await controller.send(trimmed):
                    await _wait_for_reply(controller.wait_idle(), run_task)
                print("\n")
            except (MiniOpencodeError, httpx.HTTPError) as ex:
                logger.error(f"Command failed: {ex}")
                print(f"{_LINE_PREFIX}Error: {ex}")
    finally:
        await runtime.close()
        run_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await run_task


async def _wait_for_reply(idle, run_task: asyncio.Task) -> None:
    # The run task ends early when the feed fails; stop waiting then.
    idle_task = asyncio.ensure_future(idle)
    await asyncio.wait({idle_task, run_task}, return_when=asyncio.FIRST_COMPLETED)
    if not idle_task.done():
        idle_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await idle_task


def _print_banner(app: AppConfig, runtime: AppRuntime) -> None:
    print("miniopencode (type 'exit' to quit, '/help' for commands)")
    print(f"Server: {app.base_url}")
    print(f"Session: {runtime.session_id}")
    if app.provider_id and app.model_id:
        print(f"Model: {app.provider_id}/{app.model_id}")
    if app.agent:
        print(f"Agent: {app.agent}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()


async def run_headless(app: AppConfig) -> None:
    setup_logging(level=app.log_level, consumers=app.log_consumers)
    async with CatalogClient(app.base_url, timeout=app.request_timeout_seconds) as catalog:
        session_id = ""
        if app.default_session:
            session_id = await build_resolver(app, catalog).resolve(app.default_session)
        proxy = HeadlessProxy(
            catalog,
            feed_factory=lambda: event_feed_for(app),
            host=app.host,
            port=app.port,
            session_id=session_id,
        )
        await proxy.run()


async def amain(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_arg_parser().parse_args(argv)
    try:
        app = load_app_config(args)
    except (ValueError, OSError) as ex:
        logger.error(f"miniopencode: config load failed: {ex}")
        print(f"error: {ex}", file=sys.stderr)
        return 1

    try:
        if args.headless:
            await run_headless(app)
        else:
            await run_interactive(app)
    except (MiniOpencodeError, httpx.HTTPError) as ex:
        logger.error(f"miniopencode: {ex}")
        print(f"error: {ex}", file=sys.stderr)
        return 1
    return 0


def main() -> None:
    try:
        sys.exit(asyncio.run(amain()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
