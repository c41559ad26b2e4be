"""
Command-line interface for micro-x-agent-loop.
"""

import argparse
import asyncio
import signal
import sys
import threading

import structlog

from .agent import Agent
from .cancellation import CancellationToken
from .config import Settings, get_settings
from .errors import OperationCancelledError
from .llm import create_llm
from .logging_config import setup_logging
from .resilience import RetryPipeline
from .tools import BaseTool, create_tool_registry

logger = structlog.get_logger()

EXIT_COMMANDS = {"exit", "quit"}


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="micro-x",
        description="micro-x-agent-loop - a tool-calling AI agent for the terminal",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("chat", help="Start an interactive session (default)")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    args = parser.parse_args()

    if args.command == "config":
        sys.exit(show_config(args.check))

    sys.exit(asyncio.run(run_chat(get_settings())))


def show_startup(
    tools: list[BaseTool],
    mcp_tools: list[BaseTool],
    settings: Settings,
    log_descriptions: list[str],
) -> None:
    """Print the startup banner."""
    print("micro-x-agent-loop (type 'exit' to quit)")

    mcp_names = {t.name for t in mcp_tools}
    print("Tools:")
    for tool in tools:
        if tool.name not in mcp_names:
            print(f"  - {tool.name}")

    if mcp_tools:
        servers: dict[str, list[str]] = {}
        for tool in mcp_tools:
            server, _, name = tool.name.partition("__")
            servers.setdefault(server, []).append(name or tool.name)
        print("MCP servers:")
        for server, names in servers.items():
            print(f"  - {server}: {', '.join(names)}")

    if settings.working_directory:
        print(f"Working directory: {settings.working_directory}")

    if settings.compaction_strategy != "none":
        print(
            f"Compaction: {settings.compaction_strategy} "
            f"(threshold: {settings.compaction_threshold_tokens:,} tokens, "
            f"tail: {settings.protected_tail_messages} messages)"
        )

    if log_descriptions:
        print(f"Logging: {', '.join(log_descriptions)}")

    print()


def _stream_text(text: str) -> None:
    print(text, end="", flush=True)


def _settle(future: asyncio.Future, line: str | None, error: BaseException | None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(line)


async def read_input(prompt: str) -> str:
    """Read one line from stdin without blocking the event loop.

    The reader is a daemon thread, so an interrupted prompt never holds up
    interpreter exit.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def reader() -> None:
        try:
            line = input(prompt)
        except Exception as e:
            loop.call_soon_threadsafe(_settle, future, None, e)
        else:
            loop.call_soon_threadsafe(_settle, future, line, None)

    threading.Thread(target=reader, name="stdin-reader", daemon=True).start()
    return await future


async def run_turn(agent: Agent, user_input: str) -> None:
    """Run one turn; Ctrl-C cancels it without leaving the session."""
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    previous = signal.getsignal(signal.SIGINT)

    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user")
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False

    print("\nassistant> ", end="", flush=True)
    try:
        await agent.run(user_input, token)
        print()
    except OperationCancelledError:
        print("\n[cancelled]")
    except Exception as e:
        logger.error("Turn failed", error=str(e), exc_info=True)
        print(f"\nError: {e}")
    finally:
        if handler_installed:
            # remove_signal_handler leaves SIGINT on default_int_handler
            loop.remove_signal_handler(signal.SIGINT)
            if previous is not None:
                signal.signal(signal.SIGINT, previous)


async def run_chat(settings: Settings) -> int:
    """Interactive read-eval-print loop."""
    log_descriptions = setup_logging(settings)

    problems = settings.validate_for_run()
    if problems:
        for problem in problems:
            print(f"Error: {problem}", file=sys.stderr)
        return 1

    mcp = None
    mcp_tools: list[BaseTool] = []
    if settings.mcp_servers:
        from .tools.mcp_tool import McpManager
        mcp = McpManager(settings.mcp_servers)
        mcp_tools = list(await mcp.connect_all())

    try:
        registry = create_tool_registry(settings, extra_tools=mcp_tools)
        llm = create_llm(settings=settings)
        agent = Agent(
            llm=llm,
            tool_registry=registry,
            settings=settings,
            retry=RetryPipeline.for_llm(),
            on_text=_stream_text,
        )

        tools = [registry.get(name) for name in registry.list_tools()]
        show_startup([t for t in tools if t is not None], mcp_tools, settings, log_descriptions)

        while True:
            try:
                user_input = await read_input("you> ")
            except (EOFError, KeyboardInterrupt, asyncio.CancelledError):
                # Ctrl-C at the prompt ends the session
                print()
                break

            user_input = user_input.strip()
            if not user_input:
                continue
            if user_input.lower() in EXIT_COMMANDS:
                break

            await run_turn(agent, user_input)
            print()

        logger.info(
            "Session ended",
            input_tokens=agent.total_input_tokens,
            output_tokens=agent.total_output_tokens,
        )
    finally:
        if mcp is not None:
            await mcp.close()

    return 0


def show_config(check: bool) -> int:
    """Show current configuration."""
    settings = get_settings()

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    print("\n=== micro-x-agent-loop Configuration ===\n")

    print("LLM:")
    print(f"  Provider: {settings.provider}")
    print(f"  Model: {settings.model}")
    print(f"  Max Tokens: {settings.max_tokens}")
    print(f"  Temperature: {settings.temperature}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")

    print("\nAgent Loop:")
    print(f"  Max Tool Result Chars: {settings.max_tool_result_chars:,}")
    print(f"  Max Conversation Messages: {settings.max_conversation_messages}")
    print(f"  Compaction: {settings.compaction_strategy}")
    print(f"  Compaction Threshold: {settings.compaction_threshold_tokens:,} tokens")
    print(f"  Protected Tail: {settings.protected_tail_messages} messages")

    print("\nTools:")
    print(f"  Working Directory: {settings.working_directory or '(current directory)'}")
    print(f"  Google: {'enabled' if settings.google_enabled else 'disabled'}")
    print(f"  Brave Search Key: {mask(settings.brave_api_key)}")
    if settings.mcp_servers:
        for name, server in settings.mcp_servers.items():
            target = server.url if server.transport == "http" else " ".join([server.command or "", *server.args])
            print(f"  MCP {name}: {server.transport} {target}".rstrip())
    else:
        print("  MCP Servers: (none)")

    if not check:
        return 0

    print("\n=== Configuration Check ===\n")
    problems = settings.validate_for_run()
    if problems:
        print("Errors:")
        for problem in problems:
            print(f"   - {problem}")
        print("\nConfiguration has errors - fix them before starting")
        return 1

    print("Configuration looks good!")
    return 0


if __name__ == "__main__":
    main()
