"""CLI commands for recallbot."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

import typer
from dotenv import load_dotenv

from recallbot import __logo__, __version__
from recallbot.agent.consolidation_coordinator import ConsolidationCoordinator
from recallbot.agent.context import ContextComposer
from recallbot.agent.loop import AgentLoop
from recallbot.agent.session_command_handler import SessionCommandHandler
from recallbot.agent.session_mutator import SessionMutator
from recallbot.bus.queue import MessageBus
from recallbot.config.loader import load_config
from recallbot.config.schema import Config
from recallbot.dispatch.engine import DispatchEngine
from recallbot.dispatch.retry import RetryPolicy
from recallbot.logging import get_logger, register_secret, setup_logging
from recallbot.memory.consolidator import MemoryConsolidator
from recallbot.providers.registry import PROVIDERS, ProviderFactory
from recallbot.session.models import GenerationParams, SessionDefaults
from recallbot.session.store import JsonSessionStore
from recallbot.session.timestamps import make_clock

app = typer.Typer(
    name="recallbot",
    help=f"{__logo__} recallbot - chat assistant with day-by-day memory",
    no_args_is_help=True,
)

logger = get_logger(__name__)


@dataclass
class Runtime:
    config: Config
    store: JsonSessionStore
    coordinator: ConsolidationCoordinator
    mutator: SessionMutator
    commands: SessionCommandHandler


def build_runtime(config: Config, store_path: Path | None = None) -> Runtime:
    """Wire store, dispatch, consolidation and per-update handlers from configuration."""
    agent = config.agent
    store = JsonSessionStore(
        store_path or config.storage.context_path,
        SessionDefaults(
            max_output_tokens=agent.max_output_tokens,
            temperature=agent.temperature,
            primary_provider=agent.primary_provider,
            backup_provider=agent.backup_provider,
        ),
    )
    retry = config.retry
    dispatch = DispatchEngine(
        ProviderFactory(config),
        chat_policy=RetryPolicy(retry.chat_max_attempts, retry.base_delay, retry.delay_step),
        summary_policy=RetryPolicy(retry.summary_max_attempts, retry.base_delay, retry.delay_step),
    )
    clock = make_clock(agent.timezone)
    summary = config.summarization
    consolidator = MemoryConsolidator(
        dispatch,
        provider_id=summary.provider,
        params=GenerationParams(max_output_tokens=summary.max_output_tokens, temperature=summary.temperature),
        prompt_template=summary.prompt,
        persona_name=agent.persona_name,
        clock=clock,
    )
    coordinator = ConsolidationCoordinator()
    mutator = SessionMutator(
        store=store,
        composer=ContextComposer(agent.persona_name, window=agent.history_window),
        dispatch=dispatch,
        consolidator=consolidator,
        coordinator=coordinator,
        persona_name=agent.persona_name,
        clock=clock,
        consolidation_threshold=agent.consolidation_threshold,
        pacing_delay=agent.pacing_delay,
        media_config=config.media,
    )
    commands = SessionCommandHandler(mutator=mutator, clock=clock, persona_name=agent.persona_name)
    return Runtime(config=config, store=store, coordinator=coordinator, mutator=mutator, commands=commands)


def _load(verbose: bool = False) -> Config:
    load_dotenv()
    try:
        config = load_config()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    setup_logging(
        json_output=config.logging.json_output,
        level="DEBUG" if verbose else config.logging.level,
    )
    register_secret(config.channels.telegram.resolved_token)
    for vendor in ("gemini", "deepseek"):
        register_secret(getattr(config.providers, vendor).resolved_api_key)
    return config


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{__logo__} recallbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
) -> None:
    """recallbot - chat assistant with day-by-day memory."""


@app.command()
def run(verbose: bool = typer.Option(False, "--verbose", help="Debug logging")) -> None:
    """Start the bot and serve enabled channels."""
    from recallbot.channels.manager import ChannelManager

    config = _load(verbose)
    runtime = build_runtime(config)
    runtime.store.load()

    async def _serve() -> None:
        bus = MessageBus()
        loop = AgentLoop(
            bus,
            store=runtime.store,
            mutator=runtime.mutator,
            commands=runtime.commands,
            coordinator=runtime.coordinator,
            tz=ZoneInfo(config.agent.timezone) if config.agent.timezone else None,
        )
        channels = ChannelManager(config, bus)
        if not channels.enabled_channels:
            typer.echo("Warning: no channels enabled", err=True)
        try:
            await asyncio.gather(loop.run(), channels.start_all())
        finally:
            loop.stop()
            await channels.stop_all()
            await loop.drain()
            await runtime.mutator.persist()

    typer.echo(f"{__logo__} Starting recallbot...")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        typer.echo("\nGoodbye!")


@app.command()
def memories(user_id: str = typer.Argument(..., help="User identity (Telegram user id)")) -> None:
    """Print the stored day memories of a user."""
    config = _load()
    runtime = build_runtime(config)
    runtime.store.load()
    session = runtime.store.get(user_id)
    if session is None:
        typer.echo(f"No session for {user_id}")
        raise typer.Exit(1)
    if not session.memories:
        typer.echo("No memories yet.")
        return
    for day, memory in session.memories.items():
        typer.echo(f"[{day}] (generated {memory.generated_at})")
        typer.echo(memory.text)
        typer.echo("")


@app.command()
def consolidate(user_id: str = typer.Argument(..., help="User identity (Telegram user id)")) -> None:
    """Run one memory consolidation pass for a user."""
    config = _load()
    runtime = build_runtime(config)
    runtime.store.load()
    if runtime.store.get(user_id) is None:
        typer.echo(f"No session for {user_id}")
        raise typer.Exit(1)

    report = asyncio.run(runtime.mutator.consolidate_now(user_id))
    typer.echo(f"Summarized: {', '.join(report.summarized) or '-'}")
    typer.echo(f"Skipped: {', '.join(report.skipped) or '-'}")
    if report.failed:
        typer.echo(f"Failed: {', '.join(report.failed)}")
        raise typer.Exit(1)


@app.command()
def providers() -> None:
    """List model providers and whether credentials are configured."""
    config = _load()
    for spec in PROVIDERS:
        configured = config.get_provider(spec.vendor) is not None
        role = "chat" if spec.selectable else "summary"
        typer.echo(
            f"{spec.id:<26} {role:<8} {spec.litellm_model:<36} "
            f"{'key set' if configured else 'no key'}"
        )


if __name__ == "__main__":
    app()
