"""CLI commands for ccbot."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console

from ccbot import __logo__, __version__

app = typer.Typer(
    name="ccbot",
    help=f"{__logo__} ccbot - Discord assistant with two LLM backends",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} ccbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """ccbot - Discord assistant."""
    pass


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Write a default configuration to ~/.ccbot."""
    from ccbot.config.loader import get_config_path, get_env_path, save_config
    from ccbot.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print(f"[green]✓[/green] Created secrets file at {get_env_path()} (mode 600)")

    console.print(f"\n{__logo__} ccbot is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your secrets to [cyan]~/.ccbot/.env[/cyan]")
    console.print("     CCBOT_DISCORD__TOKEN=...")
    console.print("     CCBOT_PROVIDERS__PRIMARY__API_KEY=sk-...")
    console.print("     CCBOT_PROVIDERS__SECONDARY__API_KEY=...")
    console.print("  2. Optionally add a knowledge base at [cyan]~/.ccbot/knowledge.json[/cyan]")
    console.print("  3. Start the bot: [cyan]ccbot run[/cyan]")


# ============================================================================
# Bot
# ============================================================================


def _create_router(config, channel):
    """Wire the router and its collaborators from config."""
    from ccbot.agent.confirmation import ConfirmationWorkflow
    from ccbot.agent.knowledge import KnowledgeBase
    from ccbot.agent.router import MessageRouter
    from ccbot.providers.base import ProviderId
    from ccbot.providers.gateway import CompletionGateway, ProviderBinding
    from ccbot.providers.litellm_provider import LiteLLMProvider
    from ccbot.providers.openai_provider import OpenAIProvider
    from ccbot.session.history import HistoryStore
    from ccbot.session.manager import SessionManager
    from ccbot.utils.redis_client import create_redis_client

    p_cfg = config.providers.primary
    s_cfg = config.providers.secondary
    primary = ProviderBinding(
        id=ProviderId.PRIMARY,
        provider=OpenAIProvider(api_key=p_cfg.api_key, api_base=p_cfg.api_base, default_model=p_cfg.model),
        label=p_cfg.label or "primary",
        marker=p_cfg.marker,
        model=p_cfg.model or None,
        temperature=p_cfg.temperature,
        top_p=p_cfg.top_p,
        top_k=p_cfg.top_k,
        max_tokens=p_cfg.max_tokens,
    )
    secondary = ProviderBinding(
        id=ProviderId.SECONDARY,
        provider=LiteLLMProvider(api_key=s_cfg.api_key, api_base=s_cfg.api_base, default_model=s_cfg.model),
        label=s_cfg.label or "secondary",
        marker=s_cfg.marker,
        model=s_cfg.model or None,
        temperature=s_cfg.temperature,
        top_p=s_cfg.top_p,
        top_k=s_cfg.top_k,
        max_tokens=s_cfg.max_tokens,
    )
    gateway = CompletionGateway(
        primary,
        secondary,
        max_retries=config.chat.max_retries,
        base_delay=config.chat.retry_base_delay,
    )

    redis = create_redis_client(config.redis.url, tls_verify=config.redis.tls_verify)
    history = HistoryStore(
        redis,
        max_messages=config.chat.history_limit,
        retention_seconds=config.history_retention_seconds,
    )
    sessions = SessionManager(timeout=config.chat.session_timeout)
    confirmations = ConfirmationWorkflow(channel, timeout=config.chat.confirm_timeout)

    router = MessageRouter(
        channel=channel,
        sessions=sessions,
        confirmations=confirmations,
        history=history,
        gateway=gateway,
        knowledge=KnowledgeBase.load(config.knowledge_file),
        system_prompt=config.chat.system_prompt,
        primary_prefixes=config.chat.primary_prefixes,
        secondary_prefixes=config.chat.secondary_prefixes,
    )
    return router, redis


@app.command()
def run(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write logs to this file"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Start the Discord bot."""
    from ccbot.channels.discord import DiscordChannel
    from ccbot.config.loader import config_has_secrets, load_config
    from ccbot.utils.logging import setup_logging

    setup_logging(verbose=verbose, log_file=log_file)
    config = load_config(config_path)

    if config_has_secrets(config_path):
        console.print(
            "[yellow]⚠  config.json contains plaintext secrets. "
            "Move them to ~/.ccbot/.env[/yellow]"
        )
    if not config.discord.token:
        console.print("[red]Discord token missing: set CCBOT_DISCORD__TOKEN[/red]")
        raise typer.Exit(1)

    channel = DiscordChannel(config.discord)
    router, redis = _create_router(config, channel)
    channel.set_handler(router.handle)

    console.print(f"{__logo__} Starting ccbot...")

    async def main_loop():
        sweeper = asyncio.create_task(
            router.sessions.run_sweeper(config.chat.session_sweep_interval)
        )
        try:
            await channel.start()
        finally:
            sweeper.cancel()
            await channel.stop()
            await redis.aclose()

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


@app.command()
def status(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show ccbot configuration status."""
    from ccbot.config.loader import config_has_secrets, get_config_path, get_env_path, load_config

    path = config_path or get_config_path()
    env_path = get_env_path()
    config = load_config(config_path)

    def mark(ok: bool) -> str:
        return "[green]✓[/green]" if ok else "[dim]not set[/dim]"

    console.print(f"{__logo__} ccbot Status\n")
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[red]✗[/red]'}")
    console.print(f"Secrets: {env_path} {'[green]✓[/green]' if env_path.exists() else '[yellow]missing[/yellow]'}")
    if config_has_secrets(config_path):
        console.print("  [yellow]⚠  config.json has plaintext secrets[/yellow]")
    console.print(f"Discord token: {mark(bool(config.discord.token))}")
    console.print(f"Redis: {config.redis.url.split('@')[-1]}")

    for name, prov, prefixes in (
        ("Primary", config.providers.primary, config.chat.primary_prefixes),
        ("Secondary", config.providers.secondary, config.chat.secondary_prefixes),
    ):
        console.print(
            f"{name}: {prov.label} / {prov.model} {prov.marker} "
            f"(prefixes: {', '.join(prefixes)}) key {mark(bool(prov.api_key))}"
        )

    kb = config.knowledge_file
    console.print(f"Knowledge base: {kb} {'[green]✓[/green]' if kb.exists() else '[dim]none[/dim]'}")
