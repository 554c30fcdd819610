"""CLI entry point for speechbridge."""

import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click
import structlog

from ..config.preferences import ServicePreferences
from ..config.settings import Settings, settings
from ..core.orchestrator import ProviderOrchestrator
from ..providers.base import AudioClip
from ..providers.capabilities import capabilities
from ..providers.errors import AggregatedProviderError, ProviderError
from ..providers.types import ProviderKind, ServiceKind
from ..refinement import RefinementMode
from ..utils.logging import setup_logging_from_settings


logger = structlog.get_logger()

PROVIDER_CHOICE = click.Choice([kind.value for kind in ProviderKind])

HEALTH_COLORS = {
    "healthy": "green",
    "degraded": "yellow",
    "unavailable": "red",
    "testing": "blue",
}


def create_orchestrator(config: Settings) -> ProviderOrchestrator:
    return ProviderOrchestrator.from_settings(config)


def run_with_orchestrator(ctx: click.Context, action):
    """Run ``action(orchestrator)`` to completion on a fresh event loop."""
    async def runner():
        orchestrator = create_orchestrator(ctx.obj["settings"])
        try:
            return await action(orchestrator)
        finally:
            await orchestrator.aclose()

    try:
        return asyncio.run(runner())
    except ProviderError as e:
        logger.debug("Command failed", error_type=type(e).__name__)
        report_error(e)
        ctx.exit(1)


def report_error(error: ProviderError) -> None:
    click.echo(click.style(f"Error: {error}", fg="red"), err=True)
    if isinstance(error, AggregatedProviderError):
        for kind, failure in error.failures:
            click.echo(f"  - {kind.display_name}: {failure.message}", err=True)


def request_preferences(ctx: click.Context, service: ServiceKind,
                        provider: Optional[str]) -> ServicePreferences:
    preferences = ctx.obj["preferences"]
    if provider:
        preferences = preferences.with_provider(service, ProviderKind(provider))
    return preferences


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config", type=click.Path(exists=True, dir_okay=False),
              help="Path to configuration file")
@click.option("--preferences", "preferences_file", type=click.Path(dir_okay=False),
              help="Path to service preferences JSON")
@click.option("--no-fallback", is_flag=True, help="Only try the preferred provider")
@click.pass_context
def cli(ctx: click.Context, debug: bool, config: Optional[str],
        preferences_file: Optional[str], no_fallback: bool):
    """Route transcription, refinement and speech through configured providers."""
    active_settings = Settings(config_file=config) if config else settings
    setup_logging_from_settings(active_settings, debug=debug)

    preferences = (
        ServicePreferences.load(preferences_file) if preferences_file else ServicePreferences()
    )
    if no_fallback:
        preferences = replace(preferences, use_fallback_hierarchy=False)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = active_settings
    ctx.obj["preferences"] = preferences


@cli.command()
def providers():
    """List supported providers and their services."""
    click.echo("Available Providers")
    click.echo("-" * 50)
    for kind in ProviderKind:
        caps = capabilities(kind)
        services = ", ".join(
            service.display_name for service in ServiceKind if caps.supports(service)
        )
        key_note = "API key required" if kind.requires_secret else "no API key"
        click.echo(f"  {kind.value:<14} {kind.display_name:<14} {services} ({key_note})")


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
@click.option("--key", help="API key (prompted for when omitted)")
@click.pass_context
def configure(ctx: click.Context, provider: str, key: Optional[str]):
    """Store and validate an API key for PROVIDER."""
    kind = ProviderKind(provider)
    if kind.requires_secret and key is None:
        key = click.prompt(f"{kind.display_name} API key", hide_input=True)

    async def action(orchestrator: ProviderOrchestrator):
        await orchestrator.configure_provider(kind, key)

    run_with_orchestrator(ctx, action)
    click.echo(click.style(f"{kind.display_name} configured", fg="green"))


@cli.command()
@click.argument("provider", type=PROVIDER_CHOICE)
@click.pass_context
def remove(ctx: click.Context, provider: str):
    """Delete the stored API key for PROVIDER."""
    kind = ProviderKind(provider)
    if kind.is_local:
        raise click.BadParameter("the local provider has no API key", param_hint="PROVIDER")

    async def action(orchestrator: ProviderOrchestrator):
        await orchestrator.remove_provider(kind)

    run_with_orchestrator(ctx, action)
    click.echo(f"{kind.display_name} removed")


@cli.command(name="test")
@click.argument("provider", type=PROVIDER_CHOICE, required=False)
@click.pass_context
def test_providers(ctx: click.Context, provider: Optional[str]):
    """Test the connection to PROVIDER, or to every configured provider."""
    if provider:
        kind = ProviderKind(provider)

        async def single(orchestrator: ProviderOrchestrator):
            return await orchestrator.test_provider(kind)

        run_with_orchestrator(ctx, single)
        click.echo(click.style(f"{kind.display_name}: OK", fg="green"))
        return

    async def every(orchestrator: ProviderOrchestrator):
        return await orchestrator.test_all_providers()

    results = run_with_orchestrator(ctx, every)
    if not results:
        click.echo("No configured providers to test.")
        return

    failed = False
    for kind, error in results.items():
        if error is None:
            click.echo(click.style(f"{kind.display_name}: OK", fg="green"))
        else:
            failed = True
            click.echo(click.style(f"{kind.display_name}: {error.message}", fg="red"))
    if failed:
        ctx.exit(1)


@cli.command()
@click.option("--format", "output_format", type=click.Choice(["text", "json"]),
              default="text", help="Output format")
@click.pass_context
def status(ctx: click.Context, output_format: str):
    """Show configuration and health of every provider."""
    async def action(orchestrator: ProviderOrchestrator):
        return orchestrator.provider_statuses()

    rows = run_with_orchestrator(ctx, action)
    if output_format == "json":
        click.echo(json.dumps(rows, indent=2))
        return

    click.echo("Provider Status")
    click.echo("-" * 50)
    for row in rows:
        configured = "configured" if row["configured"] else "not configured"
        health = click.style(row["health"], fg=HEALTH_COLORS.get(row["health"]))
        click.echo(f"  {row['name']:<14} {configured:<16} {health}")


@cli.command()
@click.argument("audio_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--provider", type=PROVIDER_CHOICE, help="Preferred provider for this request")
@click.option("--duration", type=float, help="Audio duration in seconds, when known")
@click.pass_context
def transcribe(ctx: click.Context, audio_file: str, provider: Optional[str],
               duration: Optional[float]):
    """Transcribe AUDIO_FILE to text."""
    path = Path(audio_file)
    clip = AudioClip(data=path.read_bytes(), format=path.suffix.lstrip(".") or "m4a",
                     duration=duration)
    preferences = request_preferences(ctx, ServiceKind.TRANSCRIPTION, provider)

    async def action(orchestrator: ProviderOrchestrator):
        return await orchestrator.transcribe(clip, preferences)

    click.echo(run_with_orchestrator(ctx, action))


@cli.command()
@click.option("--mode", type=click.Choice([mode.value for mode in RefinementMode]),
              default=RefinementMode.CLEANUP.value, help="Refinement mode")
@click.option("--input", "-i", "input_text", help="Text to refine (reads stdin when omitted)")
@click.option("--provider", type=PROVIDER_CHOICE, help="Preferred provider for this request")
@click.pass_context
def refine(ctx: click.Context, mode: str, input_text: Optional[str], provider: Optional[str]):
    """Rewrite transcribed text in the chosen mode."""
    text = input_text if input_text is not None else sys.stdin.read()
    if not text.strip():
        raise click.UsageError("No text to refine")
    preferences = request_preferences(ctx, ServiceKind.REFINEMENT, provider)

    async def action(orchestrator: ProviderOrchestrator):
        return await orchestrator.refine(text.strip(), RefinementMode(mode), preferences)

    click.echo(run_with_orchestrator(ctx, action))


@cli.command()
@click.option("--output", "-o", type=click.Path(dir_okay=False), required=True,
              help="File to write the audio to")
@click.option("--text", "-t", help="Text to speak (reads stdin when omitted)")
@click.option("--provider", type=PROVIDER_CHOICE, help="Preferred provider for this request")
@click.pass_context
def speak(ctx: click.Context, output: str, text: Optional[str], provider: Optional[str]):
    """Synthesize speech and write the audio to --output."""
    text = text if text is not None else sys.stdin.read()
    if not text.strip():
        raise click.UsageError("No text to speak")
    preferences = request_preferences(ctx, ServiceKind.TEXT_TO_SPEECH, provider)

    async def action(orchestrator: ProviderOrchestrator):
        return await orchestrator.synthesize_speech(text.strip(), preferences)

    audio = run_with_orchestrator(ctx, action)
    Path(output).write_bytes(audio)
    click.echo(f"Wrote {len(audio)} bytes to {output}")


if __name__ == "__main__":
    cli()
