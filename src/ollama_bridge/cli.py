"""Command-line entry point for the Ollama bridge."""

from __future__ import annotations

import asyncio
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from ollama_bridge import __version__
from ollama_bridge.config import get_effective_settings
from ollama_bridge.errors import BridgeError
from ollama_bridge.llm.bridge import OllamaBridge
from ollama_bridge.types import GenerateRequest, GenerationConfig

console = Console()


def _print_error(error: BridgeError) -> None:
    message = Exception.__str__(error)
    console.print(f"[red]{message}[/red]")
    if error.hint:
        console.print(f"[dim]Troubleshooting:\n{error.hint}[/dim]")


def _format_size(size: int) -> str:
    gb = size / (1024 ** 3)
    if gb >= 1:
        return f"{gb:.1f} GB"
    return f"{size / (1024 ** 2):.0f} MB"


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to ollama_bridge.yaml (auto-detected from CWD or ~/.config/ollama-bridge/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.version_option(__version__, prog_name="ollama-bridge")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """Talk to a local Ollama server through the streaming bridge."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    ctx.obj = get_effective_settings(config_path)


@main.command()
@click.pass_obj
def ping(settings):
    """Check that the endpoint is reachable."""

    async def _run() -> bool:
        async with OllamaBridge(settings=settings) as bridge:
            return await bridge.test_connection()

    if asyncio.run(_run()):
        console.print(f"[green]Ollama is reachable at {settings.endpoint}[/green]")
    else:
        console.print(f"[red]Cannot reach Ollama at {settings.endpoint}[/red]")
        console.print("[dim]Start it with: ollama serve[/dim]")
        sys.exit(1)


@main.command()
@click.pass_obj
def models(settings):
    """List the models installed on the endpoint."""

    async def _run():
        async with OllamaBridge(settings=settings) as bridge:
            return await bridge.list_models()

    try:
        found = asyncio.run(_run())
    except BridgeError as e:
        _print_error(e)
        sys.exit(1)

    table = Table(title=f"Models at {settings.endpoint}")
    table.add_column("Name", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Parameters")
    table.add_column("Quantization")
    for m in found:
        marker = " *" if m.name == settings.model else ""
        table.add_row(
            m.name + marker,
            _format_size(m.size),
            m.details.get("parameter_size", ""),
            m.details.get("quantization_level", ""),
        )
    console.print(table)


@main.command()
@click.argument("prompt")
@click.option("--stream/--no-stream", default=True, help="Stream tokens as they arrive")
@click.option("--system", "-s", default=None, help="System instruction")
@click.option("--temperature", "-t", type=float, default=None, help="Sampling temperature")
@click.option("--model", "-m", default=None, help="Model name (defaults to settings)")
@click.pass_obj
def chat(settings, prompt: str, stream: bool, system: str | None,
         temperature: float | None, model: str | None):
    """Send one PROMPT and print the answer."""
    request = GenerateRequest(
        contents=prompt,
        system_instruction=system,
        config=GenerationConfig(temperature=temperature),
        model=model,
    )

    async def _run() -> None:
        async with OllamaBridge(settings=settings) as bridge:
            if stream:
                async for chunk in bridge.generate_stream(request):
                    console.print(chunk.text, end="", markup=False, highlight=False)
                console.print()
                final = bridge.last_response
            else:
                final = await bridge.generate(request)
                console.print(final.text, markup=False, highlight=False)

            if final is None:
                return
            for call in final.function_calls:
                console.print(f"[yellow]→ {call.name}({call.arguments})[/yellow]")
            usage = final.usage
            note = " (estimated)" if usage.estimated else ""
            console.print(
                f"[dim]{usage.prompt_tokens} prompt + {usage.completion_tokens} "
                f"completion tokens{note}, {final.latency_ms:.0f} ms[/dim]"
            )

    try:
        asyncio.run(_run())
    except BridgeError as e:
        _print_error(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
