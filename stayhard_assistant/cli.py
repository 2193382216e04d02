"""
Command-line interface for Stay Hard Assistant.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="stayhard-assistant",
    help="Voice productivity coach with wake-word conversations",
    no_args_is_help=True,
)

console = Console()


def _setup_logging(verbose: bool) -> None:
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )


def _load(config_file: Optional[Path]):
    from stayhard_assistant.config import load_config

    if config_file is not None and not config_file.exists():
        console.print(f"[red]Error: Config file not found: {config_file}[/red]")
        raise typer.Exit(1)
    return load_config(config_file)


@app.command()
def listen(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    wake_phrase: Optional[str] = typer.Option(None, "--wake-phrase", "-w", help="Phrase that starts a conversation"),
    max_exchanges: Optional[int] = typer.Option(None, "--max-exchanges", help="Replies before the coach signs off"),
    llm_backend: Optional[str] = typer.Option(None, "--llm", "-l", help="LLM backend (ollama, openai, simple)"),
    llm_model: Optional[str] = typer.Option(None, "--llm-model", "-m", help="LLM model name"),
    stt_model: Optional[str] = typer.Option(None, "--stt-model", help="Whisper model size"),
    no_tts: bool = typer.Option(False, "--no-tts", help="Text replies only"),
    listen_now: Optional[bool] = typer.Option(
        None, "--listen-now/--wait-for-wake", help="Open a conversation right away"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Run a live coaching session on the microphone.

    Example:
        stayhard-assistant listen --llm ollama --llm-model llama3.2:3b

    Example (no models at all, rule-based replies):
        stayhard-assistant listen --llm simple --no-tts
    """
    from stayhard_assistant.assistant.orchestrator import ConversationMessage, VoiceStatus
    from stayhard_assistant.assistant.session import CoachSession

    _setup_logging(verbose)
    config = _load(config_file)

    # CLI overrides YAML, YAML overrides defaults
    if wake_phrase:
        config.conversation.wake_phrase = wake_phrase.lower()
    if max_exchanges is not None:
        config.conversation.max_exchanges = max_exchanges
    if llm_backend:
        config.llm.backend = llm_backend
    if llm_model:
        config.llm.model = llm_model
    if stt_model:
        config.transcriber.model_size = stt_model
    if no_tts:
        config.tts.enabled = False

    def show_message(message: ConversationMessage) -> None:
        if message.role.value == "user":
            console.print(f"[cyan]You:[/cyan] {message.text}")
        else:
            console.print(f"[bold red]Coach:[/bold red] {message.text}")

    def show_status(status: VoiceStatus) -> None:
        mode = f" ({status.mode.value})" if status.mode else ""
        console.print(f"[dim]{status.state.value}{mode}, exchange {status.exchange_count}[/dim]")

    session = CoachSession(config, on_message=show_message, on_status=show_status)

    console.print("[bold]Stay Hard Assistant[/bold]")
    console.print(f"[dim]Say '{config.conversation.wake_phrase}' to talk. Ctrl+C to quit.[/dim]\n")

    try:
        asyncio.run(session.run(listen_now))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")
    except (ImportError, ValueError, RuntimeError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command("config")
def show_config(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Show the resolved configuration."""
    config = _load(config_file)

    for section, settings in config:
        table = Table(title=section)
        table.add_column("Setting")
        table.add_column("Value")
        for key, value in settings:
            if key == "api_key" and value:
                value = "***"
            table.add_row(key, str(value))
        console.print(table)


@app.command()
def info():
    """Show available backends."""
    from stayhard_assistant import __version__
    from stayhard_assistant.stt.registry import list_stt_backends
    from stayhard_assistant.tts.registry import list_tts_backends

    console.print(f"\n[bold]Stay Hard Assistant v{__version__}[/bold]\n")

    table = Table(title="Backends")
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Class")

    for b in list_stt_backends():
        table.add_row("STT", b["name"], b["class"])
    for b in list_tts_backends():
        table.add_row("TTS", b["name"], b["class"])

    if table.row_count:
        console.print(table)
    else:
        console.print("  [dim]No backends available, install an extra: pip install stayhard-assistant[whisper,piper][/dim]")

    try:
        import sounddevice as sd

        console.print(f"\n[bold]Default input:[/bold] {sd.query_devices(kind='input')['name']}")
    except Exception as e:
        console.print(f"\n[dim]No audio input ({e})[/dim]")

    console.print()


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
