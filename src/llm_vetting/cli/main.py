"""Main CLI entry point for llm-vetting."""

import asyncio
import os
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from llm_vetting import __version__
from llm_vetting.config import VettingConfig, load_config
from llm_vetting.engine import RunEngine
from llm_vetting.errors import VettingError
from llm_vetting.models.enums import Transport
from llm_vetting.models.reference import Classification, ReferenceText
from llm_vetting.models.run import Run, RunConfig
from llm_vetting.orchestration.progress import RunProgress
from llm_vetting.output import parse_reference_csv, write_run_exports
from llm_vetting.similarity import classify_references
from llm_vetting.utils.logging import setup_logging


def _load_dotenv() -> None:
    """Load .env file if it exists."""
    # Look for .env in current directory and parent directories
    current = Path.cwd()
    for path in [current, *current.parents]:
        env_file = path / ".env"
        if env_file.exists():
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and "=" in line:
                        key, _, value = line.partition("=")
                        key = key.strip()
                        value = value.strip().strip("\"'")
                        if key and key not in os.environ:
                            os.environ[key] = value
            break


# Load .env file before anything else
_load_dotenv()

app = typer.Typer(
    name="llm-vetting",
    help="""Ask several LLMs the same question many times and look for templated answers.

Each selected model is queried [cyan]--loops[/] times in parallel (bounded by
[cyan]--concurrency[/]). Near-duplicate responses are grouped into clusters, and
optional human reference answers are classified as:
  [red]AI Generated[/]   - closely matches a generated response
  [yellow]Suspicious[/]     - partially matches
  [green]Likely Human[/]   - no close match

[bold]Examples:[/bold]

  [dim]# Ask two models five times each[/dim]
  llm-vetting run "Explain CAP theorem" -m gpt-4o-mini -m claude-3-haiku-20240307

  [dim]# Classify expert answers against the generated ones[/dim]
  llm-vetting run "Explain CAP theorem" -m gpt-4o --references answers.csv

  [dim]# Serve the relay for browser-style clients[/dim]
  llm-vetting relay --port 8787

[bold]Configuration:[/bold]

  Create [cyan]llm-vetting.config.json[/cyan] (or .yaml) in your project root, or use CLI flags.
  Set [cyan]OPENAI_API_KEY[/cyan], [cyan]ANTHROPIC_API_KEY[/cyan] or [cyan]DEEPSEEK_API_KEY[/cyan] for credentials.
""",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"llm-vetting version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Vet LLM output for duplicate and templated responses."""
    pass


ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        help="Verbosity level (0=quiet, 1=normal, 2=verbose, 3=debug).",
        min=0,
        max=3,
        count=True,
    ),
]


def _select_models(cfg: VettingConfig, requested: Optional[list[str]]) -> list[str]:
    """Resolve the model ids for a run: explicit flags, else enabled models."""
    if requested:
        unknown = [m for m in requested if cfg.get_model(m) is None]
        if unknown:
            raise VettingError(f"Unknown model(s): {', '.join(unknown)}. See `llm-vetting models`.")
        return requested

    enabled = [m.id for m in cfg.enabled_models]
    if not enabled:
        raise VettingError("No models selected. Pass --model or enable models in the config file.")
    return enabled


async def _execute_run(
    cfg: VettingConfig,
    run_config: RunConfig,
    progress: RunProgress,
    retries: int,
) -> Run:
    """Run every job to completion, retrying failures up to ``retries`` rounds."""
    engine = RunEngine(cfg, on_update=progress.update)
    try:
        await engine.start_run(run_config)
        run = await engine.wait()
        for _ in range(retries):
            if not engine.retry_errors():
                break
            run = await engine.wait()
    finally:
        await engine.aclose()
        progress.finish()
    return run


def _classify(
    cfg: VettingConfig,
    run: Run,
    references_path: Path,
) -> tuple[list[ReferenceText], dict[str, Classification]]:
    references = parse_reference_csv(references_path.read_text(encoding="utf-8"))
    return references, classify_references(
        references, run.responses, cfg.run.classification_thresholds
    )


@app.command()
def run(
    question: Annotated[str, typer.Argument(help="Question to send to every model.")],
    model: Annotated[
        Optional[list[str]],
        typer.Option(
            "--model",
            "-m",
            help="Model id to query (repeatable). Defaults to models enabled in config.",
        ),
    ] = None,
    loops: Annotated[
        int,
        typer.Option(
            "--loops",
            "-n",
            help="Repetitions per model.",
            min=1,
        ),
    ] = 5,
    concurrency: Annotated[
        Optional[int],
        typer.Option(
            "--concurrency",
            help="Maximum simultaneous provider connections.",
            min=1,
            max=50,
        ),
    ] = None,
    system: Annotated[
        Optional[str],
        typer.Option(
            "--system",
            "-s",
            help="System prompt sent with every request.",
        ),
    ] = None,
    references: Annotated[
        Optional[Path],
        typer.Option(
            "--references",
            "-r",
            help="CSV of human reference answers to classify.",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option(
            "--output",
            "-o",
            help="Directory for CSV and JSON exports of the run.",
        ),
    ] = None,
    threshold: Annotated[
        Optional[float],
        typer.Option(
            "--threshold",
            help="Similarity threshold for duplicate detection.",
            min=0.0,
            max=1.0,
        ),
    ] = None,
    transport: Annotated[
        Optional[Transport],
        typer.Option(
            "--transport",
            help="Send every request directly or through the relay.",
        ),
    ] = None,
    relay_url: Annotated[
        Optional[str],
        typer.Option(
            "--relay-url",
            help="Base URL of the relay server.",
        ),
    ] = None,
    retries: Annotated[
        int,
        typer.Option(
            "--retries",
            help="Rounds of retrying failed responses after the run settles.",
            min=0,
        ),
    ] = 0,
    config: ConfigOption = None,
    verbose: VerboseOption = 1,
) -> None:
    """Ask the selected models a question and analyse the answers.

    [bold]Examples:[/bold]

      [dim]# Three repetitions against one model[/dim]
      llm-vetting run "What is a monad?" -m gpt-4o-mini --loops 3

      [dim]# Save exports and use the relay[/dim]
      llm-vetting run "What is a monad?" -m deepseek-chat --transport relay -o ./out
    """
    setup_logging(verbosity=verbose)

    try:
        cfg = load_config(
            config_path=config,
            concurrency=concurrency,
            similarity_threshold=threshold,
            relay_url=relay_url,
            transport=transport.value if transport else None,
        )
        run_config = RunConfig.create(
            question=question,
            model_ids=_select_models(cfg, model),
            loop_count=loops,
            concurrency=cfg.run.concurrency,
            loop_cap=cfg.run.loop_cap,
            system_prompt=system,
        )
    except (VettingError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    progress = RunProgress(console=console, show_progress=verbose > 0)
    console.print("[bold green]Starting run[/bold green]")
    console.print(f"  Models: {', '.join(run_config.selected_model_ids)}")
    console.print(f"  Loops: {run_config.loop_count}  Concurrency: {run_config.concurrency}")
    console.print()

    try:
        result = asyncio.run(_execute_run(cfg, run_config, progress, retries))

        progress.display_summary_table(result)
        progress.display_clusters(result)

        if references is not None:
            refs, classifications = _classify(cfg, result, references)
            progress.display_classifications(refs, classifications)

        if output is not None:
            paths = asyncio.run(write_run_exports(result, output))
            console.print()
            console.print("[bold]Output files:[/bold]")
            for path in paths:
                console.print(f"  {path}")

    except KeyboardInterrupt:
        console.print("\n[yellow]Run interrupted by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose >= 2:
            console.print_exception()
        sys.exit(1)


@app.command()
def models(
    config: ConfigOption = None,
) -> None:
    """List the model catalogue and provider credential status."""
    try:
        cfg = load_config(config_path=config)
    except (VettingError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    table = Table(title="Models")
    table.add_column("ID", style="cyan")
    table.add_column("Label")
    table.add_column("Provider")
    table.add_column("Enabled", justify="center")
    table.add_column("Credential", justify="center")
    table.add_column("Transport")

    for entry in cfg.models:
        settings = cfg.get_provider_settings(entry.provider)
        table.add_row(
            entry.id,
            entry.label,
            entry.provider.value,
            "[green]yes[/]" if entry.enabled else "no",
            "[green]set[/]" if settings.has_credential else "[red]missing[/]",
            settings.transport.value,
        )

    console.print(table)


@app.command()
def relay(
    host: Annotated[
        Optional[str],
        typer.Option("--host", "-h", help="Host to bind to."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to listen on.", min=1, max=65535),
    ] = None,
    config: ConfigOption = None,
    verbose: VerboseOption = 1,
) -> None:
    """Serve the credential-forwarding relay.

    Clients using the relay transport send their key in an
    [cyan]x-user-api-key[/] header; the relay re-issues the request with the
    provider's own auth header and streams the response back.
    """
    import uvicorn

    from llm_vetting.relay import create_app

    setup_logging(verbosity=verbose)

    try:
        cfg = load_config(config_path=config)
    except (VettingError, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    bind_host = host or cfg.relay.host
    bind_port = port or cfg.relay.port

    console.print("[bold]llm-vetting relay[/bold]")
    console.print(f"  Host: {bind_host}")
    console.print(f"  Port: {bind_port}")
    console.print()

    uvicorn.run(
        create_app(),
        host=bind_host,
        port=bind_port,
        log_level="debug" if verbose >= 2 else "info",
    )


if __name__ == "__main__":
    app()
