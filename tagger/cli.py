"""
CLI interface for the tagger.

Usage:
    tagger settings --model llama3.2 --tags "ml, python, recipes"
    tagger tag
    tagger tag notes/ml.md
    tagger untag --all
    tagger watch --enable
"""

import asyncio
import contextlib
import json
import os
import signal
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .api import Tagger
from .config import TaggerConfig, get_tool_directory, load_or_create_config
from .document_store import FilesystemDocumentStore
from .errors import TaggerError, log_exception
from .exclusion import is_excluded
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .providers.ollama import OllamaClient
from .providers.ollama_utils import ollama_base_url, ollama_ensure_model
from .scheduler import AutoTagScheduler
from .state_store import JsonStateStore
from .types import BatchReport, TaggerState, ms_to_iso, parse_tag_list


# Configure quiet mode by default (suppress verbose library output)
# Set TAGGER_VERBOSE=1 to enable debug mode via environment
if os.environ.get("TAGGER_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"tagger {version('llm-tagger')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_vault_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _vault_callback(value: Optional[Path]):
    global _vault_override
    _vault_override = value


app = typer.Typer(
    name="tagger",
    help="Tag notes from a vocabulary with keyword matching and a local LLM.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    vault: Annotated[Optional[Path], typer.Option(
        "--vault", "-V",
        envvar="TAGGER_VAULT",
        help="Folder of notes to tag (default: current directory)",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
):
    """Tag notes from a vocabulary with keyword matching and a local LLM."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _vault_root() -> Path:
    root = _vault_override or Path.cwd()
    return Path(root).expanduser().resolve()


def _load_config() -> TaggerConfig:
    try:
        config = load_or_create_config(get_tool_directory(_vault_root()))
    except (OSError, ValueError, RuntimeError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    configure_ops_log(config.path)
    return config


def _echo_notice(message: str) -> None:
    typer.echo(message, err=True)


@contextlib.asynccontextmanager
async def _session(config: TaggerConfig, *, notify=_echo_notice):
    """Tagger wired to the vault, state file and Ollama client."""
    documents = FilesystemDocumentStore(_vault_root(), config.extensions)
    llm = OllamaClient(config.ollama.url or None, timeout=config.ollama.timeout)
    try:
        yield Tagger(documents, JsonStateStore(config.state_path), llm, notify=notify)
    finally:
        await llm.aclose()


def _run(coro):
    """Run a coroutine, turning pipeline errors into clean CLI exits."""
    try:
        return asyncio.run(coro)
    except TaggerError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        raise typer.Exit(130)
    except typer.Exit:
        raise
    except Exception as e:
        log_path = log_exception(e, "tagger", get_tool_directory(_vault_root()))
        typer.echo(f"Error: {e} (details in {log_path})", err=True)
        raise typer.Exit(1)


def _relative(path: str) -> str:
    """Accept paths relative to the vault, absolute, or relative to cwd."""
    root = _vault_root()
    p = Path(path).expanduser()
    candidate = p if p.is_absolute() else (Path.cwd() / p)
    try:
        return candidate.resolve().relative_to(root).as_posix()
    except ValueError:
        return p.as_posix()


def _progress(current: int, total: int, path: str) -> None:
    typer.echo(f"[{current}/{total}] {path}", err=True)


def render_report(report: BatchReport, as_json: bool = False) -> str:
    """Render a batch report as text or JSON."""
    if as_json:
        return json.dumps({
            "total": report.total,
            "modified": report.modified,
            "results": [
                {"path": r.path, "status": r.status, **({"error": r.error} if r.error else {})}
                for r in report.results
            ],
        }, indent=2)
    lines = []
    for r in report.results:
        line = f"{r.status:<9} {r.path}"
        if r.error:
            line += f"  ({r.error})"
        lines.append(line)
    return "\n".join(lines)


def render_state(state: TaggerState, as_json: bool = False) -> str:
    """Render persisted settings (without the tagging record)."""
    if as_json:
        d = state.to_dict()
        d["taggedFiles"] = len(state.tagged_files)
        return json.dumps(d, indent=2)
    return "\n".join([
        f"model:     {state.selected_model or '(none)'}",
        f"tags:      {', '.join(state.default_tags) or '(none)'}",
        f"auto-tag:  {'on' if state.auto_add_tags else 'off'}",
        f"exclude:   {', '.join(state.exclude_patterns) or '(none)'}",
        f"tagged:    {len(state.tagged_files)} documents",
    ])


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

TagsOption = Annotated[
    Optional[str],
    typer.Option(
        "--tags", "-t",
        help="Comma-separated tag vocabulary (saved as the default)",
    )
]


@app.command()
def tag(
    paths: Annotated[Optional[list[str]], typer.Argument(
        help="Documents to tag (default: every eligible document)",
    )] = None,
    tags: TagsOption = None,
    model: Annotated[Optional[str], typer.Option(
        "--model", "-m",
        help="Ollama model to use (saved as the default)",
    )] = None,
):
    """Tag documents: keyword tags plus an LLM-written tagged summary."""
    config = _load_config()
    vocabulary = parse_tag_list(tags) if tags is not None else None

    async def main() -> BatchReport:
        async with _session(config) as tagger:
            if model:
                tagger.set_model(model)
            if paths:
                if vocabulary is not None:
                    tagger.set_default_tags(vocabulary)
                return await tagger.tag_paths(
                    [_relative(p) for p in paths], vocabulary, progress=_progress,
                )
            return await tagger.tag_all(vocabulary, progress=_progress)

    report = _run(main())
    output = render_report(report, as_json=_json_output)
    if output:
        typer.echo(output)
    if report.failed:
        raise typer.Exit(1)


@app.command()
def untag(
    paths: Annotated[Optional[list[str]], typer.Argument(
        help="Documents to untag",
    )] = None,
    all_docs: Annotated[bool, typer.Option(
        "--all", "-a",
        help="Untag every document in the vault",
    )] = False,
):
    """Remove tagged summaries and leading hashtags."""
    if not paths and not all_docs:
        typer.echo("Error: give document paths or --all", err=True)
        raise typer.Exit(1)
    config = _load_config()

    async def main() -> BatchReport:
        async with _session(config) as tagger:
            targets = None if all_docs else [_relative(p) for p in paths]
            return await tagger.untag_all(targets)

    report = _run(main())
    output = render_report(report, as_json=_json_output)
    if output:
        typer.echo(output)
    if report.failed:
        raise typer.Exit(1)


@app.command()
def models(
    pull: Annotated[Optional[str], typer.Option(
        "--pull",
        help="Pull this model if it isn't installed",
    )] = None,
):
    """List models available from Ollama."""
    config = _load_config()
    if pull:
        base_url = ollama_base_url(config.ollama.url or None)
        try:
            ollama_ensure_model(base_url, pull)
        except RuntimeError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    async def main() -> tuple[list[str], Optional[str]]:
        async with _session(config) as tagger:
            return await tagger.list_models(), tagger.state.selected_model

    names, selected = _run(main())
    if _json_output:
        typer.echo(json.dumps({"models": names, "selected": selected}))
        return
    if not names:
        typer.echo("No models found (is Ollama running?)", err=True)
        raise typer.Exit(1)
    for name in names:
        marker = "*" if name == selected else " "
        typer.echo(f"{marker} {name}")


@app.command()
def settings(
    model: Annotated[Optional[str], typer.Option(
        "--model", "-m", help="Select the Ollama model ('' to clear)",
    )] = None,
    tags: TagsOption = None,
    auto: Annotated[Optional[bool], typer.Option(
        "--auto/--no-auto", help="Turn auto-tagging on or off",
    )] = None,
    exclude: Annotated[Optional[list[str]], typer.Option(
        "--exclude", "-x", help="Add an exclusion pattern (name or * wildcard)",
    )] = None,
    include: Annotated[Optional[list[str]], typer.Option(
        "--include", help="Remove an exclusion pattern",
    )] = None,
):
    """Show or change the model, tag vocabulary, auto-tagging and exclusions."""
    config = _load_config()

    async def main() -> TaggerState:
        async with _session(config) as tagger:
            if model is not None:
                tagger.set_model(model)
            if tags is not None:
                tagger.set_default_tags(parse_tag_list(tags))
            if auto is not None:
                tagger.set_auto_add_tags(auto)
            for pattern in exclude or []:
                tagger.add_exclude_pattern(pattern)
            for pattern in include or []:
                if not tagger.remove_exclude_pattern(pattern):
                    typer.echo(f"Not an exclusion pattern: {pattern}", err=True)
            return tagger.state

    state = _run(main())
    typer.echo(render_state(state, as_json=_json_output))


@app.command()
def config():
    """Show the configuration file and its values."""
    cfg = _load_config()
    values = {
        "file": str(cfg.config_path),
        "state": str(cfg.state_path),
        "ollama.url": ollama_base_url(cfg.ollama.url or None),
        "ollama.timeout": cfg.ollama.timeout,
        "schedule.debounce_seconds": cfg.schedule.debounce_seconds,
        "schedule.settle_seconds": cfg.schedule.settle_seconds,
        "schedule.poll_interval": cfg.schedule.poll_interval,
        "documents.extensions": cfg.extensions,
    }
    if _json_output:
        typer.echo(json.dumps(values, indent=2))
        return
    for key, value in values.items():
        typer.echo(f"{key} = {value}")


@app.command()
def status():
    """List documents with their tagging status."""
    cfg = _load_config()
    documents = FilesystemDocumentStore(_vault_root(), cfg.extensions)
    state = JsonStateStore(cfg.state_path).load()

    rows = []
    for doc in documents.list_documents():
        tagged_at = state.tagged_files.get(doc.path)
        if is_excluded(doc.path, state.exclude_patterns):
            label = "excluded"
        elif tagged_at is None:
            label = "new"
        elif doc.mtime > tagged_at:
            label = "modified"
        else:
            label = "tagged"
        rows.append({
            "path": doc.path,
            "status": label,
            "tagged_at": ms_to_iso(tagged_at) if tagged_at else None,
        })

    if _json_output:
        typer.echo(json.dumps(rows, indent=2))
        return
    for row in rows:
        suffix = f"  {row['tagged_at']}" if row["tagged_at"] else ""
        typer.echo(f"{row['status']:<9} {row['path']}{suffix}")


@app.command()
def watch(
    enable: Annotated[bool, typer.Option(
        "--enable", help="Turn auto-tagging on before watching",
    )] = False,
    interval: Annotated[Optional[float], typer.Option(
        "--interval", "-i", help="Seconds between scans (default from config)",
    )] = None,
):
    """Watch the vault and tag notes as they change."""
    cfg = _load_config()
    poll_interval = interval or cfg.schedule.poll_interval

    async def main() -> None:
        async with _session(cfg) as tagger:
            if enable:
                tagger.set_auto_add_tags(True)
            if not tagger.state.auto_add_tags:
                typer.echo(
                    "Auto-tagging is off. Use --enable or: tagger settings --auto",
                    err=True,
                )
                raise typer.Exit(1)

            documents = tagger.documents
            scheduler = AutoTagScheduler(
                tagger, documents,
                debounce_seconds=cfg.schedule.debounce_seconds,
                settle_seconds=cfg.schedule.settle_seconds,
            )
            tagger.attach_scheduler(scheduler)

            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(sig, stop.set)

            typer.echo(f"Watching {documents.root} (Ctrl-C to stop)", err=True)
            try:
                await asyncio.gather(
                    documents.watch(poll_interval, stop),
                    scheduler.run(stop=stop),
                )
            finally:
                scheduler.disable()
                await scheduler.drain()

    _run(main())


def main():
    app()


if __name__ == "__main__":
    main()
