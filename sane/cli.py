"""
CLI interface for note enhancement.

Usage:
    sane process notes/idea.md
    sane init --yes
    sane watch
    sane costs
"""

import atexit
import os
import time
from dataclasses import fields
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .api import Session
from .config import SaneConfig, load_or_create_config, resolve_state_path
from .errors import SaneError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import ProcessResult
from .vault import FileVault

# Fields that can't be changed with `sane config KEY VALUE`
_READONLY_FIELDS = ("state_path", "version")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_vault_override: Optional[Path] = None
_store_override: Optional[Path] = None


def _vault_callback(value: Optional[Path]):
    global _vault_override
    if value is not None:
        _vault_override = value


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


app = typer.Typer(
    name="sane",
    help="Semantic note enhancement: tags, keywords, links and summaries for markdown notes.",
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
    vault: Annotated[Optional[Path], typer.Option(
        "--vault",
        envvar="SANE_VAULT",
        help="Path to the notes directory (default: current directory)",
        callback=_vault_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        help="Path to the state directory (default: <vault>/.sane)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Semantic note enhancement."""
    configure_quiet_mode(quiet=not verbose)


def _notify(message: str) -> None:
    typer.echo(message, err=True)


def _vault_path() -> Path:
    return (_vault_override or Path.cwd()).expanduser().resolve()


def _load_config() -> SaneConfig:
    state_path = resolve_state_path(_vault_path(), _store_override)
    try:
        return load_or_create_config(state_path)
    except (ValueError, OSError) as e:
        typer.echo(f"Error: invalid configuration: {e}", err=True)
        raise typer.Exit(1)


def _get_session() -> Session:
    """Open a session for the vault, handling errors gracefully."""
    vault_path = _vault_path()
    if not vault_path.is_dir():
        typer.echo(f"Error: vault not found: {vault_path}", err=True)
        raise typer.Exit(1)

    config = _load_config()
    if config.debug or os.environ.get("SANE_VERBOSE") == "1":
        enable_debug_mode()

    try:
        session = Session(FileVault(vault_path), config, notify=_notify).open()
    except (ValueError, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    # Persist state even if a command exits early
    atexit.register(session.close)
    return session


def _report(result: Optional[ProcessResult]) -> None:
    if result is None:
        return
    if result.status == "skipped":
        typer.echo(f"{result.path}: skipped")
        return
    if result.status == "not_configured":
        return
    for neighbor in result.neighbors:
        typer.echo(f"  {neighbor.similarity:.3f}  {neighbor.path}")
    if result.enhanced:
        typer.echo(f"Enhanced {len(result.enhanced)} note(s): {', '.join(result.enhanced)}")
    else:
        typer.echo("No notes enhanced")
    if result.failed:
        typer.echo(f"Failed: {', '.join(result.failed)}", err=True)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def process(
    path: Annotated[Optional[str], typer.Argument(
        help="Vault-relative note path (default: most recently modified note)"
    )] = None,
    queued: Annotated[bool, typer.Option(
        "--queued", "-q",
        help="Process every note waiting in the queue instead",
    )] = False,
):
    """Enhance a note's most related notes now."""
    session = _get_session()
    try:
        if queued:
            processed = session.flush()
            typer.echo(f"Processed {len(processed)} queued note(s)")
            return
        result = session.process(path) if path else session.process_current()
        if path and result is None:
            typer.echo(f"Error: note not found: {path}", err=True)
            raise typer.Exit(1)
        _report(result)
        if result is not None and result.status == "not_configured":
            raise typer.Exit(1)
    finally:
        session.close()


@app.command("init")
def init_all(
    yes: Annotated[bool, typer.Option(
        "--yes", "-y",
        help="Don't ask for confirmation",
    )] = False,
):
    """Process every note in scope (may take a while and incur costs)."""
    session = _get_session()

    def confirm(count: int) -> bool:
        if yes:
            return True
        return typer.confirm(
            f"This will process {count} notes. This may take a while and incur costs. Continue?"
        )

    try:
        results = session.initialize_all(confirm)
        enhanced = sum(len(r.enhanced) for r in results)
        typer.echo(f"{len(results)} note(s) processed, {enhanced} enhancement(s) written")
    finally:
        session.close()


@app.command()
def costs():
    """Show estimated spend."""
    session = _get_session()
    try:
        summary = session.cost_summary()
    finally:
        session.close()
    typer.echo(f"Today:      ${summary.today:.4f} / ${summary.daily_budget:.2f}")
    typer.echo(f"This month: ${summary.month:.4f}")
    typer.echo(f"Entries:    {summary.entries}")
    typer.echo(f"Embeddings: {summary.embeddings}")
    typer.echo(f"Provider:   {summary.provider}")


@app.command()
def status():
    """Show provider, store and queue status."""
    session = _get_session()
    try:
        info = session.status()
    finally:
        session.close()
    typer.echo(f"Provider:      {info.provider}")
    typer.echo(f"Configured:    {'yes' if info.configured else 'no'}")
    typer.echo(f"Embeddings:    {info.embeddings}")
    typer.echo(f"Queue:         {info.queue_size}")
    typer.echo(f"Target folder: {info.target_folder or 'all notes'}")
    typer.echo(f"Trigger:       {info.trigger}")


@app.command()
def watch(
    interval: Annotated[float, typer.Option(
        "--interval", "-i",
        help="Seconds between vault scans",
    )] = 2.0,
):
    """Watch the vault and process changes per the configured trigger."""
    session = _get_session()
    vault = session.vault
    vault.scan_changes()  # baseline
    typer.echo(
        f"Watching {vault.root} (trigger: {session.config.trigger}). Ctrl+C to stop.",
        err=True,
    )
    try:
        while True:
            time.sleep(interval)
            for event in vault.scan_changes():
                session.dispatch(event)
    except KeyboardInterrupt:
        typer.echo("Stopping...", err=True)
    finally:
        session.close()


@app.command("test-ai")
def test_ai():
    """Send a synthetic note to the configured backend (debug mode only)."""
    session = _get_session()
    try:
        outcome = session.test_backend()
    except SaneError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    finally:
        session.close()

    enhancement = outcome["enhancement"]
    typer.echo(f"Provider:  {outcome['provider']}")
    typer.echo(f"Embedding: {outcome['dimension']} dimensions")
    typer.echo(f"Tags:      {', '.join(enhancement.tags)}")
    typer.echo(f"Keywords:  {', '.join(enhancement.keywords)}")
    typer.echo(f"Links:     {', '.join(enhancement.links)}")
    typer.echo(f"Summary:   {enhancement.summary}")


def _coerce(config: SaneConfig, key: str, value: str) -> Any:
    """Convert a command-line string to the type of config field ``key``."""
    types = {f.name: f.type for f in fields(config)}
    if key not in types or key in _READONLY_FIELDS:
        raise typer.BadParameter(f"Unknown config key: {key}")
    kind = types[key]
    if kind is bool:
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise typer.BadParameter(f"{key} expects true/false, got {value!r}")
    if kind in (int, float):
        try:
            return kind(value)
        except ValueError:
            raise typer.BadParameter(f"{key} expects a number, got {value!r}")
    return value


@app.command()
def config(
    key: Annotated[Optional[str], typer.Argument(help="Config key to show or set")] = None,
    value: Annotated[Optional[str], typer.Argument(help="New value")] = None,
):
    """
    Show configuration (credentials masked), or get/set one key.

    \b
    Examples:
        sane config                    # Show all config
        sane config trigger            # Show one value
        sane config trigger scheduled  # Change a value
    """
    if value is None:
        cfg = _load_config()
        shown = cfg.masked()
        if key is not None:
            if key not in shown:
                typer.echo(f"Error: unknown config key: {key}", err=True)
                raise typer.Exit(1)
            typer.echo(shown[key])
            return
        typer.echo(f"file: {cfg.config_path}")
        for name, current in shown.items():
            typer.echo(f"{name} = {current}")
        return

    session = _get_session()
    try:
        try:
            updated = session.update_config(**{key: _coerce(session.config, key, value)})
        except typer.BadParameter as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        typer.echo(f"{key} = {updated.masked()[key]}")
    finally:
        session.close()


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="sane CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
