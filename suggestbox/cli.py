from __future__ import annotations

import contextlib
import dataclasses
import json
import logging
import threading
from collections.abc import Iterator
from pathlib import Path

import typer
from rich import print

from . import __version__
from .backends import build_backend
from .config import BACKENDS, SuggestboxConfig, get_config_path, load_config, read_config_file
from .errors import ConfigurationError
from .session import SuggestionBoxSession
from .types import MAX_TEXT_CHARS, Suggestion, ViewState
from .view import char_counter, render_view

app = typer.Typer(help="suggestbox: a live, public suggestion feed")
config_app = typer.Typer(help="Inspect client configuration")
app.add_typer(config_app, name="config")


@dataclasses.dataclass
class _Options:
    config_path: Path | None = None
    backend: str | None = None


def _version_callback(value: bool) -> None:
    if value:
        print(f"suggestbox {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path = typer.Option(None, "--config", help="Path to config JSON"),
    backend: str = typer.Option(None, help="Backend to use (firebase or memory)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log lifecycle events"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version"
    ),
) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    if backend is not None and backend.lower() not in BACKENDS:
        print(f"[red]Unknown backend: {backend}[/red]")
        raise typer.Exit(code=2)
    ctx.obj = _Options(config_path=config, backend=backend.lower() if backend else None)


def _config(ctx: typer.Context) -> SuggestboxConfig:
    options = ctx.obj if isinstance(ctx.obj, _Options) else _Options()
    cfg = load_config(options.config_path)
    if options.backend:
        cfg = dataclasses.replace(cfg, backend=options.backend)
    return cfg


@contextlib.contextmanager
def _session(cfg: SuggestboxConfig) -> Iterator[SuggestionBoxSession]:
    identity, store = build_backend(cfg)
    session = SuggestionBoxSession(cfg, identity, store)
    try:
        yield session
    finally:
        session.close()
        for resource in (store, identity):
            close = getattr(resource, "close", None)
            if callable(close):
                close()


def _await_ready(session: SuggestionBoxSession) -> ViewState:
    """Start the session and block until identity settles. No timeout."""
    ready = threading.Event()

    def _on_view(view: ViewState) -> None:
        if not view.loading:
            ready.set()

    unsubscribe = session.subscribe_view(_on_view)
    try:
        session.start()
        ready.wait()
    finally:
        unsubscribe()
    view = session.view()
    if view.error is not None:
        print(f"[red]Error:[/red] {view.error}")
        raise typer.Exit(code=1)
    if view.principal_id is None:
        print("[red]Error:[/red] signed out before a principal was issued")
        raise typer.Exit(code=1)
    return view


@app.command()
def whoami(ctx: typer.Context) -> None:
    """Sign in anonymously and print the user id."""

    with _session(_config(ctx)) as session:
        view = _await_ready(session)
        print(view.principal_id)


@app.command()
def submit(ctx: typer.Context, text: str = typer.Argument(..., help="Suggestion text")) -> None:
    """Post one suggestion to the shared feed."""

    if len(text) > MAX_TEXT_CHARS:
        print(f"[red]Too long: {char_counter(text)}; the limit is {MAX_TEXT_CHARS}.[/red]")
        raise typer.Exit(code=2)
    if not text.strip():
        print("[yellow]Nothing to submit.[/yellow]")
        raise typer.Exit(code=1)
    with _session(_config(ctx)) as session:
        _await_ready(session)
        future = session.submit(text)
        if future is None:
            print("[yellow]Nothing to submit.[/yellow]")
            raise typer.Exit(code=1)
        try:
            doc_id = future.result()
        except Exception:
            print(f"[red]Error:[/red] {session.coordinator.state.error}")
            raise typer.Exit(code=1) from None
        print(f"[green]Suggestion sent[/green] ({doc_id})")


@app.command()
def watch(ctx: typer.Context) -> None:
    """Print the live feed until interrupted."""

    done = threading.Event()
    last_feed: list[tuple[Suggestion, ...] | None] = [None]

    def _on_view(view: ViewState) -> None:
        if view.error is not None:
            for line in render_view(view):
                print(line)
            done.set()
            return
        if view.loading or view.feed == last_feed[0]:
            return
        last_feed[0] = view.feed
        print()
        for line in render_view(view):
            print(line)

    with _session(_config(ctx)) as session:
        session.subscribe_view(_on_view)
        session.start()
        try:
            done.wait()
        except KeyboardInterrupt:
            return
        raise typer.Exit(code=1)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the effective configuration (API key redacted)."""

    cfg = _config(ctx)
    print(f"[dim]{get_config_path(ctx.obj.config_path if ctx.obj else None)}[/dim]")
    print(json.dumps(cfg.to_dict(), indent=2))


@config_app.command("check")
def config_check(ctx: typer.Context) -> None:
    """Validate the configuration without contacting the backend."""

    try:
        read_config_file(ctx.obj.config_path if ctx.obj else None)
        cfg = _config(ctx)
        cfg.validate()
    except (ConfigurationError, ValueError) as exc:
        print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(code=1) from None
    print(f"[green]Configuration OK[/green] (namespace: {cfg.namespace or '-'})")
