from __future__ import annotations

import datetime as dt

from rich.markup import escape

from .types import MAX_TEXT_CHARS, Suggestion, ViewState
from .utils import shorten_id


def format_created_at(value: dt.datetime | None) -> str | None:
    if value is None:
        return None
    return f"{value.day} {value.strftime('%b %Y')}"


def char_counter(draft: str) -> str:
    return f"{len(draft)}/{MAX_TEXT_CHARS} characters"


def render_suggestion(suggestion: Suggestion) -> list[str]:
    meta = f"[dim]suggested by[/dim] [cyan]{escape(shorten_id(suggestion.author_id))}[/cyan]"
    created = format_created_at(suggestion.created_at)
    if created:
        meta = f"{meta} [dim]· {created}[/dim]"
    return [f"  {escape(suggestion.text)}", f"  {meta}"]


def render_view(view: ViewState) -> list[str]:
    """Rich markup lines for the whole screen."""
    if view.loading:
        return ["[bold]Loading...[/bold]"]
    if view.error is not None:
        return [f"[red]Error:[/red] {escape(str(view.error))}"]
    lines: list[str] = []
    if view.principal_id:
        lines.append(f"[dim]Your user id:[/dim] {escape(view.principal_id)}")
    lines.append(f"[bold]Recent ideas ({len(view.feed)})[/bold]")
    if not view.feed:
        lines.append("  [dim]No suggestions yet. Be the first to share an idea![/dim]")
    for suggestion in view.feed:
        lines.extend(render_suggestion(suggestion))
    if view.submit_state.in_flight:
        lines.append("[yellow]Sending suggestion...[/yellow]")
    if view.submit_state.error is not None:
        lines.append(f"[red]{escape(str(view.submit_state.error))}[/red]")
    return lines
