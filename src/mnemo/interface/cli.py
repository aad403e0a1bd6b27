"""mnemo CLI — a terminal host for review sessions and deck maintenance."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from mnemo.application.config import AppConfig, resolve_config
from mnemo.application.factory import build_review_service
from mnemo.application.selector import SelectionMode
from mnemo.application.service import ReviewService
from mnemo.application.session import CardState, ReviewSession
from mnemo.domain.errors import InvalidRatingError, PersistenceError, StoreFetchError
from mnemo.domain.models import Rating

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mnemo: spaced-repetition reviews for your knowledge cards.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage mnemo configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger(__name__)

LOG_LEVELS = {0: logging.WARNING, 1: logging.WARNING, 2: logging.INFO}

RATING_LABELS = {
    Rating.BLACKOUT: "forgot completely",
    Rating.WRONG: "wrong",
    Rating.HARD: "hard",
    Rating.OKAY: "okay",
    Rating.GOOD: "good",
    Rating.EASY: "easy",
}


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 1,
    database: Annotated[
        Path | None, typer.Option("--database", help="SQLite database file.")
    ] = None,
):
    """Global settings for mnemo."""
    logging.basicConfig(
        level=LOG_LEVELS.get(verbose, logging.DEBUG),
        format="%(levelname)s:%(name)s:%(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"verbose": verbose, "database_path": database}


def _service(ctx: typer.Context, **overrides) -> tuple[AppConfig, ReviewService]:
    merged = dict(ctx.obj.get("overrides", {})) if ctx.obj else {}
    merged.update(overrides)
    config = resolve_config(merged)
    return config, build_review_service(config)


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Prompt side of the card.")],
    content: Annotated[str, typer.Argument(help="Answer side of the card.")],
    user: Annotated[str | None, typer.Option(help="Owner of the card.")] = None,
):
    """[bold green]Add[/bold green] a card. It is due immediately."""
    config, service = _service(ctx)
    card = asyncio.run(service.add_card(user or config.default_user, title, content))
    typer.echo(card.id)


@app.command()
def due(
    ctx: typer.Context,
    user: Annotated[str | None, typer.Option(help="Deck owner.")] = None,
    limit: Annotated[int | None, typer.Option(min=1, help="Maximum cards to list.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List cards that are due now, most overdue first."""
    config, service = _service(ctx)
    try:
        cards = asyncio.run(service.due_cards(user or config.default_user, limit))
    except StoreFetchError as e:
        typer.secho(f"Could not load cards: {e}", fg="red")
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "id": c.id,
                        "title": c.title,
                        "next_review_at": (
                            c.schedule.next_review_at.isoformat() if c.schedule else None
                        ),
                    }
                    for c in cards
                ],
                indent=2,
            )
        )
        return

    if not cards:
        typer.secho("Nothing due.", fg="green")
        return
    for c in cards:
        when = c.schedule.next_review_at.isoformat() if c.schedule else "never reviewed"
        typer.echo(f"{c.id}  {c.title}  ({when})")


@app.command()
def review(
    ctx: typer.Context,
    user: Annotated[str | None, typer.Option(help="Deck owner.")] = None,
    mode: Annotated[
        SelectionMode,
        typer.Option(help="due: scheduled cards; random: sample the deck; curated: --card ids."),
    ] = SelectionMode.DUE,
    card: Annotated[
        list[str] | None, typer.Option("--card", help="Card id for curated mode (repeatable).")
    ] = None,
    limit: Annotated[int | None, typer.Option(min=1, help="Session size cap.")] = None,
):
    """[bold green]Review[/bold green] cards interactively."""
    if mode is SelectionMode.CURATED and not card:
        typer.secho("Curated mode needs at least one --card.", fg="red")
        raise typer.Exit(2)
    config, service = _service(ctx)
    user_id = user or config.default_user

    async def run():
        try:
            session = await service.start_session(user_id, mode=mode, limit=limit, card_ids=card)
        except StoreFetchError as e:
            typer.secho(f"Could not load cards: {e}", fg="red")
            raise typer.Exit(1) from e

        if session.is_finished:
            typer.secho("Nothing to review. Come back later!", fg="green")
            return

        while not session.is_finished:
            await _review_card(session)

        summary = session.summary()
        typer.secho(
            f"Session complete: {summary.reviewed} cards, {summary.correct} recalled.",
            fg="green",
        )
        streak = await service.streak(user_id)
        typer.echo(f"Streak: {streak.current_streak} days (best {streak.longest_streak})")

    asyncio.run(run())


async def _review_card(session: ReviewSession) -> None:
    view = session.view()
    typer.echo(f"\n[{view.position + 1}/{view.total}] {view.title}")

    while session.state in (CardState.HIDDEN, CardState.HINTED):
        choice = typer.prompt("[enter] reveal, [h] hint, [q] quit", default="", show_default=False)
        if choice.strip().lower() == "h":
            typer.echo(f"Hint: {session.request_hint()}")
        elif choice.strip().lower() == "q":
            session.abort()
            raise typer.Exit()
        else:
            typer.echo(session.reveal())

    labels = ", ".join(f"{int(r)}={label}" for r, label in RATING_LABELS.items())
    while True:
        raw = typer.prompt(f"Rate ({labels})", type=int)
        try:
            outcome = await session.rate(raw)
            break
        except InvalidRatingError as e:
            typer.secho(str(e), fg="yellow")
        except PersistenceError as e:
            typer.secho(f"Save failed: {e}", fg="red")
            outcome = await _retry_until_saved(session)
            break

    typer.echo(f"Next review in {outcome.schedule.interval_days} day(s).")


async def _retry_until_saved(session: ReviewSession):
    while True:
        if not typer.confirm("Retry saving?", default=True):
            session.abort(discard=True)
            raise typer.Exit(1)
        try:
            return await session.retry()
        except PersistenceError as e:
            typer.secho(f"Save failed: {e}", fg="red")


@app.command()
def streak(
    ctx: typer.Context,
    user: Annotated[str | None, typer.Option(help="User to report on.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show streak, today's progress and achievements."""
    config, service = _service(ctx)
    user_id = user or config.default_user

    async def gather():
        return (
            await service.streak(user_id),
            await service.daily_progress(user_id),
            await service.achievements(user_id),
        )

    current, progress, unlocked = asyncio.run(gather())

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "current_streak": current.current_streak,
                    "longest_streak": current.longest_streak,
                    "total_reviews": current.total_reviews,
                    "reviewed_today": progress.reviewed_today,
                    "daily_goal": progress.daily_goal,
                    "completion_rate": progress.completion_rate,
                    "achievements": [a.id for a in unlocked if a.unlocked],
                },
                indent=2,
            )
        )
        return

    typer.echo(f"Current streak: {current.current_streak} days")
    typer.echo(f"Longest streak: {current.longest_streak} days")
    typer.echo(f"Total reviews:  {current.total_reviews}")
    typer.echo(
        f"Today: {progress.reviewed_today}/{progress.daily_goal} ({progress.completion_rate}%)"
    )
    for a in unlocked:
        mark = typer.style("✔", fg="green") if a.unlocked else "·"
        typer.echo(f"  {mark} {a.name}: {a.description}")


@app.command()
def repair(
    ctx: typer.Context,
    user: Annotated[str | None, typer.Option(help="Deck owner.")] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Report without writing.")
    ] = False,
):
    """Fix cards with missing schedules or an ease factor below the floor."""
    config, service = _service(ctx)
    report = asyncio.run(service.repair(user or config.default_user, dry_run=dry_run))
    typer.echo(
        f"Scanned {report.total_cards} cards: {report.invalid_cards} invalid, "
        f"{report.fixed_cards} fixed."
    )


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port.")] = 8777,
):
    """Run the HTTP session host."""
    import uvicorn

    uvicorn.run("mnemo.server:app", host=host, port=port)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    app()
