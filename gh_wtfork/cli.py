"""Command line interface for gh-wtfork."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Optional

import typer

from .analyzer import ForkAnalyzer
from .cache import PRCacheStore
from .categorize import filter_forks, sort_forks
from .config import AppConfig
from .forks import list_forks
from .github_client import GitHubClient, GitHubClientError, resolve_token
from .identity import IdentityError, IdentityScope, Profile, get_profile
from .models import Category, Fork, PRState
from .triage import ForkTriage

app = typer.Typer(add_completion=False, help="What the fork? Triage your GitHub forks.")

CATEGORY_HEADERS = {
    Category.MAINTAINED: ("●", "Maintained", typer.colors.GREEN),
    Category.CONTRIBUTION: ("○", "Contributions", typer.colors.YELLOW),
    Category.UNTOUCHED: ("·", "Untouched", typer.colors.BRIGHT_BLACK),
}

PR_LABELS = {
    PRState.OPEN: ("open", typer.colors.YELLOW),
    PRState.MERGED: ("merged", typer.colors.GREEN),
    PRState.CLOSED: ("closed", typer.colors.RED),
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@app.command()
def main(
    as_profile: Optional[str] = typer.Option(None, "--as", help="Run as identity profile (managed by git-id)"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Show all forks (default: hide untouched)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass cache reads (still refreshes it)"),
    log_level: str = typer.Option("WARNING", help="Logging level"),
) -> None:
    """Categorize your forks as maintained, contribution or untouched."""

    configure_logging(log_level)
    config = AppConfig.from_env(overrides={"no_cache": no_cache, "show_all": show_all})

    try:
        profile = get_profile(as_profile) if as_profile else None
        forks = asyncio.run(_triage(config, profile, show_progress=not json_output and sys.stderr.isatty()))
    except (GitHubClientError, IdentityError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    if forks is None:
        typer.echo("No forks found.")
        return

    forks = sort_forks(filter_forks(forks, config.analysis.show_all))
    if json_output:
        typer.echo(json.dumps([fork.to_dict() for fork in forks], indent=2))
    else:
        _print_text(forks)


async def _triage(config: AppConfig, profile: Profile | None, *, show_progress: bool) -> list[Fork] | None:
    with IdentityScope(profile) as scope:
        token = await resolve_token(config.github, scope)
        async with GitHubClient(config.github, token=token) as client:
            await client.check_auth(scope)
            try:
                repos = await list_forks(client, config.analysis.fork_page_size)
            except GitHubClientError as exc:
                raise GitHubClientError(f"failed to list forks: {exc}", exc.status_code) from exc
            if not repos:
                return None

            analyzer = ForkAnalyzer(client, PRCacheStore(config.analysis.cache_dir), config.analysis)
            triage = ForkTriage(analyzer, config.analysis, show_progress=show_progress)
            result = await triage.run(repos)

    typer.echo(f"Analyzed {len(result.forks)} forks", err=True)
    return result.forks


def _print_text(forks: list[Fork]) -> None:
    if not forks:
        typer.secho("No active forks found. Use --all to see untouched forks.", dim=True)
        return

    last_category = None
    for fork in forks:
        if fork.category is not last_category:
            if last_category is not None:
                typer.echo()
            marker, title, color = CATEGORY_HEADERS[fork.category]
            typer.secho(f"{marker} {title}", fg=color, bold=True)
            last_category = fork.category

        _, _, color = CATEGORY_HEADERS[fork.category]
        typer.secho(fork.full_name, fg=color, bold=fork.category is Category.MAINTAINED)
        typer.secho(f"    ↑ {fork.parent_full_name}", dim=True)

        if fork.ahead > 0 or fork.behind > 0:
            parts = []
            if fork.ahead > 0:
                ahead = f"{fork.ahead} ahead"
                if fork.fork_last_ago:
                    ahead += f" ({fork.fork_last_ago})"
                parts.append(typer.style(ahead, fg=typer.colors.GREEN, bold=True))
            if fork.behind > 0:
                behind = f"{fork.behind} behind"
                if fork.upstream_last_ago:
                    behind += f" (upstream: {fork.upstream_last_ago})"
                parts.append(typer.style(behind, fg=typer.colors.RED))
            typer.echo("    " + "  ".join(parts))
        else:
            in_sync = "in sync"
            if fork.upstream_last_ago:
                in_sync += f" (upstream: {fork.upstream_last_ago})"
            typer.secho(f"    {in_sync}", fg=typer.colors.GREEN)

        for branch in fork.non_default_branches:
            line = "    " + typer.style(branch.name, fg=typer.colors.CYAN)
            if branch.date:
                line += "  " + typer.style(branch.date, dim=True)
                if branch.date_ago:
                    line += typer.style(f" · {branch.date_ago}", dim=True, italic=True)
            typer.echo(line)
            if branch.pr is not None:
                label, color = PR_LABELS[branch.pr.state]
                typer.echo(
                    "        "
                    + typer.style(f"{label} #{branch.pr.number}", fg=color)
                    + " "
                    + typer.style(_truncate(branch.pr.title, 50), dim=True)
                )
        typer.echo()


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


__all__ = ["app"]
