"""Per-fork enrichment: divergence, recency, branches and pull requests."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Any, Callable, Iterable, Protocol
from urllib.parse import quote

from .cache import PRCache, PRCacheStore, merge_cached
from .categorize import categorize_fork
from .config import AnalysisSettings, UTC
from .github_client import GitHubClientError
from .graphql_queries import PULL_REQUEST_SEARCH_QUERY
from .models import Branch, Fork, ForkRepository, ParentRepository, PRState, PullRequest

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str], None]

# Failures of a single enrichment step; the step's fields keep their zero value.
STEP_ERRORS = (GitHubClientError, KeyError, IndexError, TypeError, ValueError)

PR_PRIORITY = {PRState.OPEN: 0, PRState.MERGED: 1, PRState.CLOSED: 2}


class GitHubReader(Protocol):
    async def rest(self, path: str, **params: Any) -> Any: ...

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]: ...


def _ignore_progress(repo: str, action: str) -> None:
    return None


class ForkAnalyzer:
    """Enriches one enumerated fork at a time.

    Every step may fail on its own without aborting the fork: comparison,
    commit dates, branches and pull requests are fetched independently.
    """

    def __init__(
        self,
        client: GitHubReader,
        cache: PRCacheStore,
        settings: AnalysisSettings | None = None,
        *,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._settings = settings or AnalysisSettings()
        self._now = now or (lambda: datetime.now(tz=UTC))

    async def analyze(self, repo: ForkRepository, progress: ProgressCallback | None = None) -> Fork:
        report = progress or _ignore_progress
        fork = Fork.from_repository(repo)
        parent = repo.parent

        if parent is not None:
            report(repo.name, "comparing with upstream")
            await self._compare(fork, repo, parent)

        report(repo.name, "checking commit dates")
        await self._commit_dates(fork, repo, parent)

        report(repo.name, "fetching branches")
        await self._branches(fork, repo)

        if parent is not None:
            report(repo.name, "fetching PRs")
            try:
                prs = await self._pull_requests(repo, parent)
            except STEP_ERRORS as exc:
                LOGGER.debug("Pull request lookup failed for %s: %s", repo.full_name, exc)
            else:
                link_pull_requests(fork.branches, prs)

        fork.category = categorize_fork(fork)
        return fork

    async def _compare(self, fork: Fork, repo: ForkRepository, parent: ParentRepository) -> None:
        base = f"{parent.owner}:{quote(parent.default_branch, safe='/')}"
        head = f"{repo.owner}:{quote(repo.default_branch, safe='/')}"
        try:
            comparison = await self._client.rest(f"repos/{parent.full_name}/compare/{base}...{head}")
            fork.ahead = int(comparison["ahead_by"])
            fork.behind = int(comparison["behind_by"])
        except STEP_ERRORS as exc:
            LOGGER.debug("Comparison failed for %s: %s", repo.full_name, exc)

    async def _commit_dates(self, fork: Fork, repo: ForkRepository, parent: ParentRepository | None) -> None:
        try:
            fork_date = await self._last_commit_date(repo.full_name, repo.default_branch)
        except STEP_ERRORS as exc:
            LOGGER.debug("Last commit lookup failed for %s: %s", repo.full_name, exc)
        else:
            fork.fork_last_commit = format_date(fork_date)
            fork.fork_last_ago = relative_time(fork_date, self._now())

        if parent is None:
            return
        try:
            upstream_date = await self._last_commit_date(parent.full_name, parent.default_branch)
        except STEP_ERRORS as exc:
            LOGGER.debug("Last commit lookup failed for %s: %s", parent.full_name, exc)
        else:
            fork.upstream_last_commit = format_date(upstream_date)
            fork.upstream_last_ago = relative_time(upstream_date, self._now())

    async def _last_commit_date(self, full_name: str, branch: str) -> str:
        params: dict[str, Any] = {"per_page": 1}
        if branch:
            params["sha"] = branch
        commits = await self._client.rest(f"repos/{full_name}/commits", **params)
        return str(commits[0]["commit"]["committer"]["date"]).strip()

    async def _branches(self, fork: Fork, repo: ForkRepository) -> None:
        try:
            default_branch = repo.default_branch
            if not default_branch:
                default_branch = (await self._client.rest(f"repos/{repo.full_name}"))["default_branch"]
                fork.default_branch = default_branch
            raw_branches = await self._client.rest(f"repos/{repo.full_name}/branches", per_page=100)
            listed = [(raw["name"], (raw.get("commit") or {}).get("sha", "")) for raw in raw_branches]
        except STEP_ERRORS as exc:
            LOGGER.debug("Branch listing failed for %s: %s", repo.full_name, exc)
            return

        branches: list[Branch] = []
        for name, sha in listed:
            branch = Branch(name=name, is_default=name == default_branch)
            if branch.is_default:
                # Already fetched with the fork's commit dates.
                branch.date = fork.fork_last_commit
                branch.date_ago = fork.fork_last_ago
            else:
                try:
                    commit = await self._client.rest(f"repos/{repo.full_name}/commits/{sha}")
                    iso_date = str(commit["commit"]["committer"]["date"]).strip()
                except STEP_ERRORS as exc:
                    LOGGER.debug("Commit lookup failed for %s@%s: %s", repo.full_name, name, exc)
                else:
                    branch.date = format_date(iso_date)
                    branch.date_ago = relative_time(iso_date, self._now())
            branches.append(branch)
        fork.branches = branches

    async def _pull_requests(self, repo: ForkRepository, parent: ParentRepository) -> list[PullRequest]:
        """Search the owner's pull requests against the parent, merged with the cache.

        When the search fails, a non-empty cache stands in for it.
        """

        if self._settings.no_cache:
            cache = PRCache()
        else:
            cache = await asyncio.to_thread(self._cache.load, parent.full_name)
        try:
            data = await self._client.graphql(
                PULL_REQUEST_SEARCH_QUERY,
                {
                    "query": f"is:pr repo:{parent.full_name} author:{repo.owner}",
                    "first": self._settings.pr_search_limit,
                },
            )
            nodes = data["search"].get("nodes") or []
            live = [PullRequest.from_graphql(node) for node in nodes if isinstance(node, dict) and node.get("number")]
        except STEP_ERRORS:
            if cache.prs:
                LOGGER.debug("PR search failed for %s; using %s cached PRs", repo.full_name, len(cache.prs))
                return cache.pull_requests()
            raise

        merged = merge_cached(live, cache)
        try:
            await asyncio.to_thread(self._cache.persist, parent.full_name, merged)
        except OSError as exc:
            LOGGER.debug("Unable to save PR cache for %s: %s", parent.full_name, exc)
        return merged


def link_pull_requests(branches: Iterable[Branch], prs: Iterable[PullRequest]) -> None:
    """Attach to each branch its most relevant pull request: open, then merged, then closed."""

    chosen: dict[str, PullRequest] = {}
    for pr in prs:
        current = chosen.get(pr.branch)
        if current is None or PR_PRIORITY[pr.state] < PR_PRIORITY[current.state]:
            chosen[pr.branch] = pr
    for branch in branches:
        if branch.name in chosen:
            branch.pr = chosen[branch.name]


def format_date(iso_date: str) -> str:
    return iso_date[:10]


def relative_time(iso_date: str, now: datetime | None = None) -> str:
    """Render the age of ``iso_date`` as ``"1y 2mo ago"``, ``"3mo 4d ago"``, ``"5d ago"`` or ``"today"``.

    Months count as 30 days and years as 12 months.
    """

    if len(iso_date) < 10:
        return ""
    try:
        day = date.fromisoformat(iso_date[:10])
    except ValueError:
        return ""

    today = (now or datetime.now(tz=UTC)).astimezone(UTC).date()
    days = max((today - day).days, 0)
    months, days = divmod(days, 30)
    years, months = divmod(months, 12)

    if years > 0:
        return f"{years}y {months}mo ago" if months > 0 else f"{years}y ago"
    if months > 0:
        return f"{months}mo {days}d ago" if days > 0 else f"{months}mo ago"
    if days > 0:
        return f"{days}d ago"
    return "today"


__all__ = [
    "ForkAnalyzer",
    "GitHubReader",
    "ProgressCallback",
    "format_date",
    "link_pull_requests",
    "relative_time",
]
