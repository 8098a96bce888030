from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from gh_wtfork.analyzer import ForkAnalyzer, link_pull_requests, relative_time
from gh_wtfork.cache import PRCacheStore
from gh_wtfork.config import AnalysisSettings, UTC
from gh_wtfork.github_client import GitHubClientError
from gh_wtfork.models import Branch, Category, ForkRepository, ParentRepository, PRState, PullRequest

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


class FakeGitHub:
    def __init__(
        self,
        routes: dict[str, Any],
        search_nodes: list[dict[str, Any]] | None = None,
        failing: set[str] | None = None,
    ) -> None:
        self._routes = routes
        self._search_nodes = search_nodes
        self._failing = failing or set()
        self.rest_calls: list[tuple[str, dict[str, Any]]] = []
        self.search_queries: list[str] = []

    async def rest(self, path: str, **params: Any) -> Any:
        self.rest_calls.append((path, params))
        if path in self._failing or path not in self._routes:
            raise GitHubClientError(f"GET /{path} failed", 500)
        return self._routes[path]

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        self.search_queries.append((variables or {}).get("query", ""))
        if self._search_nodes is None:
            raise GitHubClientError("search unavailable", 502)
        return {"search": {"nodes": self._search_nodes}}


def _commit(date: str) -> dict[str, Any]:
    return {"commit": {"committer": {"date": date}}}


def _repo(parent: bool = True) -> ForkRepository:
    return ForkRepository(
        name="lib",
        full_name="me/lib",
        url="https://github.com/me/lib",
        default_branch="main",
        parent=ParentRepository(name="lib", full_name="acme/lib", default_branch="trunk") if parent else None,
    )


def _routes(ahead: int = 0, behind: int = 3) -> dict[str, Any]:
    return {
        "repos/acme/lib/compare/acme:trunk...me:main": {"ahead_by": ahead, "behind_by": behind},
        "repos/me/lib/commits": [_commit("2024-05-22T10:00:00Z")],
        "repos/acme/lib/commits": [_commit("2023-01-01T00:00:00Z")],
        "repos/me/lib/branches": [
            {"name": "main", "commit": {"sha": "aaa"}},
            {"name": "feature", "commit": {"sha": "bbb"}},
        ],
        "repos/me/lib/commits/bbb": _commit("2024-03-01T08:00:00Z"),
    }


def _node(number: int, state: str, branch: str) -> dict[str, Any]:
    return {
        "number": number,
        "title": f"PR {number}",
        "state": state,
        "url": f"https://github.com/acme/lib/pull/{number}",
        "headRefName": branch,
    }


def _analyze(client: FakeGitHub, store: PRCacheStore, repo: ForkRepository, **settings: Any):
    analyzer = ForkAnalyzer(client, store, AnalysisSettings(cache_dir=store.root, **settings), now=lambda: NOW)
    events: list[tuple[str, str]] = []
    fork = asyncio.run(analyzer.analyze(repo, lambda name, action: events.append((name, action))))
    return fork, events


def test_analyze_enriches_fork(tmp_path):
    client = FakeGitHub(_routes(), search_nodes=[_node(10, "CLOSED", "feature"), _node(11, "OPEN", "feature"), {}])
    store = PRCacheStore(tmp_path)

    fork, events = _analyze(client, store, _repo())

    assert (fork.ahead, fork.behind) == (0, 3)
    assert (fork.fork_last_commit, fork.fork_last_ago) == ("2024-05-22", "10d ago")
    assert (fork.upstream_last_commit, fork.upstream_last_ago) == ("2023-01-01", "1y 5mo ago")
    main, feature = fork.branches
    assert main.is_default and main.date == "2024-05-22" and main.date_ago == "10d ago"
    assert (feature.date, feature.date_ago) == ("2024-03-01", "3mo 2d ago")
    assert feature.pr is not None and feature.pr.number == 11
    assert main.pr is None
    assert fork.category is Category.CONTRIBUTION
    assert client.search_queries == ["is:pr repo:acme/lib author:me"]
    assert [action for _, action in events] == [
        "comparing with upstream",
        "checking commit dates",
        "fetching branches",
        "fetching PRs",
    ]
    assert sorted(store.load("acme/lib").prs) == [10]


def test_default_branch_commit_is_not_fetched_twice(tmp_path):
    client = FakeGitHub(_routes(), search_nodes=[])

    _analyze(client, PRCacheStore(tmp_path), _repo())

    paths = [path for path, _ in client.rest_calls]
    assert "repos/me/lib/commits/aaa" not in paths
    assert ("repos/me/lib/commits", {"per_page": 1, "sha": "main"}) in client.rest_calls


def test_ahead_fork_is_maintained(tmp_path):
    client = FakeGitHub(_routes(ahead=2, behind=0), search_nodes=[])

    fork, _ = _analyze(client, PRCacheStore(tmp_path), _repo())

    assert fork.ahead == 2
    assert fork.category is Category.MAINTAINED


def test_step_failures_leave_zero_values(tmp_path):
    routes = _routes()
    client = FakeGitHub(
        routes,
        search_nodes=None,
        failing={"repos/acme/lib/compare/acme:trunk...me:main", "repos/me/lib/commits/bbb"},
    )

    fork, _ = _analyze(client, PRCacheStore(tmp_path), _repo())

    assert (fork.ahead, fork.behind) == (0, 0)
    assert fork.fork_last_commit == "2024-05-22"
    assert [branch.name for branch in fork.branches] == ["main", "feature"]
    assert fork.branches[1].date == ""
    assert fork.branches[1].pr is None
    assert fork.category is Category.CONTRIBUTION


def test_fork_without_parent_skips_upstream_steps(tmp_path):
    client = FakeGitHub(_routes(), search_nodes=[_node(1, "OPEN", "feature")])

    fork, events = _analyze(client, PRCacheStore(tmp_path), _repo(parent=False))

    assert fork.parent_full_name == ""
    assert fork.upstream_last_commit == ""
    assert client.search_queries == []
    assert "comparing with upstream" not in [action for _, action in events]
    assert fork.category is Category.CONTRIBUTION


def test_cached_pull_requests_fill_search_gaps(tmp_path):
    store = PRCacheStore(tmp_path)
    store.persist("acme/lib", [PullRequest(7, "Old fix", PRState.MERGED, "u7", "feature")])
    client = FakeGitHub(_routes(), search_nodes=[_node(12, "CLOSED", "other")])

    fork, _ = _analyze(client, store, _repo())

    assert fork.branches[1].pr is not None
    assert fork.branches[1].pr.number == 7
    assert sorted(store.load("acme/lib").prs) == [7, 12]


def test_bypassing_cache_reads_still_refreshes_cache(tmp_path):
    store = PRCacheStore(tmp_path)
    store.persist("acme/lib", [PullRequest(7, "Old fix", PRState.MERGED, "u7", "feature")])
    client = FakeGitHub(_routes(), search_nodes=[_node(8, "CLOSED", "elsewhere")])

    fork, _ = _analyze(client, store, _repo(), no_cache=True)

    assert fork.branches[1].pr is None
    assert sorted(store.load("acme/lib").prs) == [7, 8]


def test_search_failure_falls_back_to_cache(tmp_path):
    store = PRCacheStore(tmp_path)
    store.persist("acme/lib", [PullRequest(7, "Old fix", PRState.MERGED, "u7", "feature")])
    client = FakeGitHub(_routes(), search_nodes=None)

    fork, _ = _analyze(client, store, _repo())

    assert fork.branches[1].pr is not None
    assert fork.branches[1].pr.state is PRState.MERGED


def test_unreadable_cache_does_not_block_live_links(tmp_path):
    store = PRCacheStore(tmp_path)
    store.path_for("acme/lib").write_bytes(b"\xff\xfe\x00garbage")
    client = FakeGitHub(_routes(), search_nodes=[_node(11, "OPEN", "feature")])

    fork, _ = _analyze(client, store, _repo())

    assert fork.branches[1].pr is not None
    assert fork.branches[1].pr.number == 11
    assert fork.category is Category.CONTRIBUTION


def test_malformed_branch_entry_only_drops_branches(tmp_path):
    routes = _routes()
    routes["repos/me/lib/branches"] = [{"commit": {"sha": "bbb"}}]
    client = FakeGitHub(routes, search_nodes=[])

    fork, _ = _analyze(client, PRCacheStore(tmp_path), _repo())

    assert fork.behind == 3
    assert fork.fork_last_commit == "2024-05-22"
    assert fork.branches == []
    assert fork.category is Category.UNTOUCHED


def test_cache_io_runs_off_the_event_loop(tmp_path, monkeypatch):
    offloaded: list[str] = []
    to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        offloaded.append(func.__name__)
        return await to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
    client = FakeGitHub(_routes(), search_nodes=[_node(10, "MERGED", "feature")])

    _analyze(client, PRCacheStore(tmp_path), _repo())

    assert offloaded == ["load", "persist"]


def test_link_pull_requests_prefers_open_then_merged():
    branches = [Branch("feature"), Branch("fix"), Branch("lonely")]
    prs = [
        PullRequest(10, "first", PRState.CLOSED, "u10", "feature"),
        PullRequest(11, "second", PRState.OPEN, "u11", "feature"),
        PullRequest(12, "third", PRState.CLOSED, "u12", "feature"),
        PullRequest(20, "a", PRState.CLOSED, "u20", "fix"),
        PullRequest(21, "b", PRState.MERGED, "u21", "fix"),
    ]

    link_pull_requests(branches, prs)

    assert branches[0].pr.number == 11
    assert branches[1].pr.number == 21
    assert branches[2].pr is None


def test_relative_time_formats():
    assert relative_time("2024-06-01T01:00:00Z", NOW) == "today"
    assert relative_time("2024-05-31", NOW) == "1d ago"
    assert relative_time("2024-04-02", NOW) == "2mo ago"
    assert relative_time("2023-05-28", NOW) == "1y ago"
    assert relative_time("2023-01-01T00:00:00Z", NOW) == "1y 5mo ago"
    assert relative_time("2024-07-01", NOW) == "today"
    assert relative_time("bad", NOW) == ""
    assert relative_time("not-a-date", NOW) == ""
