"""Application configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt


UTC = timezone.utc


class GitHubSettings(BaseModel):
    """Configuration options for the GitHub REST and GraphQL APIs."""

    token: str | None = Field(default=None, description="Personal access token. Resolved through gh when unset.")
    api_url: str = Field(default="https://api.github.com")
    graphql_url: str = Field(default="https://api.github.com/graphql")
    max_retries: PositiveInt = Field(default=6, description="Maximum number of attempts per request.")
    initial_backoff: float = Field(default=1.0, ge=0.0, description="Initial exponential backoff in seconds.")
    max_backoff: float = Field(default=30.0, ge=0.0, description="Maximum delay for exponential backoff in seconds.")
    request_timeout: float = Field(default=40.0, ge=1.0, description="Transport timeout for a single HTTP request.")


class AnalysisSettings(BaseModel):
    """Tunable parameters for fork analysis."""

    max_workers: PositiveInt = Field(default=5, description="Forks analyzed concurrently.")
    fork_page_size: PositiveInt = Field(default=100, le=100, description="Forks requested by the single list query.")
    pr_search_limit: PositiveInt = Field(default=100, le=100, description="Pull requests returned by one search.")
    progress_interval: PositiveFloat = Field(default=0.08, description="Status line redraw interval in seconds.")
    progress_queue_size: PositiveInt = Field(default=100, description="Capacity of the progress event queue.")
    cache_dir: Path = Field(default_factory=lambda: default_cache_dir(os.environ))
    no_cache: bool = Field(default=False, description="Skip cache reads; the cache is still refreshed.")
    show_all: bool = Field(default=False, description="Include untouched forks in the output.")


class AppConfig(BaseModel):
    """Root configuration container."""

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, overrides: dict[str, Any] | None = None) -> "AppConfig":
        """Construct a configuration object from environment variables."""

        env = env if env is not None else os.environ
        overrides = overrides or {}

        github = GitHubSettings(
            token=overrides.get("github_token") or env.get("GITHUB_TOKEN") or env.get("GH_TOKEN") or None,
            api_url=overrides.get("github_api_url") or env.get("GITHUB_API_URL") or "https://api.github.com",
            graphql_url=overrides.get("github_graphql_url") or env.get("GITHUB_GRAPHQL_URL") or "https://api.github.com/graphql",
            max_retries=int(overrides.get("github_max_retries") or env.get("GITHUB_MAX_RETRIES", 6)),
            initial_backoff=float(overrides.get("github_initial_backoff") or env.get("GITHUB_INITIAL_BACKOFF", 1.0)),
            max_backoff=float(overrides.get("github_max_backoff") or env.get("GITHUB_MAX_BACKOFF", 30.0)),
            request_timeout=float(overrides.get("github_request_timeout") or env.get("GITHUB_REQUEST_TIMEOUT", 40.0)),
        )

        analysis = AnalysisSettings(
            max_workers=int(overrides.get("max_workers") or env.get("GH_WTFORK_MAX_WORKERS", 5)),
            fork_page_size=int(overrides.get("fork_page_size") or env.get("GH_WTFORK_PAGE_SIZE", 100)),
            cache_dir=overrides.get("cache_dir") or default_cache_dir(env),
            no_cache=bool(overrides.get("no_cache")) or _parse_bool(env.get("GH_WTFORK_NO_CACHE")),
            show_all=bool(overrides.get("show_all")),
        )

        return cls(github=github, analysis=analysis)


def default_cache_dir(env: Mapping[str, str]) -> Path:
    """Return the directory holding one pull request cache file per upstream."""

    if explicit := env.get("GH_WTFORK_CACHE_DIR"):
        return Path(explicit).expanduser()
    cache_home = env.get("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    # Shared with the other git-this-bread tools so existing caches are reused.
    return base / "git-this-bread" / "gh-wtfork" / "prs"


def _parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class RateLimitInfo:
    """Snapshot of GitHub's rate limit state."""

    cost: int
    remaining: int
    reset_at: datetime


__all__ = [
    "AppConfig",
    "GitHubSettings",
    "AnalysisSettings",
    "RateLimitInfo",
    "UTC",
    "default_cache_dir",
]
