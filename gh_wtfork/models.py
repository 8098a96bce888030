"""Domain models used by the fork analyzer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class PRState(str, Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    CLOSED = "CLOSED"

    @property
    def is_terminal(self) -> bool:
        return self is not PRState.OPEN


class Category(str, Enum):
    """Triage classification of a fork."""

    MAINTAINED = "maintained"
    CONTRIBUTION = "contribution"
    UNTOUCHED = "untouched"


@dataclass(slots=True, frozen=True)
class ParentRepository:
    name: str
    full_name: str
    default_branch: str

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]


@dataclass(slots=True, frozen=True)
class ForkRepository:
    """A fork as returned by the enumeration query, before any enrichment."""

    name: str
    full_name: str
    url: str
    default_branch: str
    parent: ParentRepository | None

    @property
    def owner(self) -> str:
        return self.full_name.split("/", 1)[0]

    @classmethod
    def from_graphql(cls, payload: dict[str, Any]) -> "ForkRepository":
        """Convert a GraphQL repository node into a :class:`ForkRepository`."""

        parent_payload = payload.get("parent")
        parent = None
        if parent_payload:
            parent = ParentRepository(
                name=parent_payload.get("name", ""),
                full_name=parent_payload.get("nameWithOwner", ""),
                default_branch=(parent_payload.get("defaultBranchRef") or {}).get("name", ""),
            )
        return cls(
            name=payload.get("name", ""),
            full_name=payload.get("nameWithOwner", ""),
            url=payload.get("url", ""),
            default_branch=(payload.get("defaultBranchRef") or {}).get("name", ""),
            parent=parent,
        )


@dataclass(slots=True)
class PullRequest:
    number: int
    title: str
    state: PRState
    url: str
    branch: str

    @classmethod
    def from_graphql(cls, payload: dict[str, Any]) -> "PullRequest":
        return cls(
            number=int(payload["number"]),
            title=payload.get("title", ""),
            state=PRState(payload["state"]),
            url=payload.get("url", ""),
            branch=payload.get("headRefName", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        # The head branch is implied by the branch the PR is attached to.
        return {"number": self.number, "title": self.title, "state": self.state.value, "url": self.url}


@dataclass(slots=True)
class Branch:
    name: str
    is_default: bool = False
    date: str = ""
    date_ago: str = ""
    pr: PullRequest | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "date": self.date,
            "date_ago": self.date_ago,
            "is_default": self.is_default,
        }
        if self.pr is not None:
            data["pr"] = self.pr.to_dict()
        return data


@dataclass(slots=True)
class Fork:
    """A fork enriched with divergence, recency and branch data.

    Numeric and string fields left at their zero value could not be
    determined; they are not known to be zero.
    """

    name: str
    full_name: str
    url: str
    default_branch: str
    parent_name: str = ""
    parent_full_name: str = ""
    ahead: int = 0
    behind: int = 0
    fork_last_commit: str = ""
    fork_last_ago: str = ""
    upstream_last_commit: str = ""
    upstream_last_ago: str = ""
    branches: list[Branch] = field(default_factory=list)
    category: Category = Category.UNTOUCHED

    @classmethod
    def from_repository(cls, repo: ForkRepository) -> "Fork":
        fork = cls(
            name=repo.name,
            full_name=repo.full_name,
            url=repo.url,
            default_branch=repo.default_branch,
        )
        if repo.parent is not None:
            fork.parent_name = repo.parent.name
            fork.parent_full_name = repo.parent.full_name
        return fork

    @property
    def non_default_branches(self) -> list[Branch]:
        return [branch for branch in self.branches if not branch.is_default]

    @property
    def has_open_pr(self) -> bool:
        return any(branch.pr is not None and branch.pr.state is PRState.OPEN for branch in self.branches)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["html_url"] = data.pop("url")
        data["category"] = self.category.value
        data["untouched"] = self.category is Category.UNTOUCHED
        data["branches"] = [branch.to_dict() for branch in self.branches]
        return data


__all__ = [
    "Branch",
    "Category",
    "Fork",
    "ForkRepository",
    "ParentRepository",
    "PRState",
    "PullRequest",
]
