"""Enumeration of the authenticated user's forks."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from .graphql_queries import FORK_LIST_QUERY
from .models import ForkRepository

LOGGER = logging.getLogger(__name__)


class GraphQLExecutor(Protocol):
    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]: ...


async def list_forks(client: GraphQLExecutor, page_size: int = 100) -> list[ForkRepository]:
    """Return the forks owned by the viewer, first page only.

    Forks whose parent is no longer visible are returned with ``parent=None``.
    """

    data = await client.graphql(FORK_LIST_QUERY, {"first": page_size})
    repositories = data["viewer"]["repositories"]
    nodes = repositories.get("nodes") or []
    if (repositories.get("pageInfo") or {}).get("hasNextPage"):
        LOGGER.warning("Only the first %s forks are analyzed; further pages are not requested", page_size)
    forks = [ForkRepository.from_graphql(node) for node in nodes if isinstance(node, dict)]
    LOGGER.debug("Enumerated %s forks", len(forks))
    return forks


__all__ = ["GraphQLExecutor", "list_forks"]
