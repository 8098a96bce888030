"""GraphQL queries used by the fork analyzer."""

VIEWER_QUERY = """
query {
  viewer {
    login
  }
}
"""

FORK_LIST_QUERY = """
query ($first: Int!) {
  rateLimit {
    cost
    remaining
    resetAt
  }
  viewer {
    repositories(first: $first, isFork: true, ownerAffiliations: OWNER) {
      pageInfo {
        hasNextPage
      }
      nodes {
        name
        nameWithOwner
        url
        isFork
        defaultBranchRef {
          name
        }
        parent {
          name
          nameWithOwner
          defaultBranchRef {
            name
          }
        }
      }
    }
  }
}
"""

PULL_REQUEST_SEARCH_QUERY = """
query ($query: String!, $first: Int!) {
  rateLimit {
    cost
    remaining
    resetAt
  }
  search(query: $query, type: ISSUE, first: $first) {
    nodes {
      ... on PullRequest {
        number
        title
        state
        url
        headRefName
      }
    }
  }
}
"""

__all__ = ["FORK_LIST_QUERY", "PULL_REQUEST_SEARCH_QUERY", "VIEWER_QUERY"]
