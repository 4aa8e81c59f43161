"""Source retrieval for pinned inputs."""

from .git import GitFetchResult, MutableRefWarning, fetch_git, resolve_commit

__all__ = ["GitFetchResult", "MutableRefWarning", "fetch_git", "resolve_commit"]
