"""External service clients."""

from .github_service import GitHubService

__all__ = ["GitHubService"]
