"""Exception types shared by the publishing services."""

from __future__ import annotations


class BlogSyncError(Exception):
    """Base class for errors raised by blogsync."""


class ConfigurationError(BlogSyncError):
    """Raised when settings are missing or invalid before any mutation happens."""


class GitHubAPIError(BlogSyncError):
    """Non-successful response returned by the GitHub REST API."""

    def __init__(self, status: int, message: str, *, method: str = "", url: str = "") -> None:
        self.status = status
        self.message = message
        self.method = method
        self.url = url
        target = " ".join(part for part in (method, url) if part)
        prefix = f"GitHub API {target}" if target else "GitHub API"
        super().__init__(f"{prefix} failed with {status}: {message}")

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_unprocessable(self) -> bool:
        """GitHub reports "reference already exists" and non fast-forward updates as 422."""

        return self.status == 422
