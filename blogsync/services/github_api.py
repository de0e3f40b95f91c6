"""Minimal client for the GitHub Git Data API endpoints used by the publisher."""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import httpx

from blogsync.config import GitHubSettings
from blogsync.errors import GitHubAPIError
from blogsync.models.git import BranchHead, TreeEntry, TreeListing

LOGGER = logging.getLogger(__name__)


class GitHubClient:
    """Issue Git Data API requests for a single repository.

    Every call is synchronous and raises :class:`GitHubAPIError` for non-2xx
    responses; transport problems surface as :class:`httpx.HTTPError`.
    """

    _DEFAULT_HEADERS: Mapping[str, str] = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": "blogsync/1.0",
    }

    def __init__(
        self,
        settings: GitHubSettings,
        *,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        headers = dict(self._DEFAULT_HEADERS)
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        self._headers = headers
        self._client = client or httpx.Client(
            headers=headers,
            timeout=settings.timeout,
            transport=transport,
        )
        self._repo_url = f"{settings.api_url.rstrip('/')}/repos/{settings.owner}/{settings.repo}"

    # ------------------------------------------------------------------
    # Refs
    # ------------------------------------------------------------------
    def get_branch_sha(self, branch: str) -> str:
        return self._request("GET", f"/git/ref/heads/{branch}", parse=lambda body: str(body["object"]["sha"]))

    def create_ref(self, branch: str, sha: str) -> None:
        self._request("POST", "/git/refs", json={"ref": f"refs/heads/{branch}", "sha": sha})

    def update_ref(self, branch: str, sha: str, *, force: bool) -> None:
        self._request("PATCH", f"/git/refs/heads/{branch}", json={"sha": sha, "force": force})

    # ------------------------------------------------------------------
    # Commits and trees
    # ------------------------------------------------------------------
    def get_commit_tree_sha(self, commit_sha: str) -> str:
        return self._request("GET", f"/git/commits/{commit_sha}", parse=lambda body: str(body["tree"]["sha"]))

    def get_branch_head(self, branch: str) -> BranchHead:
        commit_sha = self.get_branch_sha(branch)
        return BranchHead(commit_sha=commit_sha, tree_sha=self.get_commit_tree_sha(commit_sha))

    def get_tree(self, tree_sha: str, *, recursive: bool = False) -> TreeListing:
        params = {"recursive": "1"} if recursive else None

        def _listing(body: Any) -> TreeListing:
            return TreeListing(
                sha=str(body.get("sha") or tree_sha),
                entries=tuple(TreeEntry.from_payload(item) for item in body.get("tree", [])),
                truncated=bool(body.get("truncated")),
            )

        return self._request("GET", f"/git/trees/{tree_sha}", params=params, parse=_listing)

    def create_blob(self, content: bytes) -> str:
        return self._request(
            "POST",
            "/git/blobs",
            json={"content": base64.b64encode(content).decode("ascii"), "encoding": "base64"},
            parse=_sha,
        )

    def create_tree(self, entries: Sequence[TreeEntry], *, base_tree: str | None = None) -> str:
        body: dict[str, Any] = {"tree": [entry.to_payload() for entry in entries]}
        if base_tree:
            body["base_tree"] = base_tree
        return self._request("POST", "/git/trees", json=body, parse=_sha)

    def create_commit(self, message: str, tree_sha: str, parents: Sequence[str]) -> str:
        return self._request(
            "POST",
            "/git/commits",
            json={"message": message, "tree": tree_sha, "parents": list(parents)},
            parse=_sha,
        )

    def get_repository(self) -> dict[str, Any]:
        return self._request("GET", "", parse=_mapping)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
        parse: Callable[[Any], Any] = lambda body: body,
    ) -> Any:
        url = f"{self._repo_url}{path}"
        response = self._client.request(method, url, json=json, params=params, headers=self._headers)
        if response.is_error:
            raise GitHubAPIError(
                response.status_code,
                self._redact(_error_message(response)),
                method=method,
                url=url,
            )
        LOGGER.debug("%s %s -> %s", method, url, response.status_code)
        try:
            return parse(response.json() if response.content else {})
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            # Proxies and captive portals answer 2xx with HTML bodies.
            raise GitHubAPIError(response.status_code, "Malformed response", method=method, url=url) from exc

    def _redact(self, message: str) -> str:
        token = self._settings.token
        if token and token in message:
            return message.replace(token, "****")
        return message


def _sha(body: Any) -> str:
    return str(body["sha"])


def _mapping(body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise TypeError(f"Expected a JSON object, got {type(body).__name__}")
    return body


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase


__all__ = ["GitHubClient"]
