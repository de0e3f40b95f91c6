"""Shared fixtures: an in-memory Git hosting API served through ``httpx.MockTransport``."""

from __future__ import annotations

import base64
import hashlib
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest

from blogsync.config import GitHubSettings
from blogsync.services.github_api import GitHubClient
from blogsync.services.github_publisher import GitHubPublisher
from blogsync.services.vault import FilesystemVault


OWNER = "octo"
REPO = "garden"
API_URL = "https://api.github.test"

_REPO_PATH_RE = re.compile(rf"^/repos/{OWNER}/{REPO}(?P<rest>.*)$")


def _git_blob_sha(content: bytes) -> str:
    header = f"blob {len(content)}\0".encode()
    return hashlib.sha1(header + content).hexdigest()


def _object_sha(kind: str, payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True).encode()
    return hashlib.sha1(kind.encode() + b"\0" + encoded).hexdigest()


@dataclass
class FakeGitHub:
    """Just enough of the Git Data API to exercise the publisher end to end."""

    blobs: dict[str, bytes] = field(default_factory=dict)
    trees: dict[str, dict[str, dict[str, str]]] = field(default_factory=dict)
    commits: dict[str, dict[str, Any]] = field(default_factory=dict)
    refs: dict[str, str] = field(default_factory=dict)
    requests: list[tuple[str, str, Any]] = field(default_factory=list)
    failures: dict[tuple[str, str], int] = field(default_factory=dict)
    truncate_trees: bool = False
    empty_status: int = 404

    # ------------------------------------------------------------------
    # Seeding and inspection helpers
    # ------------------------------------------------------------------
    def seed(self, branch: str, files: dict[str, bytes], message: str = "seed") -> str:
        entries = {}
        for path, content in files.items():
            sha = _git_blob_sha(content)
            self.blobs[sha] = content
            entries[path] = {"mode": "100644", "type": "blob", "sha": sha}
        tree_sha = self._store_tree(entries)
        commit_sha = self._store_commit(tree_sha, [], message)
        self.refs[branch] = commit_sha
        return commit_sha

    def files(self, branch: str) -> dict[str, bytes]:
        commit = self.commits[self.refs[branch]]
        return {path: self.blobs[entry["sha"]] for path, entry in self.trees[commit["tree"]].items()}

    def head_commit(self, branch: str) -> dict[str, Any]:
        return self.commits[self.refs[branch]]

    def count(self, method: str, kind: str) -> int:
        return sum(1 for m, k, _ in self.requests if m == method and k == kind)

    def payloads(self, method: str, kind: str) -> list[Any]:
        return [body for m, k, body in self.requests if m == method and k == kind]

    def fail(self, method: str, kind: str, status: int = 500) -> None:
        self.failures[(method, kind)] = status

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        match = _REPO_PATH_RE.match(request.url.path)
        if match is None:
            return _error(404, "Not Found")
        rest = match.group("rest")
        body = json.loads(request.content) if request.content else None
        kind = self._kind(rest)
        self.requests.append((request.method, kind, body))

        injected = self.failures.get((request.method, kind))
        if injected is not None:
            return _error(injected, "Injected failure")

        if request.headers.get("Authorization") != "Bearer secret-token":
            return _error(401, "Bad credentials")

        if rest == "" and request.method == "GET":
            return httpx.Response(200, json={"full_name": f"{OWNER}/{REPO}"})
        if kind == "ref" and request.method == "GET":
            return self._get_ref(rest.rsplit("/heads/", 1)[1])
        if kind == "ref" and request.method == "PATCH":
            return self._update_ref(rest.rsplit("/heads/", 1)[1], body)
        if kind == "refs" and request.method == "POST":
            return self._create_ref(body)
        if kind == "commit" and request.method == "GET":
            return self._get_commit(rest.rsplit("/", 1)[1])
        if kind == "commits" and request.method == "POST":
            return self._create_commit(body)
        if kind == "tree" and request.method == "GET":
            return self._get_tree(rest.rsplit("/", 1)[1], request.url.params.get("recursive") == "1")
        if kind == "trees" and request.method == "POST":
            return self._create_tree(body)
        if kind == "blobs" and request.method == "POST":
            content = base64.b64decode(body["content"])
            sha = _git_blob_sha(content)
            self.blobs[sha] = content
            return httpx.Response(201, json={"sha": sha})
        return _error(404, "Not Found")

    @staticmethod
    def _kind(rest: str) -> str:
        if rest.startswith(("/git/ref/", "/git/refs/")):
            return "ref"
        if rest == "/git/refs":
            return "refs"
        if rest.startswith("/git/commits/"):
            return "commit"
        if rest.startswith("/git/trees/"):
            return "tree"
        return rest.rsplit("/", 1)[-1] or "repo"

    def _get_ref(self, branch: str) -> httpx.Response:
        if not self.refs:
            return _error(self.empty_status, "Git Repository is empty." if self.empty_status == 409 else "Not Found")
        if branch not in self.refs:
            return _error(404, "Not Found")
        sha = self.refs[branch]
        return httpx.Response(200, json={"ref": f"refs/heads/{branch}", "object": {"sha": sha, "type": "commit"}})

    def _create_ref(self, body: dict[str, Any]) -> httpx.Response:
        branch = body["ref"].removeprefix("refs/heads/")
        if branch in self.refs:
            return _error(422, "Reference already exists")
        if body["sha"] not in self.commits:
            return _error(422, "Object does not exist")
        self.refs[branch] = body["sha"]
        return httpx.Response(201, json={"ref": body["ref"], "object": {"sha": body["sha"]}})

    def _update_ref(self, branch: str, body: dict[str, Any]) -> httpx.Response:
        if branch not in self.refs:
            return _error(422, "Reference does not exist")
        if not body.get("force") and not self._descends_from(body["sha"], self.refs[branch]):
            return _error(422, "Update is not a fast forward")
        self.refs[branch] = body["sha"]
        return httpx.Response(200, json={"object": {"sha": body["sha"]}})

    def _descends_from(self, commit_sha: str, ancestor: str) -> bool:
        pending = [commit_sha]
        while pending:
            current = pending.pop()
            if current == ancestor:
                return True
            pending.extend(self.commits.get(current, {}).get("parents", []))
        return False

    def _get_commit(self, sha: str) -> httpx.Response:
        commit = self.commits.get(sha)
        if commit is None:
            return _error(404, "Not Found")
        return httpx.Response(
            200,
            json={
                "sha": sha,
                "message": commit["message"],
                "tree": {"sha": commit["tree"]},
                "parents": [{"sha": parent} for parent in commit["parents"]],
            },
        )

    def _create_commit(self, body: dict[str, Any]) -> httpx.Response:
        if body["tree"] not in self.trees:
            return _error(422, "Tree does not exist")
        if any(parent not in self.commits for parent in body["parents"]):
            return _error(422, "Parent does not exist")
        sha = self._store_commit(body["tree"], list(body["parents"]), body["message"])
        return httpx.Response(201, json={"sha": sha})

    def _get_tree(self, sha: str, recursive: bool) -> httpx.Response:
        entries = self.trees.get(sha)
        if entries is None:
            return _error(404, "Not Found")
        listing: list[dict[str, str]] = []
        directories: set[str] = set()
        for path in sorted(entries):
            parts = path.split("/")
            for depth in range(1, len(parts)):
                directories.add("/".join(parts[:depth]))
        for directory in sorted(directories):
            listing.append({"path": directory, "mode": "040000", "type": "tree", "sha": _object_sha("dir", directory)})
        for path in sorted(entries):
            listing.append({"path": path, **entries[path]})
        if not recursive:
            listing = [item for item in listing if "/" not in item["path"]]
        return httpx.Response(200, json={"sha": sha, "tree": listing, "truncated": self.truncate_trees})

    def _create_tree(self, body: dict[str, Any]) -> httpx.Response:
        base = body.get("base_tree")
        if base is not None and base not in self.trees:
            return _error(422, "Invalid base_tree")
        entries = dict(self.trees[base]) if base else {}
        for item in body["tree"]:
            if item["sha"] not in self.blobs:
                return _error(422, f"Invalid sha for {item['path']}")
            entries[item["path"]] = {"mode": item["mode"], "type": item["type"], "sha": item["sha"]}
        return httpx.Response(201, json={"sha": self._store_tree(entries)})

    def _store_tree(self, entries: dict[str, dict[str, str]]) -> str:
        sha = _object_sha("tree", entries)
        self.trees[sha] = entries
        return sha

    def _store_commit(self, tree_sha: str, parents: list[str], message: str) -> str:
        payload = {"tree": tree_sha, "parents": parents, "message": message, "n": len(self.commits)}
        sha = _object_sha("commit", payload)
        self.commits[sha] = {"tree": tree_sha, "parents": parents, "message": message}
        return sha


def _error(status: int, message: str) -> httpx.Response:
    return httpx.Response(status, json={"message": message})


@pytest.fixture()
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture()
def github_settings() -> GitHubSettings:
    return GitHubSettings(
        token="secret-token",
        owner=OWNER,
        repo=REPO,
        branch="main",
        public_base_path="src/site",
        content_path="notes",
        assets_path="img/user",
        api_url=API_URL,
    )


@pytest.fixture()
def vault_root(tmp_path: Path) -> Path:
    root = tmp_path / "vault"
    (root / "attachments").mkdir(parents=True)
    (root / "attachments" / "img.png").write_bytes(b"\x89PNG-img")
    (root / "attachments" / "shared.png").write_bytes(b"\x89PNG-shared")
    return root


@pytest.fixture()
def vault(vault_root: Path) -> FilesystemVault:
    return FilesystemVault(vault_root)


@pytest.fixture()
def make_publisher(fake_github: FakeGitHub, github_settings: GitHubSettings, vault: FilesystemVault):
    def _factory(settings: GitHubSettings | None = None, store=None) -> GitHubPublisher:
        resolved = settings or github_settings
        client = GitHubClient(resolved, transport=fake_github.transport())
        return GitHubPublisher(resolved, store or vault, client=client)

    return _factory


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in list(os.environ):
        if name.startswith("BLOGSYNC_") or name == "GITHUB_TOKEN":
            monkeypatch.delenv(name)
    return monkeypatch
