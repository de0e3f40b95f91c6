"""Publish notes to a GitHub repository as single commits through the Git Data API."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import httpx

from blogsync.config import GitHubSettings
from blogsync.errors import GitHubAPIError
from blogsync.models.document import Attachment, Document
from blogsync.models.git import BranchHead, TreeEntry
from blogsync.models.publisher import RemotePublishResult
from blogsync.services.github_api import GitHubClient
from blogsync.services.vault import DocumentStore
from blogsync.utils.paths import asset_path, assets_base, note_path
from blogsync.utils.text import extract_image_references, rewrite_image_links

LOGGER = logging.getLogger(__name__)

_PROTOCOL_ERRORS = (GitHubAPIError, httpx.HTTPError)


class GitHubPublisher:
    """Publish and unpublish batches of notes, one commit per batch.

    A publish builds a tree on top of the branch's current tree so untouched
    files carry forward, commits it and moves the branch in a single final
    step. Nothing becomes visible in the repository unless every protocol
    step succeeded.
    """

    def __init__(
        self,
        settings: GitHubSettings,
        store: DocumentStore,
        *,
        client: GitHubClient | None = None,
    ) -> None:
        settings.validate()
        self.settings = settings
        self.store = store
        self.client = client or GitHubClient(settings)

    def publish(self, documents: Sequence[Document]) -> RemotePublishResult:
        """Upload ``documents`` and their images and commit them on the branch."""

        if not documents:
            return RemotePublishResult(success=False, message="No notes to publish")

        LOGGER.info("Publishing %d note(s) to %s/%s", len(documents), self.settings.owner, self.settings.repo)
        try:
            head = self._read_head()
        except _PROTOCOL_ERRORS as exc:
            LOGGER.error("Could not read branch %s: %s", self.settings.branch, exc)
            return RemotePublishResult(success=False, message=f"Failed to read branch: {exc}")

        if head is None:
            LOGGER.info("Repository has no branch %s yet, creating initial commit", self.settings.branch)

        try:
            note_entries = [self._upload_note(document) for document in documents]
        except (*_PROTOCOL_ERRORS, OSError, UnicodeError) as exc:
            LOGGER.error("Note upload failed: %s", exc)
            return RemotePublishResult(success=False, message=f"Failed to upload notes: {exc}")

        skipped: list[str] = []
        image_entries: dict[str, TreeEntry] = {}
        for document in documents:
            for entry in self._upload_images(document, skipped):
                image_entries[entry.path] = entry

        LOGGER.info("Created %d note blobs and %d image blobs", len(note_entries), len(image_entries))

        notes, images = len(note_entries), len(image_entries)
        if head is None:
            message = f"Initial commit: {notes} notes and {images} images"
        else:
            message = f"Published {notes} notes and {images} images"

        try:
            tree_sha = self.client.create_tree(
                [*note_entries, *image_entries.values()],
                base_tree=head.tree_sha if head else None,
            )
            parents = [head.commit_sha] if head else []
            commit_sha = self.client.create_commit(message, tree_sha, parents)
            self._move_branch(commit_sha, bootstrap=head is None)
        except _PROTOCOL_ERRORS as exc:
            LOGGER.error("Publish failed, branch %s left unchanged: %s", self.settings.branch, exc)
            return RemotePublishResult(success=False, message=f"Failed to publish: {exc}", skipped_images=skipped)

        LOGGER.info("Branch %s now at %s", self.settings.branch, commit_sha)
        return RemotePublishResult(
            success=True,
            message=f"Published {notes} notes and {images} images",
            commit_sha=commit_sha,
            tree_sha=tree_sha,
            notes=notes,
            images=images,
            bootstrap=head is None,
            skipped_images=skipped,
        )

    def unpublish(self, paths: Sequence[str]) -> RemotePublishResult:
        """Commit a snapshot of the branch without the notes stored at ``paths``."""

        if not paths:
            return RemotePublishResult(success=False, message="No notes to unpublish")

        targets = {note_path(self.settings, path) for path in paths}
        for store_path in paths:
            LOGGER.debug("Will delete: %s -> %s", store_path, note_path(self.settings, store_path))

        try:
            head = self.client.get_branch_head(self.settings.branch)
            listing = self.client.get_tree(head.tree_sha, recursive=True)
            if listing.truncated:
                return RemotePublishResult(
                    success=False,
                    message="Repository tree is too large to list completely; nothing was deleted",
                )

            remaining = [entry for entry in listing.entries if entry.type == "blob" and entry.path not in targets]
            removed = sum(1 for entry in listing.entries if entry.type == "blob" and entry.path in targets)
            tree_sha = self.client.create_tree(remaining)
            commit_sha = self.client.create_commit(f"Unpublish {len(paths)} note(s)", tree_sha, [head.commit_sha])
            self._move_branch(commit_sha, bootstrap=False)
        except _PROTOCOL_ERRORS as exc:
            LOGGER.error("Unpublish failed, branch %s left unchanged: %s", self.settings.branch, exc)
            return RemotePublishResult(success=False, message=f"Failed to unpublish: {exc}")

        if removed < len(targets):
            LOGGER.warning("%d of %d note(s) were not present in the repository", len(targets) - removed, len(targets))
        return RemotePublishResult(
            success=True,
            message=f"Unpublished {len(paths)} notes",
            commit_sha=commit_sha,
            tree_sha=tree_sha,
            notes=removed,
        )

    def test_connection(self) -> bool:
        try:
            self.client.get_repository()
        except _PROTOCOL_ERRORS as exc:
            LOGGER.warning("GitHub connection failed: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _read_head(self) -> BranchHead | None:
        """Return the branch head, or ``None`` when the branch does not exist yet."""

        try:
            return self.client.get_branch_head(self.settings.branch)
        except GitHubAPIError as exc:
            # GitHub answers 409 "Git Repository is empty" for repositories without commits.
            if exc.is_not_found or exc.status == 409:
                return None
            raise

    def _resolver(self, document: Document):
        return lambda reference: self.store.resolve_reference(reference, document.path)

    def _upload_note(self, document: Document) -> TreeEntry:
        text = rewrite_image_links(document.text, assets_base(self.settings), self._resolver(document))
        sha = self.client.create_blob(text.encode("utf-8"))
        entry = TreeEntry(path=note_path(self.settings, document.path), sha=sha)
        LOGGER.debug("Note blob created: %s", entry.path)
        return entry

    def _upload_images(self, document: Document, skipped: list[str]) -> list[TreeEntry]:
        references = sorted(extract_image_references(document.text))
        if references:
            LOGGER.debug("Found %d images in %s", len(references), document.basename)

        entries: list[TreeEntry] = []
        for reference in references:
            try:
                resolved = self.store.resolve_reference(reference, document.path)
                if resolved is None:
                    LOGGER.warning("Image not found: %s (in %s)", reference, document.path)
                    skipped.append(reference)
                    continue
                attachment = Attachment(path=resolved, data=self.store.read_binary(resolved))
                sha = self.client.create_blob(attachment.data)
            except (*_PROTOCOL_ERRORS, OSError, ValueError) as exc:
                LOGGER.warning("Error processing image %s in %s: %s", reference, document.path, exc)
                skipped.append(reference)
                continue
            entries.append(TreeEntry(path=asset_path(self.settings, attachment.path), sha=sha))
        return entries

    def _move_branch(self, commit_sha: str, *, bootstrap: bool) -> None:
        branch = self.settings.branch
        force = self.settings.ref_update_mode == "force"
        if not bootstrap:
            self.client.update_ref(branch, commit_sha, force=force)
            return
        try:
            self.client.create_ref(branch, commit_sha)
        except GitHubAPIError as exc:
            if not exc.is_unprocessable:
                raise
            LOGGER.info("Branch %s already exists, updating it instead", branch)
            self.client.update_ref(branch, commit_sha, force=force)


__all__ = ["GitHubPublisher"]
