"""Orchestration layer fanning publish requests out to the configured targets."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import Protocol

import httpx

from blogsync.config import Settings
from blogsync.models.document import Document, DocumentRef, ref_path
from blogsync.models.publisher import (
    ConnectionReport,
    MirrorDeletion,
    MirrorItem,
    MirrorResult,
    PublishResult,
    RemotePublishResult,
    TargetResult,
)
from blogsync.services.github_api import GitHubClient
from blogsync.services.github_publisher import GitHubPublisher
from blogsync.services.ledger import PublicationLedger, now_ms
from blogsync.services.local_mirror import LocalMirrorPublisher
from blogsync.services.vault import DocumentStore
from blogsync.services.webhook import WebhookClient
from blogsync.utils.text import extract_image_references


logger = logging.getLogger(__name__)
status_logger = logging.getLogger("blogsync.status")

Notifier = Callable[[str], None]

BUSY_MESSAGE = "Another publish is already in progress"


class SupportsRemotePublishing(Protocol):
    """Subset of :class:`GitHubPublisher` relied on by the coordinator."""

    def publish(self, documents: Sequence[Document]) -> RemotePublishResult:
        """Publish notes and their images as one commit."""

    def unpublish(self, paths: Sequence[str]) -> RemotePublishResult:
        """Remove notes from the repository as one commit."""

    def test_connection(self) -> bool:
        """Return ``True`` when the repository is reachable."""


class SupportsMirroring(Protocol):
    """Subset of :class:`LocalMirrorPublisher` relied on by the coordinator."""

    def ensure_targets_exist(self) -> bool:
        """Validate the mirror root and create target directories."""

    def publish_many(self, items: Sequence[MirrorItem]) -> MirrorResult:
        """Copy files into the mirror."""

    def delete_many(self, items: Sequence[MirrorDeletion]) -> MirrorResult:
        """Delete files from the mirror."""


class SupportsNotification(Protocol):
    """Protocol describing the restart webhook."""

    def trigger_restart(self) -> bool:
        """Ask the mirror's server to restart."""

    def test_connection(self) -> bool:
        """Return ``True`` when the webhook endpoint answers."""


def _log_status(message: str) -> None:
    status_logger.info(message)


class PublishCoordinator:
    """Publish to GitHub first, then the local mirror, then fire the webhook.

    Each target is attempted independently. The overall result succeeds when
    at least one target succeeded and no errors were collected. The ledger is
    only written after a successful batch.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        github: SupportsRemotePublishing | None = None,
        mirror: SupportsMirroring | None = None,
        webhook: SupportsNotification | None = None,
        ledger: PublicationLedger | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.github = github
        self.mirror = mirror
        self.webhook = webhook
        self.ledger = ledger
        self._notify = notifier or _log_status
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: DocumentStore,
        *,
        ledger: PublicationLedger | None = None,
        notifier: Notifier | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> "PublishCoordinator":
        """Build the coordinator with every target the settings enable.

        With ``publish_target: github`` the GitHub settings must be complete:
        :class:`~blogsync.errors.ConfigurationError` names the missing ones
        before any network or filesystem access. With ``both`` an unconfigured
        GitHub target is skipped so a mirror-only setup keeps working.
        """

        github = None
        if settings.publish_target == "github":
            settings.github.validate()
        if settings.github_enabled:
            client = GitHubClient(settings.github, transport=transport)
            github = GitHubPublisher(settings.github, store, client=client)

        mirror = LocalMirrorPublisher.from_settings(settings.local_mirror) if settings.local_mirror_enabled else None

        webhook = None
        if settings.webhook.configured:
            webhook_client = httpx.Client(timeout=settings.webhook.timeout, transport=transport)
            webhook = WebhookClient.from_settings(settings.webhook, client=webhook_client)

        return cls(store, github=github, mirror=mirror, webhook=webhook, ledger=ledger, notifier=notifier)

    @property
    def has_targets(self) -> bool:
        return self.github is not None or self.mirror is not None

    def publish(self, documents: Sequence[Document]) -> PublishResult:
        """Publish ``documents`` to every configured target."""

        if not self._lock.acquire(blocking=False):
            return PublishResult(errors=[BUSY_MESSAGE])
        try:
            return self._run("publish", list(documents))
        finally:
            self._lock.release()

    def unpublish(self, refs: Sequence[DocumentRef | str]) -> PublishResult:
        """Remove the notes named by ``refs`` (live notes, ghost paths or plain paths)."""

        if not self._lock.acquire(blocking=False):
            return PublishResult(errors=[BUSY_MESSAGE])
        try:
            paths = list(dict.fromkeys(ref_path(ref) for ref in refs))
            return self._run("unpublish", paths)
        finally:
            self._lock.release()

    def test_connections(self) -> ConnectionReport:
        report = ConnectionReport()
        if self.github is not None:
            report.github = self.github.test_connection()
            self._notify("GitHub connection successful" if report.github else "GitHub connection failed")
        if self.mirror is not None:
            report.local_mirror = self.mirror.ensure_targets_exist()
            self._notify("Local mirror path verified" if report.local_mirror else "Local mirror path is not reachable")
        if self.webhook is not None:
            report.webhook = self.webhook.test_connection()
            self._notify("Webhook connection successful" if report.webhook else "Webhook connection failed")
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _run(self, action: str, items: list) -> PublishResult:
        result = PublishResult()
        if not items:
            result.errors.append(f"Nothing to {action}")
            return result
        if not self.has_targets:
            result.errors.append("No publish target is configured")
            self._notify("Publisher not configured. Please check settings.")
            return result

        self._notify(f"{action.capitalize()}ing {len(items)} note(s)...")
        logger.info("Starting %s of %d note(s)", action, len(items), extra={"event": f"{action}.start"})

        try:
            if self.github is not None:
                self._notify(f"{action.capitalize()}ing on GitHub...")
                self._github_leg(action, items, result)
            if self.mirror is not None:
                self._notify("Updating local mirror...")
                self._mirror_leg(action, items, result)
            mirrored = result.local_mirror is not None and result.local_mirror.success
            # The restart webhook follows publish batches only.
            if action == "publish" and self.webhook is not None and mirrored:
                result.webhook = self.webhook.trigger_restart()
                if not result.webhook:
                    result.warnings.append("Restart webhook failed")
                self._notify("Server restarted" if result.webhook else "Restart webhook failed")
        except Exception as exc:  # pragma: no cover - defensive fallback
            logger.exception("Unexpected %s failure", action, extra={"event": f"{action}.crash"})
            result.errors.append(f"{action.capitalize()} failed: {exc}")

        if result.succeeded:
            self._update_ledger(action, items, result)
            self._notify(f"{action.capitalize()}ed {len(items)} note(s)")
            logger.info("Finished %s of %d note(s)", action, len(items), extra={"event": f"{action}.success"})
        elif any(leg is not None and leg.success for leg in (result.github, result.local_mirror)):
            self._notify(f"{action.capitalize()} finished with errors: {'; '.join(result.errors)}")
            logger.warning("Partial %s failure: %s", action, result.errors, extra={"event": f"{action}.partial"})
        else:
            self._notify(f"{action.capitalize()} failed: {'; '.join(result.errors)}")
            logger.error("%s failed: %s", action.capitalize(), result.errors, extra={"event": f"{action}.failed"})
        return result

    def _github_leg(self, action: str, items: list, result: PublishResult) -> None:
        assert self.github is not None
        try:
            if action == "publish":
                outcome = self.github.publish(items)
            else:
                outcome = self.github.unpublish(items)
        except Exception as exc:  # pragma: no cover - defensive fallback
            logger.exception("GitHub %s raised", action)
            outcome = RemotePublishResult(success=False, message=str(exc))

        result.github = TargetResult(
            success=outcome.success,
            files=outcome.notes + outcome.images,
            commit_sha=outcome.commit_sha,
        )
        if outcome.success:
            self._notify(f"GitHub: {outcome.message}")
            if outcome.skipped_images:
                result.warnings.append(f"Skipped images: {', '.join(sorted(set(outcome.skipped_images)))}")
        else:
            result.errors.append(f"GitHub: {outcome.message}")

    def _mirror_leg(self, action: str, items: list, result: PublishResult) -> None:
        assert self.mirror is not None
        try:
            if action == "publish":
                outcome = self.mirror.publish_many(self._mirror_items(items))
            else:
                outcome = self.mirror.delete_many([MirrorDeletion(target=path) for path in items])
        except Exception as exc:  # pragma: no cover - defensive fallback
            logger.exception("Local mirror %s raised", action)
            outcome = MirrorResult(error=str(exc))

        result.local_mirror = TargetResult(success=outcome.success, files=outcome.succeeded_count)
        if outcome.error:
            result.errors.append(f"Local mirror: {outcome.error}")
        elif outcome.failed_targets:
            result.errors.append(f"Local mirror: failed for {', '.join(outcome.failed_targets)}")
        else:
            self._notify(f"Local mirror: {outcome.succeeded_count} file(s) updated")

    def _mirror_items(self, documents: Sequence[Document]) -> list[MirrorItem]:
        items: dict[tuple[bool, str], MirrorItem] = {}
        for document in documents:
            items[(False, document.path)] = MirrorItem(source=self.store.locate(document.path), target=document.path)
            for reference in sorted(extract_image_references(document.text)):
                resolved = self.store.resolve_reference(reference, document.path)
                if resolved is None:
                    logger.warning("Image not found for mirror: %s (in %s)", reference, document.path)
                    continue
                items[(True, resolved)] = MirrorItem(source=self.store.locate(resolved), target=resolved, is_asset=True)
        return list(items.values())

    def _update_ledger(self, action: str, items: list, result: PublishResult) -> None:
        if self.ledger is None:
            return
        if action == "publish":
            timestamp = now_ms()
            for document in items:
                self.ledger.record(document, timestamp=timestamp)
        else:
            for path in items:
                self.ledger.remove(path)
        if self.ledger.path is None:
            return
        try:
            self.ledger.save()
        except OSError as exc:
            logger.error("Could not save ledger: %s", exc)
            result.warnings.append(f"Ledger not saved: {exc}")


__all__ = ["BUSY_MESSAGE", "PublishCoordinator"]
