"""Publish notes from a vault to the configured GitHub repository and local mirror.

Commands:
- ``status``: list notes as unpublished, changed, published or deleted.
- ``publish [PATH ...]``: publish the given notes, or with ``--changed`` every
  unpublished or changed note.
- ``unpublish PATH ...``: remove notes from every target; ``--deleted`` picks
  every note that is recorded as published but no longer exists.
- ``test``: check GitHub, the mirror root and the webhook.

Settings come from ``blogsync.yaml`` (or ``--config`` / BLOGSYNC_CONFIG) with
BLOGSYNC_* environment overrides; see :mod:`blogsync.config`.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from blogsync.config import Settings, load_settings
from blogsync.errors import ConfigurationError
from blogsync.models.ledger import PublishStatus
from blogsync.services.coordinator import PublishCoordinator
from blogsync.services.ledger import PublicationLedger, classify
from blogsync.services.vault import FilesystemVault

LOGGER = logging.getLogger("blogsync.cli")

_STATUS_ORDER = (PublishStatus.UNPUBLISHED, PublishStatus.CHANGED, PublishStatus.DELETED, PublishStatus.PUBLISHED)


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.getenv("BLOGSYNC_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="blogsync", description="Publish vault notes to GitHub and a local mirror.")
    parser.add_argument("--config", type=Path, default=None, help="Path to the YAML settings file.")
    parser.add_argument("--vault", type=Path, default=None, help="Override the vault directory.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging.")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show the publication status of every note.")

    publish = commands.add_parser("publish", help="Publish notes.")
    publish.add_argument("paths", nargs="*", help="Vault-relative note paths.")
    publish.add_argument("--changed", action="store_true", help="Publish every unpublished or changed note.")

    unpublish = commands.add_parser("unpublish", help="Remove published notes.")
    unpublish.add_argument("paths", nargs="*", help="Vault-relative note paths.")
    unpublish.add_argument("--deleted", action="store_true", help="Unpublish notes deleted from the vault.")

    commands.add_parser("test", help="Test connections to every configured target.")
    return parser.parse_args(argv)


def _format_timestamp(value: int | None) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _print_status(vault: FilesystemVault, ledger: PublicationLedger) -> int:
    statuses = classify(vault.list_all(), ledger)
    for status in _STATUS_ORDER:
        group = [item for item in statuses if item.status is status]
        if not group:
            continue
        print(f"{status.value} ({len(group)})")
        for item in group:
            print(f"  {item.path}  [{_format_timestamp(item.last_published)}]")
    if not statuses:
        print("No notes found.")
    return 0


def _select_publish(args: argparse.Namespace, vault: FilesystemVault, ledger: PublicationLedger):
    documents = vault.list_all()
    if args.changed:
        wanted = {PublishStatus.UNPUBLISHED, PublishStatus.CHANGED}
        paths = {item.path for item in classify(documents, ledger) if item.status in wanted}
        return [document for document in documents if document.path in paths]

    by_path = {document.path: document for document in documents}
    selected = []
    for raw in args.paths:
        path = Path(raw).as_posix()
        document = by_path.get(path)
        if document is None:
            raise SystemExit(f"Note not found in vault: {raw}")
        selected.append(document)
    return selected


def _select_unpublish(args: argparse.Namespace, vault: FilesystemVault, ledger: PublicationLedger) -> list[str]:
    paths = [Path(raw).as_posix() for raw in args.paths]
    if args.deleted:
        paths.extend(item.path for item in classify(vault.list_all(), ledger) if item.status is PublishStatus.DELETED)
    return list(dict.fromkeys(paths))


def _build(settings: Settings) -> tuple[FilesystemVault, PublicationLedger, PublishCoordinator]:
    vault = FilesystemVault(settings.vault_path, folder=settings.blog_folder_path)
    ledger_path = settings.resolve_ledger_path()
    try:
        ledger = PublicationLedger.load(ledger_path)
    except ValueError as exc:
        raise SystemExit(f"Could not read ledger {ledger_path}: {exc}") from exc
    coordinator = PublishCoordinator.from_settings(settings, vault, ledger=ledger)
    return vault, ledger, coordinator


def run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.verbose)

    try:
        settings = load_settings(args.config)
        if args.vault is not None:
            settings.vault_path = args.vault
        vault, ledger, coordinator = _build(settings)
    except ConfigurationError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 1

    if args.command == "status":
        return _print_status(vault, ledger)

    if args.command == "test":
        report = coordinator.test_connections()
        checks = {"github": report.github, "local_mirror": report.local_mirror, "webhook": report.webhook}
        for name, outcome in checks.items():
            label = "not configured" if outcome is None else ("ok" if outcome else "FAILED")
            print(f"{name}: {label}")
        return 0 if all(outcome is not False for outcome in checks.values()) else 1

    if args.command == "publish":
        documents = _select_publish(args, vault, ledger)
        if not documents:
            LOGGER.warning("No notes selected for publishing.")
            return 0
        result = coordinator.publish(documents)
    else:
        paths = _select_unpublish(args, vault, ledger)
        if not paths:
            LOGGER.warning("No notes selected for unpublishing.")
            return 0
        result = coordinator.unpublish(paths)

    for warning in result.warnings:
        LOGGER.warning(warning)
    for error in result.errors:
        LOGGER.error(error)
    return 0 if result.succeeded else 1


def main() -> None:  # pragma: no cover - console script entry point
    sys.exit(run())


if __name__ == "__main__":  # pragma: no cover - script entry point
    raise SystemExit(run())
