"""Fan one image event out to every manifest of its application.

Manifests are processed one after another: each rewrite, commit and pull
request sequence finishes before the next manifest starts, and a failure only
skips the manifest it happened in. The per-manifest outcomes are collected in
manifest order and handed to the notifier as a single summary.

Examples
--------
>>> notifier = PrintNotifier()
>>> results = process_event(config, client, notifier, "gcr.io/acme/api", "v1.2.3")
>>> [(r.env, r.url) for r in results]
[('prod', 'https://github.com/acme/infra/pull/7')]
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeAlias

from gitops_flow._flow_config import Application, FlowConfig, Manifest
from gitops_flow._flow_errors import CommitError, PullRequestError
from gitops_flow._git_committer import (
    COMMIT_ATTEMPTS,
    COMMIT_RETRY_DELAY_SECONDS,
    commit_release,
)
from gitops_flow._github import GitHost
from gitops_flow._manifest_filter import should_process
from gitops_flow._notify import Notifier, format_notification
from gitops_flow._pull_request import publish_pull_request
from gitops_flow._release import Release, new_release
from gitops_flow._rewrite_rules import rules_for_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PullRequest:
    """Outcome for one manifest: a pull request URL or the error met."""

    env: str
    url: str | None = None
    error: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


PullRequests: TypeAlias = list[PullRequest]


def build_release(
    config: FlowConfig, app: Application, manifest: Manifest, version: str
) -> Release:
    """Build the release for one manifest with its rewrite changes registered."""
    release = new_release(config, app, manifest, version)
    for file_path in manifest.files:
        for rule in rules_for_file(app, file_path, version):
            release.add_change(file_path, rule)
    return release


def process_application(
    config: FlowConfig,
    host: GitHost,
    app: Application,
    version: str,
    *,
    cancel: threading.Event | None = None,
    commit_attempts: int = COMMIT_ATTEMPTS,
    commit_delay: float = COMMIT_RETRY_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> PullRequests:
    """Rewrite, commit and publish every eligible manifest of *app*.

    Manifests committed straight to their base branch add no entry. Setting
    *cancel* stops before the next manifest; work already pushed stays.
    """
    results: PullRequests = []
    for manifest in app.manifests:
        if cancel is not None and cancel.is_set():
            logger.info("Cancelled before manifest %s of %s", manifest.env, app.name)
            break
        if not should_process(manifest, version):
            logger.info("Skipping %s for %s %s", manifest.env, app.name, version)
            continue

        release = build_release(config, app, manifest, version)
        try:
            commit_release(
                host,
                release,
                attempts=commit_attempts,
                delay=commit_delay,
                sleep=sleep,
            )
        except CommitError as exc:
            logger.error("Error committing %s for %s: %s", manifest.env, app.name, exc)
            results.append(PullRequest(env=manifest.env, error=str(exc)))
            continue

        if not release.open_pull_request:
            continue

        try:
            published = publish_pull_request(host, release)
        except PullRequestError as exc:
            logger.error("Error submitting PR for %s: %s", manifest.env, exc)
            results.append(PullRequest(env=manifest.env, error=str(exc)))
            continue

        results.append(
            PullRequest(
                env=manifest.env, url=published.url, warnings=published.warnings
            )
        )
    return results


def process_event(
    config: FlowConfig,
    host: GitHost,
    notifier: Notifier,
    image: str,
    version: str,
    *,
    cancel: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> PullRequests:
    """Handle one ``(image, version)`` event end to end.

    Raises
    ------
    ApplicationNotFoundError
        Raised before any manifest is touched when *image* is unknown.
    """
    app = config.find_application(image)
    results = process_application(
        config, host, app, version, cancel=cancel, sleep=sleep
    )
    notifier.notify(format_notification(app.name, image, version, results))
    return results


__all__ = [
    "PullRequest",
    "PullRequests",
    "build_release",
    "process_application",
    "process_event",
]
