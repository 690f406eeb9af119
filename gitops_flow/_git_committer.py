"""Commit rewritten manifests by composing git objects through the API.

A release commit is built without a working copy:

1. resolve the commit branch, creating it from the base branch when absent;
2. fetch every targeted file from the base branch and apply the rewrite rules;
3. create a sparse tree holding only the changed blobs on top of the branch
   head's tree;
4. create a commit whose sole parent is the branch head;
5. fast-forward the branch ref to the new commit.

The whole sequence is retried a fixed number of times with a fixed delay, so
a ref that moved between steps 1 and 5 only costs another attempt. Files are
always rewritten from the base branch, which keeps retries from compounding
edits already pushed to the commit branch.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from gitops_flow._flow_errors import CommitError, GitHubAPIError, NoChangesError
from gitops_flow._github import GitHost, GitRef, TreeEntry
from gitops_flow._release import Release, RepoTarget
from gitops_flow._rewrite_rules import rewrite_files

logger = logging.getLogger(__name__)

COMMIT_ATTEMPTS = 3
COMMIT_RETRY_DELAY_SECONDS = 3.0


class CommitState(Enum):
    """Steps of a single commit attempt."""

    REF_RESOLVING = "ref_resolving"
    CONTENT_FETCHING = "content_fetching"
    TREE_BUILDING = "tree_building"
    COMMIT_CREATING = "commit_creating"
    REF_UPDATING = "ref_updating"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class CommitResult:
    """Outcome of a successful release commit.

    Attributes
    ----------
    sha : str
        SHA of the new commit.
    branch : str
        Branch now pointing at ``sha``.
    files : tuple[str, ...]
        Paths included in the commit tree.
    attempts : int
        Attempts used, including the successful one.
    states : list[CommitState]
        States visited by the successful attempt.
    """

    sha: str
    branch: str
    files: tuple[str, ...]
    attempts: int = 1
    states: list[CommitState] = field(default_factory=list)


def resolve_commit_ref(host: GitHost, repo: RepoTarget) -> GitRef:
    """Return the commit branch ref, branching from the base branch if needed.

    An existing branch is reused as-is so a retried event keeps adding to the
    branch, and pull request, it opened before.
    """
    ref = host.get_ref(repo.owner, repo.name, repo.commit_branch)
    if ref is not None:
        return ref

    base_ref = host.get_ref(repo.owner, repo.name, repo.base_branch)
    if base_ref is None:
        msg = f"Base branch {repo.base_branch!r} not found in {repo.owner}/{repo.name}"
        raise GitHubAPIError(msg, status_code=404)
    logger.info(
        "Creating branch %s from %s@%s",
        repo.commit_branch,
        repo.base_branch,
        base_ref.sha,
    )
    return host.create_ref(repo.owner, repo.name, repo.commit_branch, base_ref.sha)


def _commit_once(
    host: GitHost,
    release: Release,
    states: list[CommitState],
    now: Callable[[], datetime],
) -> CommitResult:
    repo = release.repo

    states.append(CommitState.REF_RESOLVING)
    ref = resolve_commit_ref(host, repo)

    states.append(CommitState.CONTENT_FETCHING)
    rewritten = rewrite_files(
        release.changes,
        lambda path: host.get_file_content(repo.owner, repo.name, path, repo.base_branch),
    )
    if not rewritten.files:
        msg = (
            f"No manifest file in {repo.owner}/{repo.name}@{repo.base_branch} "
            f"matched a rewrite rule for {release.version}"
        )
        raise NoChangesError(msg)
    release.previous_versions.update(rewritten.replaced_values)

    states.append(CommitState.TREE_BUILDING)
    parent = host.get_commit(repo.owner, repo.name, ref.sha)
    entries = [
        TreeEntry(path=path, content=content)
        for path, content in rewritten.files.items()
    ]
    tree_sha = host.create_tree(repo.owner, repo.name, parent.tree_sha, entries)

    states.append(CommitState.COMMIT_CREATING)
    commit = host.create_commit(
        repo.owner,
        repo.name,
        message=release.message,
        tree_sha=tree_sha,
        parents=[parent.sha],
        author=release.author,
        date=now(),
    )

    states.append(CommitState.REF_UPDATING)
    host.update_ref(repo.owner, repo.name, repo.commit_branch, commit.sha)

    states.append(CommitState.DONE)
    return CommitResult(
        sha=commit.sha,
        branch=repo.commit_branch,
        files=tuple(rewritten.files),
        states=states,
    )


def commit_release(
    host: GitHost,
    release: Release,
    *,
    attempts: int = COMMIT_ATTEMPTS,
    delay: float = COMMIT_RETRY_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    now: Callable[[], datetime] = lambda: datetime.now(UTC),
) -> CommitResult:
    """Commit the release's rewritten files to its commit branch.

    Parameters
    ----------
    host : GitHost
        Git hosting client.
    release : Release
        Release whose changes are applied; ``previous_versions`` is updated
        with the values the rules replaced.
    attempts : int, optional
        Total attempts before giving up.
    delay : float, optional
        Seconds slept between attempts.
    sleep, now : Callable, optional
        Clock hooks, replaceable in tests.

    Returns
    -------
    CommitResult
        The new commit and the files it changed.

    Raises
    ------
    NoChangesError
        Raised without retrying when no file matched a rewrite rule.
    CommitError
        Raised with the last API error once every attempt failed.
    """
    repo = release.repo
    last_error: GitHubAPIError | None = None
    for attempt in range(1, attempts + 1):
        states: list[CommitState] = []
        try:
            result = _commit_once(host, release, states, now)
        except GitHubAPIError as exc:
            states.append(CommitState.FAILED)
            last_error = exc
            logger.warning(
                "Commit attempt %d/%d to %s/%s@%s failed: %s",
                attempt,
                attempts,
                repo.owner,
                repo.name,
                repo.commit_branch,
                exc,
            )
        else:
            result.attempts = attempt
            logger.info(
                "Committed %s to %s/%s@%s (%s)",
                ", ".join(result.files),
                repo.owner,
                repo.name,
                result.branch,
                result.sha,
            )
            return result
        if attempt < attempts:
            sleep(delay)

    msg = (
        f"Failed to commit to {repo.owner}/{repo.name}@{repo.commit_branch} "
        f"after {attempts} attempts: {last_error}"
    )
    raise CommitError(msg) from last_error


__all__ = [
    "COMMIT_ATTEMPTS",
    "COMMIT_RETRY_DELAY_SECONDS",
    "CommitResult",
    "CommitState",
    "commit_release",
    "resolve_commit_ref",
]
