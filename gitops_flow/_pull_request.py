"""Open release pull requests and attach their labels."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gitops_flow._flow_errors import GitHubAPIError, PullRequestError
from gitops_flow._github import GitHost
from gitops_flow._release import Release

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PublishedPullRequest:
    """An opened pull request plus non-fatal problems met on the way."""

    url: str
    number: int
    warnings: tuple[str, ...] = ()


def publish_pull_request(host: GitHost, release: Release) -> PublishedPullRequest:
    """Open a pull request from the commit branch to the base branch.

    A failure to add labels is logged and reported through ``warnings``;
    the pull request itself is still returned.

    Raises
    ------
    PullRequestError
        Raised when GitHub refuses to open the pull request.
    """
    repo = release.repo
    try:
        pr = host.create_pull_request(
            repo.owner,
            repo.name,
            title=release.message,
            head=repo.commit_branch,
            base=repo.base_branch,
            body=release.body,
        )
    except GitHubAPIError as exc:
        msg = (
            f"Failed to open pull request {repo.commit_branch} -> "
            f"{repo.base_branch} in {repo.owner}/{repo.name}: {exc}"
        )
        raise PullRequestError(msg) from exc

    warnings: list[str] = []
    if release.labels:
        try:
            host.add_labels(repo.owner, repo.name, pr.number, release.labels)
        except GitHubAPIError as exc:
            warning = f"Failed to add labels to {pr.html_url}: {exc}"
            logger.warning("%s", warning)
            warnings.append(warning)

    return PublishedPullRequest(
        url=pr.html_url, number=pr.number, warnings=tuple(warnings)
    )


__all__ = ["PublishedPullRequest", "publish_pull_request"]
