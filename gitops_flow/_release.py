"""Release descriptors and deterministic naming.

A release bundles everything needed to commit one manifest update: the target
repository and branches, the commit author and message, pull request labels,
and the rewrite changes to apply. Branch names and messages are pure
functions of the application, the manifest and the version, so retrying an
event lands on the same branch.

Examples
--------
>>> release = new_release(config, app, manifest, "v1.2.3")
>>> release.repo.commit_branch
'release/prod-api-v1.2.3'
"""

from __future__ import annotations

from dataclasses import dataclass, field

from gitops_flow._flow_config import (
    FALLBACK_BASE_BRANCH,
    Application,
    FlowConfig,
    GitAuthor,
    Manifest,
)
from gitops_flow._rewrite_rules import Change, RewriteRule

GITHUB_URL = "https://github.com"
RELEASE_PREFIX = "release"
ROLLOUT_PREFIX = "rollout"


@dataclass(frozen=True, slots=True)
class RepoTarget:
    """Manifest repository coordinates for one release."""

    owner: str
    name: str
    base_branch: str
    commit_branch: str


@dataclass(slots=True)
class Release:
    """Branch, commit and pull request metadata for one manifest update.

    Attributes
    ----------
    repo : RepoTarget
        Repository and branches the commit targets.
    author : GitAuthor
        Commit author identity.
    message : str
        Commit message, also used as the pull request title.
    version : str
        Image version being released.
    source_url : str
        ``https://github.com/<owner>/<name>`` of the application source.
    labels : tuple[str, ...]
        Pull request labels.
    open_pull_request : bool
        ``False`` when the commit goes straight to the base branch.
    hide_diff_links : bool
        Omit compare links from the body.
    extra_body : str
        Manifest-specific text appended to the body.
    changes : list[Change]
        Rewrite rules in registration order.
    previous_versions : set[str]
        Values replaced by the rules, filled in while committing.
    """

    repo: RepoTarget
    author: GitAuthor
    message: str
    version: str
    source_url: str
    labels: tuple[str, ...] = ()
    open_pull_request: bool = True
    hide_diff_links: bool = False
    extra_body: str = ""
    changes: list[Change] = field(default_factory=list)
    previous_versions: set[str] = field(default_factory=set)

    def add_change(self, file_path: str, rule: RewriteRule) -> None:
        """Register *rule* for *file_path* after the existing changes."""
        self.changes.append(Change(file_path=file_path, rule=rule))

    @property
    def body(self) -> str:
        """Render the pull request body.

        Examples
        --------
        >>> release.previous_versions = {"v1.2.2"}
        >>> print(release.body)
        https://github.com/acme/api/releases/tag/v1.2.3
        <BLANKLINE>
        ### Diff from last release
        https://github.com/acme/api/compare/v1.2.2...v1.2.3
        """
        sections = [f"{self.source_url}/releases/tag/{self.version}"]
        previous = sorted(v for v in self.previous_versions if v != self.version)
        if previous and not self.hide_diff_links:
            links = [
                f"{self.source_url}/compare/{old}...{self.version}" for old in previous
            ]
            sections.append("\n".join(["### Diff from last release", *links]))
        if self.extra_body:
            sections.append(self.extra_body)
        return "\n\n".join(sections)


def _release_kind(manifest: Manifest) -> str:
    return ROLLOUT_PREFIX if manifest.rollout else RELEASE_PREFIX


def branch_name(app: Application, manifest: Manifest, version: str) -> str:
    """Return the commit branch for a release.

    Examples
    --------
    >>> branch_name(app, Manifest(env="prod", show_source_name=True), "v1")
    'release/prod-api-v1'
    """
    branch = f"{_release_kind(manifest)}/{manifest.env}"
    if manifest.show_source_name:
        repo = app.source_name
        if manifest.show_source_owner:
            repo = f"{app.source_owner}-{repo}"
        branch += f"-{repo}"
    return f"{branch}-{version}"


def commit_message(app: Application, manifest: Manifest, version: str) -> str:
    """Return the commit message (and pull request title) for a release.

    Examples
    --------
    >>> commit_message(app, Manifest(env="prod", show_source_name=True), "v1")
    'Release prod api v1'
    """
    parts = [_release_kind(manifest).capitalize(), manifest.env]
    if manifest.show_source_name:
        repo = app.source_name
        if manifest.show_source_owner:
            repo = f"{app.source_owner}/{repo}"
        parts.append(repo)
    parts.append(version)
    return " ".join(parts)


def resolve_base_branch(config: FlowConfig, app: Application, manifest: Manifest) -> str:
    """Return the first configured base branch, most specific first."""
    return (
        manifest.base_branch
        or app.manifest_base_branch
        or config.default_base_branch
        or FALLBACK_BASE_BRANCH
    )


def release_labels(app: Application, manifest: Manifest) -> tuple[str, ...]:
    """Return ``[source name, env, *extra labels]``."""
    return (app.source_name, manifest.env, *manifest.labels)


def new_release(
    config: FlowConfig,
    app: Application,
    manifest: Manifest,
    version: str,
) -> Release:
    """Build the release descriptor for one manifest, without changes."""
    base_branch = resolve_base_branch(config, app, manifest)
    commit_branch = (
        base_branch
        if manifest.commit_without_pr
        else branch_name(app, manifest, version)
    )
    return Release(
        repo=RepoTarget(
            owner=app.manifest_owner,
            name=app.manifest_name,
            base_branch=base_branch,
            commit_branch=commit_branch,
        ),
        author=config.git_author,
        message=commit_message(app, manifest, version),
        version=version,
        source_url=f"{GITHUB_URL}/{app.source_owner}/{app.source_name}",
        labels=release_labels(app, manifest),
        open_pull_request=not manifest.commit_without_pr,
        hide_diff_links=manifest.hide_diff_links,
        extra_body=manifest.pr_body,
    )


__all__ = [
    "Release",
    "RepoTarget",
    "branch_name",
    "commit_message",
    "new_release",
    "release_labels",
    "resolve_base_branch",
]
