from __future__ import annotations

import itertools
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

import pytest

from gitops_flow._flow_config import (
    Application,
    FlowConfig,
    GitAuthor,
    Manifest,
)
from gitops_flow._flow_errors import GitHubAPIError
from gitops_flow._github import GitCommit, GitRef, PullRequestInfo, TreeEntry


@dataclass
class FakeGitHost:
    """In-memory git host keyed by ``(owner, repo, ...)`` tuples."""

    refs: dict[tuple[str, str, str], str] = field(default_factory=dict)
    files: dict[tuple[str, str, str, str], str] = field(default_factory=dict)
    commits: dict[str, GitCommit] = field(default_factory=dict)
    trees: dict[str, tuple[str, list[TreeEntry]]] = field(default_factory=dict)
    commit_log: list[dict[str, object]] = field(default_factory=list)
    pull_requests: list[dict[str, object]] = field(default_factory=list)
    labels: dict[int, list[str]] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    fail_always: dict[str, GitHubAPIError] = field(default_factory=dict)
    fail_once: dict[str, list[GitHubAPIError]] = field(default_factory=dict)
    before: dict[str, list[Callable[[], None]]] = field(default_factory=dict)
    parents: dict[str, list[str]] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        hooks = self.before.get(name)
        if hooks:
            hooks.pop(0)()
        if name in self.fail_always:
            raise self.fail_always[name]
        pending = self.fail_once.get(name)
        if pending:
            raise pending.pop(0)

    def seed_branch(
        self, owner: str, repo: str, branch: str, files: dict[str, str]
    ) -> str:
        """Create *branch* pointing at a commit holding *files*."""
        number = next(self._ids)
        sha = f"base{number}"
        self.commits[sha] = GitCommit(sha=sha, tree_sha=f"basetree{number}")
        self.refs[(owner, repo, branch)] = sha
        for path, content in files.items():
            self.files[(owner, repo, branch, path)] = content
        return sha

    def get_ref(self, owner: str, repo: str, branch: str) -> GitRef | None:
        self._enter("get_ref")
        sha = self.refs.get((owner, repo, branch))
        if sha is None:
            return None
        return GitRef(ref=f"refs/heads/{branch}", sha=sha)

    def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> GitRef:
        self._enter("create_ref")
        if (owner, repo, branch) in self.refs:
            raise GitHubAPIError("Reference already exists", status_code=422)
        self.refs[(owner, repo, branch)] = sha
        return GitRef(ref=f"refs/heads/{branch}", sha=sha)

    def update_ref(self, owner: str, repo: str, branch: str, sha: str) -> GitRef:
        self._enter("update_ref")
        head = self.refs.get((owner, repo, branch))
        if head is None:
            raise GitHubAPIError("Reference does not exist", status_code=422)
        if head != sha and head not in self.parents.get(sha, []):
            raise GitHubAPIError("Update is not a fast forward", status_code=422)
        self.refs[(owner, repo, branch)] = sha
        return GitRef(ref=f"refs/heads/{branch}", sha=sha)

    def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        self._enter("get_file_content")
        try:
            return self.files[(owner, repo, ref, path)]
        except KeyError:
            raise GitHubAPIError("Not Found", status_code=404) from None

    def get_commit(self, owner: str, repo: str, sha: str) -> GitCommit:
        self._enter("get_commit")
        try:
            return self.commits[sha]
        except KeyError:
            raise GitHubAPIError("Not Found", status_code=404) from None

    def create_tree(
        self, owner: str, repo: str, base_tree: str, entries: Sequence[TreeEntry]
    ) -> str:
        self._enter("create_tree")
        sha = f"tree{next(self._ids)}"
        self.trees[sha] = (base_tree, list(entries))
        return sha

    def create_commit(
        self,
        owner: str,
        repo: str,
        *,
        message: str,
        tree_sha: str,
        parents: Sequence[str],
        author: GitAuthor,
        date: datetime,
    ) -> GitCommit:
        self._enter("create_commit")
        sha = f"commit{next(self._ids)}"
        commit = GitCommit(sha=sha, tree_sha=tree_sha)
        self.commits[sha] = commit
        self.parents[sha] = list(parents)
        self.commit_log.append(
            {
                "repo": f"{owner}/{repo}",
                "sha": sha,
                "message": message,
                "tree": tree_sha,
                "parents": list(parents),
                "author": author,
            }
        )
        return commit

    def create_pull_request(
        self, owner: str, repo: str, *, title: str, head: str, base: str, body: str
    ) -> PullRequestInfo:
        self._enter("create_pull_request")
        number = len(self.pull_requests) + 1
        url = f"https://github.com/{owner}/{repo}/pull/{number}"
        self.pull_requests.append(
            {"title": title, "head": head, "base": base, "body": body, "url": url}
        )
        return PullRequestInfo(number=number, html_url=url)

    def add_labels(
        self, owner: str, repo: str, number: int, labels: Sequence[str]
    ) -> None:
        self._enter("add_labels")
        self.labels.setdefault(number, []).extend(labels)


@pytest.fixture
def fake_host() -> FakeGitHost:
    return FakeGitHost()


@pytest.fixture
def application() -> Application:
    return Application(
        name="app",
        image="registry/app",
        source_owner="acme",
        source_name="app",
        manifest_owner="acme",
        manifest_name="manifests",
        manifests=(
            Manifest(env="prod", files=("deploy.yaml",), show_source_name=True),
        ),
    )


@pytest.fixture
def flow_config(application: Application) -> FlowConfig:
    return FlowConfig(
        applications=(application,),
        git_author=GitAuthor(name="flow-bot", email="flow-bot@example.com"),
        default_base_branch="main",
    )
