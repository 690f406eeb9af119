"""Narrow git hosting interface and its GitHub REST implementation.

The release flow only needs a handful of git data and pull request endpoints.
``GitHost`` names them so the committer and publisher can run against an
in-memory fake in tests, while ``GitHubClient`` talks to the GitHub REST API
over ``httpx``.

Examples
--------
>>> with GitHubClient(token="ghp_example") as client:
...     client.get_ref("acme", "infra", "main")
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, TypeVar
from urllib.parse import quote

import httpx

from gitops_flow._flow_config import GitAuthor
from gitops_flow._flow_errors import GitHubAPIError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
BLOB_MODE = "100644"


@dataclass(frozen=True, slots=True)
class GitRef:
    """A branch ref and the commit it points at."""

    ref: str
    sha: str


@dataclass(frozen=True, slots=True)
class GitCommit:
    """A commit object and its root tree."""

    sha: str
    tree_sha: str


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """A blob entry of a tree built from inline content."""

    path: str
    content: str
    mode: str = BLOB_MODE
    type: str = "blob"


@dataclass(frozen=True, slots=True)
class PullRequestInfo:
    """Number and web URL of an opened pull request."""

    number: int
    html_url: str


class GitHost(Protocol):
    """Git hosting operations used by the release flow."""

    def get_ref(self, owner: str, repo: str, branch: str) -> GitRef | None: ...

    def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> GitRef: ...

    def update_ref(self, owner: str, repo: str, branch: str, sha: str) -> GitRef: ...

    def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str: ...

    def get_commit(self, owner: str, repo: str, sha: str) -> GitCommit: ...

    def create_tree(
        self, owner: str, repo: str, base_tree: str, entries: Sequence[TreeEntry]
    ) -> str: ...

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
    ) -> GitCommit: ...

    def create_pull_request(
        self, owner: str, repo: str, *, title: str, head: str, base: str, body: str
    ) -> PullRequestInfo: ...

    def add_labels(
        self, owner: str, repo: str, number: int, labels: Sequence[str]
    ) -> None: ...


def _branch_path(branch: str) -> str:
    return quote(f"heads/{branch}", safe="/")


def _git_ref(data: Any) -> GitRef:
    return GitRef(ref=data["ref"], sha=data["object"]["sha"])


def _git_commit(data: Any) -> GitCommit:
    return GitCommit(sha=data["sha"], tree_sha=data["tree"]["sha"])


T = TypeVar("T")


def _parse(data: Any, build: Callable[[Any], T]) -> T:
    """Build a result from a response body, rejecting unexpected shapes."""
    try:
        return build(data)
    except (KeyError, TypeError) as exc:
        msg = f"Unexpected GitHub response body: missing or invalid {exc}"
        raise GitHubAPIError(msg) from exc


class GitHubClient:
    """GitHub REST client implementing :class:`GitHost`.

    Parameters
    ----------
    token
        Token sent as a bearer credential.
    base_url
        API root, overridable for GitHub Enterprise.
    transport
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_URL,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            transport=transport,
        )

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        logger.debug("GitHub %s %s", method, path)
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            try:
                detail = exc.response.json().get("message", exc.response.text)
            except ValueError:
                detail = exc.response.text
            msg = f"GitHub {method} {path} failed with {status}: {detail}"
            raise GitHubAPIError(msg, status_code=status) from exc
        except httpx.RequestError as exc:
            msg = f"GitHub {method} {path} failed: {exc}"
            raise GitHubAPIError(msg) from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            msg = f"GitHub {method} {path} returned a non-JSON body: {exc}"
            raise GitHubAPIError(msg, status_code=response.status_code) from exc

    def get_ref(self, owner: str, repo: str, branch: str) -> GitRef | None:
        try:
            data = self._request(
                "GET", f"/repos/{owner}/{repo}/git/ref/{_branch_path(branch)}"
            )
        except GitHubAPIError as exc:
            if exc.status_code == 404:
                return None
            raise
        return _parse(data, _git_ref)

    def create_ref(self, owner: str, repo: str, branch: str, sha: str) -> GitRef:
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        return _parse(data, _git_ref)

    def update_ref(self, owner: str, repo: str, branch: str, sha: str) -> GitRef:
        data = self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/{_branch_path(branch)}",
            json={"sha": sha, "force": False},
        )
        return _parse(data, _git_ref)

    def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        data = self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            params={"ref": ref},
        )
        if not isinstance(data, dict) or data.get("type") != "file":
            msg = f"{path} is not a file in {owner}/{repo}@{ref}"
            raise GitHubAPIError(msg)
        encoded = data.get("content", "")
        if data.get("encoding") != "base64":
            return encoded
        try:
            return base64.b64decode(encoded).decode("utf-8")
        except ValueError as exc:
            msg = f"{path} in {owner}/{repo}@{ref} is not UTF-8 text: {exc}"
            raise GitHubAPIError(msg) from exc

    def get_commit(self, owner: str, repo: str, sha: str) -> GitCommit:
        data = self._request("GET", f"/repos/{owner}/{repo}/git/commits/{sha}")
        return _parse(data, _git_commit)

    def create_tree(
        self, owner: str, repo: str, base_tree: str, entries: Sequence[TreeEntry]
    ) -> str:
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/trees",
            json={
                "base_tree": base_tree,
                "tree": [
                    {
                        "path": entry.path,
                        "mode": entry.mode,
                        "type": entry.type,
                        "content": entry.content,
                    }
                    for entry in entries
                ],
            },
        )
        return _parse(data, lambda payload: str(payload["sha"]))

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
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={
                "message": message,
                "tree": tree_sha,
                "parents": list(parents),
                "author": {
                    "name": author.name,
                    "email": author.email,
                    "date": date.isoformat(),
                },
            },
        )
        return _parse(data, _git_commit)

    def create_pull_request(
        self, owner: str, repo: str, *, title: str, head: str, base: str, body: str
    ) -> PullRequestInfo:
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json={
                "title": title,
                "head": head,
                "base": base,
                "body": body,
                "maintainer_can_modify": True,
            },
        )
        return _parse(
            data,
            lambda payload: PullRequestInfo(
                number=payload["number"], html_url=payload["html_url"]
            ),
        )

    def add_labels(
        self, owner: str, repo: str, number: int, labels: Sequence[str]
    ) -> None:
        self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues/{number}/labels",
            json={"labels": list(labels)},
        )


__all__ = [
    "GitCommit",
    "GitHost",
    "GitHubClient",
    "GitRef",
    "PullRequestInfo",
    "TreeEntry",
]
