"""Application catalog for the image release flow.

The catalog maps container images to the manifest repositories that deploy
them. It is loaded once from YAML into frozen dataclasses and passed
explicitly to the resolver and the release builders, so concurrent events can
share it without locking.

Examples
--------
>>> config = load_flow_config(Path("flow.yaml"))
>>> config.find_application("gcr.io/acme/api").name
'api'
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from gitops_flow._flow_errors import ApplicationNotFoundError, FlowConfigError

FALLBACK_BASE_BRANCH = "master"


@dataclass(frozen=True, slots=True)
class Filters:
    """Version prefixes gating whether a manifest reacts to an event."""

    include_prefixes: tuple[str, ...] = ()
    exclude_prefixes: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Manifest:
    """One deployment target of an application.

    Attributes
    ----------
    env : str
        Environment name, used in branch names, messages and labels.
    files : tuple[str, ...]
        Repository paths rewritten for this target.
    filters : Filters
        Include/exclude version prefixes.
    base_branch : str
        Branch override for this manifest; empty to inherit.
    commit_without_pr : bool
        Commit straight to the base branch instead of opening a pull request.
    show_source_owner, show_source_name : bool
        Include the source repository in branch names and messages.
    hide_diff_links : bool
        Suppress the compare-link section of the pull request body.
    rollout : bool
        Use the ``rollout/`` branch prefix and ``Rollout`` commit verb.
    labels : tuple[str, ...]
        Extra pull request labels.
    pr_body : str
        Free text appended to the pull request body.
    """

    env: str
    files: tuple[str, ...] = ()
    filters: Filters = field(default_factory=Filters)
    base_branch: str = ""
    commit_without_pr: bool = False
    show_source_owner: bool = False
    show_source_name: bool = False
    hide_diff_links: bool = False
    rollout: bool = False
    labels: tuple[str, ...] = ()
    pr_body: str = ""


@dataclass(frozen=True, slots=True)
class Application:
    """A deployable unit identified by its container image."""

    name: str
    image: str
    source_owner: str
    source_name: str
    manifest_owner: str
    manifest_name: str
    manifest_base_branch: str = ""
    rewrite_version: bool = False
    rewrite_new_tag: bool = False
    additional_rewrite_keys: tuple[str, ...] = ()
    additional_rewrite_prefixes: tuple[str, ...] = ()
    manifests: tuple[Manifest, ...] = ()


@dataclass(frozen=True, slots=True)
class GitAuthor:
    """Identity recorded on release commits."""

    name: str = "gitops-flow"
    email: str = "gitops-flow@users.noreply.github.com"


@dataclass(frozen=True, slots=True)
class FlowConfig:
    """Process-wide, read-only configuration."""

    applications: tuple[Application, ...] = ()
    git_author: GitAuthor = field(default_factory=GitAuthor)
    default_base_branch: str = ""
    slack_channel: str = ""

    def find_application(self, image: str) -> Application:
        """Return the application deploying *image*.

        Raises
        ------
        ApplicationNotFoundError
            Raised when no application is configured for *image*.
        """
        for app in self.applications:
            if app.image == image:
                return app
        msg = f"No application found for image {image}"
        raise ApplicationNotFoundError(msg)


def _str_field(payload: Mapping[str, Any], key: str, *, required: bool = False) -> str:
    value = payload.get(key)
    if value is None:
        if required:
            msg = f"Config field {key!r} is required"
            raise FlowConfigError(msg)
        return ""
    if not isinstance(value, str):
        msg = f"Config field {key!r} must be str"
        raise FlowConfigError(msg)
    return value


def _bool_field(payload: Mapping[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if not isinstance(value, bool):
        msg = f"Config field {key!r} must be bool"
        raise FlowConfigError(msg)
    return value


def _str_tuple_field(payload: Mapping[str, Any], key: str) -> tuple[str, ...]:
    """Validate and return a list[str] field as a tuple.

    Examples
    --------
    >>> _str_tuple_field({"files": ["a.yaml"]}, "files")
    ('a.yaml',)
    >>> _str_tuple_field({}, "files")
    ()
    """
    value = payload.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        msg = f"Config field {key!r} must be list[str]"
        raise FlowConfigError(msg)
    return tuple(value)


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        msg = f"{what} must be a mapping"
        raise FlowConfigError(msg)
    return value


def _parse_manifest(payload: Mapping[str, Any]) -> Manifest:
    filters = _mapping(payload.get("filters") or {}, "Manifest filters")
    return Manifest(
        env=_str_field(payload, "env", required=True),
        files=_str_tuple_field(payload, "files"),
        filters=Filters(
            include_prefixes=_str_tuple_field(filters, "include_prefixes"),
            exclude_prefixes=_str_tuple_field(filters, "exclude_prefixes"),
        ),
        base_branch=_str_field(payload, "base_branch"),
        commit_without_pr=_bool_field(payload, "commit_without_pr"),
        show_source_owner=_bool_field(payload, "show_source_owner"),
        show_source_name=_bool_field(payload, "show_source_name"),
        hide_diff_links=_bool_field(payload, "hide_diff_links"),
        rollout=_bool_field(payload, "rollout"),
        labels=_str_tuple_field(payload, "labels"),
        pr_body=_str_field(payload, "pr_body"),
    )


def _parse_application(payload: Mapping[str, Any]) -> Application:
    manifests = payload.get("manifests") or []
    if not isinstance(manifests, list):
        msg = "Config field 'manifests' must be a list"
        raise FlowConfigError(msg)
    return Application(
        name=_str_field(payload, "name", required=True),
        image=_str_field(payload, "image", required=True),
        source_owner=_str_field(payload, "source_owner", required=True),
        source_name=_str_field(payload, "source_name", required=True),
        manifest_owner=_str_field(payload, "manifest_owner", required=True),
        manifest_name=_str_field(payload, "manifest_name", required=True),
        manifest_base_branch=_str_field(payload, "manifest_base_branch"),
        rewrite_version=_bool_field(payload, "rewrite_version"),
        rewrite_new_tag=_bool_field(payload, "rewrite_new_tag"),
        additional_rewrite_keys=_str_tuple_field(payload, "additional_rewrite_keys"),
        additional_rewrite_prefixes=_str_tuple_field(
            payload, "additional_rewrite_prefixes"
        ),
        manifests=tuple(
            _parse_manifest(_mapping(item, "Manifest entry")) for item in manifests
        ),
    )


def parse_flow_config(payload: Any) -> FlowConfig:
    """Build a :class:`FlowConfig` from a decoded YAML document.

    Examples
    --------
    >>> parse_flow_config({"default_base_branch": "main"}).default_base_branch
    'main'
    """
    if payload is None:
        payload = {}
    root = _mapping(payload, "Config root")
    applications = root.get("applications") or []
    if not isinstance(applications, list):
        msg = "Config field 'applications' must be a list"
        raise FlowConfigError(msg)

    author = _mapping(root.get("git_author") or {}, "Config field 'git_author'")
    default_author = GitAuthor()
    return FlowConfig(
        applications=tuple(
            _parse_application(_mapping(item, "Application entry"))
            for item in applications
        ),
        git_author=GitAuthor(
            name=_str_field(author, "name") or default_author.name,
            email=_str_field(author, "email") or default_author.email,
        ),
        default_base_branch=_str_field(root, "default_base_branch"),
        slack_channel=_str_field(root, "slack_channel"),
    )


def load_flow_config(path: Path) -> FlowConfig:
    """Load the application catalog from a YAML file."""
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Failed to read config file {path}: {exc}"
        raise FlowConfigError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"Failed to parse config file {path}: {exc}"
        raise FlowConfigError(msg) from exc
    return parse_flow_config(payload)


__all__ = [
    "FALLBACK_BASE_BRANCH",
    "Application",
    "Filters",
    "FlowConfig",
    "GitAuthor",
    "Manifest",
    "load_flow_config",
    "parse_flow_config",
]
