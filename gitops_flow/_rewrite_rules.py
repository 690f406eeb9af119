"""Regex rewrite rules applied to manifest file contents.

A rule pairs a pattern carrying one named capture group (``old``) with a
renderer that turns the captured value into its replacement. Only the span of
the capture group is replaced, so keys, indentation and quotes around a value
survive the rewrite. Rules for one file run in registration order, each on the
output of the previous one.

Examples
--------
>>> rule = key_rule("version", "1.1")
>>> rule.apply("version: 1.0\\n")
('version: 1.1\\n', ['1.0'])
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from gitops_flow._flow_config import Application
from gitops_flow._flow_errors import GitHubAPIError

logger = logging.getLogger(__name__)

OLD_GROUP = "old"
TAG_VALUE = r"[^\s\"'#,\]}]+"
NO_REWRITE_MARKER = r"#\s*(?:do-not-rewrite|no-rewrite)\b"
KUSTOMIZATION_FILE = "kustomization.yaml"


@dataclass(frozen=True, slots=True)
class RewriteRule:
    """A pattern plus a renderer for the value it captures."""

    name: str
    pattern: str
    render: Callable[[str], str]
    group: str = OLD_GROUP
    flags: int = re.MULTILINE

    def apply(self, content: str) -> tuple[str, list[str]]:
        """Rewrite every match in *content*.

        Returns
        -------
        tuple[str, list[str]]
            The rewritten content and the captured old values, in match order.

        Raises
        ------
        re.error
            Raised when the pattern does not compile.
        IndexError
            Raised when the pattern lacks the capture group.
        """
        compiled = re.compile(self.pattern, self.flags)
        captured: list[str] = []

        def _replace(match: re.Match[str]) -> str:
            old = match.group(self.group)
            whole = match.group(0)
            if old is None:
                return whole
            captured.append(old)
            start, end = match.span(self.group)
            offset = match.start()
            return whole[: start - offset] + self.render(old) + whole[end - offset :]

        return compiled.sub(_replace, content), captured


@dataclass(frozen=True, slots=True)
class Change:
    """One rewrite rule targeting one file."""

    file_path: str
    rule: RewriteRule


def _constant(value: str) -> Callable[[str], str]:
    return lambda _old: value


def image_tag_rule(image: str, version: str) -> RewriteRule:
    """Rewrite ``<image>:<tag>`` references to the new version."""
    pattern = rf"(?<![\w./-]){re.escape(image)}:(?P<{OLD_GROUP}>{TAG_VALUE})"
    return RewriteRule(name=f"image {image}", pattern=pattern, render=_constant(version))


def key_rule(key: str, version: str, *, honour_marker: bool = False) -> RewriteRule:
    """Rewrite the value of a ``<key>: <value>`` pair.

    With *honour_marker*, lines carrying a ``# do-not-rewrite`` or
    ``# no-rewrite`` comment are left alone.
    """
    pattern = (
        rf"(?<![\w.-]){re.escape(key)}:[ \t]*[\"']?(?P<{OLD_GROUP}>{TAG_VALUE})"
    )
    if honour_marker:
        pattern = rf"^(?![^\n]*{NO_REWRITE_MARKER})[^\n]*?" + pattern
    return RewriteRule(name=f"key {key}", pattern=pattern, render=_constant(version))


def version_key_rule(version: str) -> RewriteRule:
    """Rewrite ``version:`` keys unless the line opts out."""
    return key_rule("version", version, honour_marker=True)


def prefix_rule(prefix: str, version: str) -> RewriteRule:
    """Rewrite the value following a literal prefix such as ``app.kubernetes.io/version=``."""
    pattern = rf"{re.escape(prefix)}(?P<{OLD_GROUP}>{TAG_VALUE})"
    return RewriteRule(
        name=f"prefix {prefix}", pattern=pattern, render=_constant(version)
    )


def rules_for_file(app: Application, file_path: str, version: str) -> list[RewriteRule]:
    """Return the ordered rules applied to *file_path* for *version*.

    Examples
    --------
    >>> app = Application("api", "gcr.io/acme/api", "acme", "api", "acme", "infra")
    >>> [rule.name for rule in rules_for_file(app, "deploy.yaml", "v2")]
    ['image gcr.io/acme/api']
    """
    rules = [image_tag_rule(app.image, version)]
    if app.rewrite_version:
        rules.append(version_key_rule(version))
    rules.extend(key_rule(key, version) for key in app.additional_rewrite_keys)
    rules.extend(prefix_rule(prefix, version) for prefix in app.additional_rewrite_prefixes)
    if app.rewrite_new_tag and file_path.endswith(KUSTOMIZATION_FILE):
        rules.append(key_rule("newTag", version))
    return rules


@dataclass(frozen=True, slots=True)
class RewriteResult:
    """Rewritten files plus every distinct value the rules replaced."""

    files: dict[str, str]
    replaced_values: frozenset[str]


@dataclass(slots=True)
class ManifestRewriter:
    """Apply changes for one manifest, fetching each file at most once.

    Attributes
    ----------
    fetch : Callable[[str], str]
        Returns the canonical content of a path on the base branch.
    """

    fetch: Callable[[str], str]
    _contents: dict[str, str] = field(default_factory=dict)
    _missing: set[str] = field(default_factory=set)
    _matched: set[str] = field(default_factory=set)
    _replaced: set[str] = field(default_factory=set)

    def _load(self, path: str) -> str | None:
        if path in self._contents:
            return self._contents[path]
        if path in self._missing:
            return None
        try:
            content = self.fetch(path)
        except GitHubAPIError as exc:
            if exc.status_code != 404:
                raise
            logger.warning("Skipping %s: not found on base branch", path)
            self._missing.add(path)
            return None
        self._contents[path] = content
        return content

    def apply(self, change: Change) -> None:
        """Apply one change to the cached content of its file."""
        content = self._load(change.file_path)
        if content is None:
            return
        try:
            updated, old_values = change.rule.apply(content)
        except (re.error, IndexError) as exc:
            logger.warning(
                "Rewrite rule %r failed for %s: %s",
                change.rule.name,
                change.file_path,
                exc,
            )
            return
        if not old_values:
            return
        self._contents[change.file_path] = updated
        self._matched.add(change.file_path)
        self._replaced.update(old_values)

    def result(self) -> RewriteResult:
        """Return files touched by at least one rule, in first-fetch order."""
        files = {
            path: content
            for path, content in self._contents.items()
            if path in self._matched
        }
        return RewriteResult(files=files, replaced_values=frozenset(self._replaced))


def rewrite_files(changes: Iterable[Change], fetch: Callable[[str], str]) -> RewriteResult:
    """Apply *changes* in order and return the rewritten files."""
    rewriter = ManifestRewriter(fetch)
    for change in changes:
        rewriter.apply(change)
    return rewriter.result()


__all__ = [
    "Change",
    "ManifestRewriter",
    "RewriteResult",
    "RewriteRule",
    "image_tag_rule",
    "key_rule",
    "prefix_rule",
    "rewrite_files",
    "rules_for_file",
    "version_key_rule",
]
