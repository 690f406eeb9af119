"""Decide whether a manifest reacts to an image version."""

from __future__ import annotations

from gitops_flow._flow_config import Manifest

IGNORED_VERSIONS = frozenset({"", "latest"})


def should_process(manifest: Manifest, version: str) -> bool:
    """Return whether *version* should be rolled out to *manifest*.

    Exclusions win over inclusions, and an empty include list accepts any
    version that is not excluded.

    Examples
    --------
    >>> from gitops_flow._flow_config import Filters
    >>> m = Manifest(env="prod", filters=Filters(include_prefixes=("v",)))
    >>> should_process(m, "v1.2.3"), should_process(m, "latest")
    (True, False)
    """
    if version in IGNORED_VERSIONS:
        return False

    filters = manifest.filters
    if any(version.startswith(prefix) for prefix in filters.exclude_prefixes):
        return False

    if not filters.include_prefixes:
        return True

    return any(version.startswith(prefix) for prefix in filters.include_prefixes)
