"""Tests for loading and validating the application catalog."""

from __future__ import annotations

from pathlib import Path

import pytest

from gitops_flow._flow_config import (
    Filters,
    GitAuthor,
    load_flow_config,
    parse_flow_config,
)
from gitops_flow._flow_errors import ApplicationNotFoundError, FlowConfigError

CATALOG = """\
default_base_branch: main
slack_channel: "#releases"
git_author:
  name: release-bot
  email: release-bot@example.com
applications:
  - name: api
    image: gcr.io/acme/api
    source_owner: acme
    source_name: api
    manifest_owner: acme
    manifest_name: infra
    rewrite_version: true
    additional_rewrite_keys: [apiTag]
    manifests:
      - env: prod
        files: [apps/api/prod.yaml]
        show_source_name: true
        labels: [deploy]
        filters:
          exclude_prefixes: [dev-]
      - env: staging
        files: [apps/api/staging.yaml]
        base_branch: staging
        commit_without_pr: true
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "flow.yaml"
    path.write_text(content, encoding="utf-8")
    return path


def test_load_flow_config_parses_catalog(tmp_path: Path) -> None:
    config = load_flow_config(_write(tmp_path, CATALOG))

    assert config.default_base_branch == "main", "Default base branch mismatch"
    assert config.slack_channel == "#releases", "Slack channel mismatch"
    assert config.git_author == GitAuthor("release-bot", "release-bot@example.com"), (
        "Author mismatch"
    )
    app = config.find_application("gcr.io/acme/api")
    assert app.rewrite_version, "Version rewriting should be enabled"
    assert app.additional_rewrite_keys == ("apiTag",), "Extra keys mismatch"
    prod, staging = app.manifests
    assert prod.filters == Filters(exclude_prefixes=("dev-",)), "Filters mismatch"
    assert prod.labels == ("deploy",), "Labels mismatch"
    assert staging.commit_without_pr, "Staging should commit directly"
    assert staging.base_branch == "staging", "Manifest base branch mismatch"


def test_empty_document_yields_defaults(tmp_path: Path) -> None:
    config = load_flow_config(_write(tmp_path, ""))
    assert config.applications == (), "No applications expected"
    assert config.git_author == GitAuthor(), "Default author expected"


def test_find_application_unknown_image() -> None:
    with pytest.raises(ApplicationNotFoundError, match="gcr.io/acme/other"):
        parse_flow_config({}).find_application("gcr.io/acme/other")


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FlowConfigError, match="Failed to read config file"):
        load_flow_config(tmp_path / "missing.yaml")


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    with pytest.raises(FlowConfigError, match="Failed to parse config file"):
        load_flow_config(_write(tmp_path, "applications: [\n"))


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        (["not", "a", "mapping"], "Config root must be a mapping"),
        ({"applications": {"api": {}}}, "'applications' must be a list"),
        ({"applications": [{"name": "api"}]}, "'image' is required"),
        (
            {
                "applications": [
                    {
                        "name": "api",
                        "image": "i",
                        "source_owner": "o",
                        "source_name": "n",
                        "manifest_owner": "o",
                        "manifest_name": "m",
                        "rewrite_version": "yes",
                    }
                ]
            },
            "'rewrite_version' must be bool",
        ),
        (
            {
                "applications": [
                    {
                        "name": "api",
                        "image": "i",
                        "source_owner": "o",
                        "source_name": "n",
                        "manifest_owner": "o",
                        "manifest_name": "m",
                        "manifests": [{"env": "prod", "files": "a.yaml"}],
                    }
                ]
            },
            "'files' must be list\\[str\\]",
        ),
    ],
)
def test_parse_flow_config_rejects_invalid_payloads(payload: object, message: str) -> None:
    with pytest.raises(FlowConfigError, match=message):
        parse_flow_config(payload)
