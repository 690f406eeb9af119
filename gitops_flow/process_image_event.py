#!/usr/bin/env -S uv run python
# /// script
# requires-python = ">=3.12"
# dependencies = ["cyclopts>=2.9", "httpx>=0.27", "pyyaml>=6.0"]
# ///
"""Roll a freshly pushed image version out to its manifest repositories.

This script loads the application catalog, rewrites every manifest of the
application that deploys the image, commits the changes through the GitHub
API, opens release pull requests and posts a summary to Slack.

Examples
--------
>>> python -m gitops_flow.process_image_event --image gcr.io/acme/api --version v1.2.3
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from cyclopts import App, Parameter

from gitops_flow._flow_config import load_flow_config
from gitops_flow._flow_errors import FlowConfigError, NotificationError
from gitops_flow._flow_process import process_event
from gitops_flow._github import GITHUB_API_URL, GitHubClient
from gitops_flow._input_resolution import InputResolution, resolve_input
from gitops_flow._notify import Notifier, PrintNotifier, SlackNotifier

# --version names the image tag here, not the tool version.
app = App(
    help="Roll an image version out to its manifest repositories.",
    version_flags=[],
)

IMAGE_PARAM = Parameter()
VERSION_PARAM = Parameter()
CONFIG_PARAM = Parameter()
GITHUB_TOKEN_PARAM = Parameter()
GITHUB_API_URL_PARAM = Parameter()
SLACK_TOKEN_PARAM = Parameter()
SLACK_CHANNEL_PARAM = Parameter()


@dataclass(frozen=True, slots=True)
class EventInputs:
    """Resolved inputs for one image event.

    Attributes
    ----------
    image, version : str
        The pushed image and its tag.
    config_path : Path
        Application catalog location.
    github_token, github_api_url : str
        GitHub credentials and API root.
    slack_token, slack_channel : str | None
        Slack delivery settings; summaries are printed when unset.
    """

    image: str
    version: str
    config_path: Path
    github_token: str
    github_api_url: str
    slack_token: str | None
    slack_channel: str | None


@dataclass(frozen=True, slots=True)
class RawEventInputs:
    """Raw event inputs from CLI or defaults."""

    image: str | None = None
    version: str | None = None
    config_path: Path | None = None
    github_token: str | None = None
    github_api_url: str | None = None
    slack_token: str | None = None
    slack_channel: str | None = None


def resolve_event_inputs(raw: RawEventInputs) -> EventInputs:
    """Resolve event inputs from CLI values, environment and defaults."""
    image = resolve_input(raw.image, InputResolution(env_key="FLOW_IMAGE", required=True))
    version = resolve_input(
        raw.version, InputResolution(env_key="FLOW_VERSION", required=True)
    )
    config_path = resolve_input(
        raw.config_path,
        InputResolution(env_key="FLOW_CONFIG", default=Path("flow.yaml"), as_path=True),
    )
    github_token = resolve_input(
        raw.github_token, InputResolution(env_key="FLOW_GITHUB_TOKEN", required=True)
    )
    github_api_url = resolve_input(
        raw.github_api_url,
        InputResolution(env_key="FLOW_GITHUB_API_URL", default=GITHUB_API_URL),
    )
    slack_token = resolve_input(
        raw.slack_token, InputResolution(env_key="FLOW_SLACK_BOT_TOKEN")
    )
    slack_channel = resolve_input(
        raw.slack_channel, InputResolution(env_key="FLOW_SLACK_CHANNEL")
    )
    return EventInputs(
        image=str(image),
        version=str(version),
        config_path=Path(config_path) if config_path else Path("flow.yaml"),
        github_token=str(github_token),
        github_api_url=str(github_api_url),
        slack_token=str(slack_token) if slack_token else None,
        slack_channel=str(slack_channel) if slack_channel else None,
    )


def build_notifier(inputs: EventInputs, default_channel: str) -> Notifier:
    """Return a Slack notifier when a token and channel are known."""
    channel = inputs.slack_channel or default_channel
    if inputs.slack_token and channel:
        return SlackNotifier(inputs.slack_token, channel)
    return PrintNotifier()


# CLI parameters are declared for cyclopts but resolved via resolve_event_inputs().
@app.default
def main(
    image: str | None = IMAGE_PARAM,
    version: str | None = VERSION_PARAM,
    config: Path | None = CONFIG_PARAM,
    github_token: str | None = GITHUB_TOKEN_PARAM,
    github_api_url: str | None = GITHUB_API_URL_PARAM,
    slack_token: str | None = SLACK_TOKEN_PARAM,
    slack_channel: str | None = SLACK_CHANNEL_PARAM,
) -> int:
    """Roll an image version out to its manifest repositories.

    Parameters
    ----------
    image, version : str | None
        The pushed image and tag.
    config : Path | None
        Application catalog override.
    github_token, github_api_url : str | None
        GitHub credential and API root overrides.
    slack_token, slack_channel : str | None
        Slack delivery overrides.

    Returns
    -------
    int
        Exit code (0 for success, 1 for configuration or delivery errors).
    """
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    try:
        inputs = resolve_event_inputs(
            RawEventInputs(
                image=image,
                version=version,
                config_path=config,
                github_token=github_token,
                github_api_url=github_api_url,
                slack_token=slack_token,
                slack_channel=slack_channel,
            )
        )
        flow_config = load_flow_config(inputs.config_path)
    except FlowConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(f"Processing {inputs.image}:{inputs.version}...")
    print(f"  Config: {inputs.config_path}")

    notifier = build_notifier(inputs, flow_config.slack_channel)
    try:
        with GitHubClient(inputs.github_token, inputs.github_api_url) as client:
            results = process_event(
                flow_config, client, notifier, inputs.image, inputs.version
            )
    except (FlowConfigError, NotificationError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    failed = [result for result in results if not result.ok]
    print(f"\nProcessed {len(results)} manifest(s), {len(failed)} failed.")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
