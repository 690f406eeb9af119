"""Format and deliver the per-event release summary."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

import httpx

from gitops_flow._flow_errors import NotificationError

if TYPE_CHECKING:
    from gitops_flow._flow_process import PullRequest

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class Notifier(Protocol):
    """Delivers one status message per event."""

    def notify(self, message: str) -> None: ...


def format_notification(
    app_name: str,
    image: str,
    version: str,
    results: Sequence[PullRequest],
) -> str:
    """Render one summary with a line pair per environment.

    Failures are listed alongside successes so partial outcomes stay visible.

    Examples
    --------
    >>> print(format_notification("api", "gcr.io/acme/api", "v1", []))
    Release api gcr.io/acme/api:v1
    No pull requests were opened.
    """
    lines = [f"Release {app_name} {image}:{version}"]
    if not results:
        lines.append("No pull requests were opened.")
    for result in results:
        detail = result.url if result.error is None else f"error: {result.error}"
        lines.append(f"`{result.env}`")
        lines.append(f"```{detail}```")
        lines.extend(f"warning: {warning}" for warning in result.warnings)
    return "\n".join(lines)


class SlackNotifier:
    """Post release summaries to a Slack channel with a bot token."""

    def __init__(
        self,
        token: str,
        channel: str,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.token = token
        self.channel = channel
        self._transport = transport

    def notify(self, message: str) -> None:
        try:
            with httpx.Client(transport=self._transport) as client:
                response = client.post(
                    SLACK_POST_MESSAGE_URL,
                    headers={"Authorization": f"Bearer {self.token}"},
                    json={"channel": self.channel, "text": message},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            msg = f"Slack notification failed: {exc}"
            raise NotificationError(msg) from exc
        except ValueError as exc:
            msg = f"Slack returned a non-JSON response: {exc}"
            raise NotificationError(msg) from exc
        if not isinstance(payload, dict):
            payload = {}
        if not payload.get("ok", False):
            msg = f"Slack notification rejected: {payload.get('error', 'unknown')}"
            raise NotificationError(msg)


class PrintNotifier:
    """Print release summaries, for runs without a chat integration."""

    def notify(self, message: str) -> None:
        print(message)


__all__ = [
    "NotificationError",
    "Notifier",
    "PrintNotifier",
    "SlackNotifier",
    "format_notification",
]
