"""Notifier Resource - Terminal run notifications over a webhook."""

from datetime import datetime, timezone

import requests
from dagster import ConfigurableResource
from pydantic import Field
from requests.exceptions import RequestException

from libs.orchestration import DeliveryError, NotificationOutcome

__all__ = ["WebhookNotifierResource"]


class WebhookNotifierResource(ConfigurableResource):
    """
    Posts one JSON message per terminal run to a webhook.

    Payload: {"run_id", "outcome", "summary", "sent_at"}. Any transport
    error or non-2xx response raises DeliveryError, which the state machine
    logs without affecting the run.
    """

    webhook_url: str = Field(..., description="Webhook receiving run notifications")
    timeout: float = Field(10.0, description="HTTP timeout in seconds")

    def notify(self, run_id: str, outcome: NotificationOutcome, summary: str) -> None:
        payload = {
            "run_id": run_id,
            "outcome": outcome.value,
            "summary": summary,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except RequestException as exc:
            raise DeliveryError(f"Webhook unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise DeliveryError(
                f"Webhook returned {response.status_code}: {response.text[:200]}"
            )
