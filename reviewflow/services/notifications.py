"""Notification dispatch for committed review transitions.

Handles:
- Rendering a human-readable message per event type
- Logging every event
- Optional webhook delivery with retries

Delivery happens after the transaction commits; a failed delivery is logged
and never undoes the review action.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

import httpx
from jinja2 import Template

from reviewflow.core.config import Settings, get_settings
from reviewflow.db.base import utcnow

logger = logging.getLogger(__name__)


# Message templates, keyed by event type
MESSAGE_TEMPLATES = {
    "workflow_created": (
        "{{ deliverable_title }} v{{ version_number }} was submitted for review by {{ actor_name }}."
        "{% if step_name %} First step: {{ step_name }}.{% endif %}"
    ),
    "step_approved": (
        "{{ actor_name }} approved step \"{{ step_name }}\" of {{ deliverable_title }} v{{ version_number }}."
        "{% if status == 'approved' %} The deliverable is fully approved.{% endif %}"
    ),
    "step_rejected": (
        "{{ actor_name }} rejected step \"{{ step_name }}\" of {{ deliverable_title }} v{{ version_number }}."
        "{% if comments %} Reason: {{ comments }}{% endif %}"
    ),
    "revision_requested": (
        "{{ actor_name }} requested a revision of {{ deliverable_title }} v{{ version_number }} "
        "at step \"{{ step_name }}\".{% if comments %} Notes: {{ comments }}{% endif %}"
    ),
    "signature_added": (
        "{{ actor_name }} signed step \"{{ step_name }}\" of {{ deliverable_title }} v{{ version_number }}."
    ),
    "version_resubmitted": (
        "{{ actor_name }} resubmitted {{ deliverable_title }} as v{{ version_number }}."
    ),
}

DEFAULT_TEMPLATE = "{{ event_type }} on {{ deliverable_title }} v{{ version_number }} by {{ actor_name }}."


@dataclass
class ReviewEvent:
    """A committed review transition, as seen by notification consumers."""
    event_type: str
    deliverable_id: str
    workflow_id: str
    status: str
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    step_id: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None
    occurred_at: str = field(default_factory=lambda: utcnow().isoformat())


class NotificationDispatcher:
    """
    Renders and delivers review events.

    Without a configured webhook URL, events are only logged.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_delay: float = 0.5,
    ):
        self.settings = settings or get_settings()
        self.transport = transport
        self.retry_delay = retry_delay

    def render(self, event: ReviewEvent) -> str:
        source = MESSAGE_TEMPLATES.get(event.event_type, DEFAULT_TEMPLATE)
        context = dict(event.context)
        context.setdefault("deliverable_title", event.deliverable_id)
        context.setdefault("version_number", "?")
        context.update(
            event_type=event.event_type,
            status=event.status,
            actor_name=event.actor_name or event.actor_id or "someone",
        )
        return Template(source).render(**context).strip()

    def build_payload(self, event: ReviewEvent) -> Dict[str, Any]:
        payload = asdict(event)
        payload["review_url"] = f"{self.settings.review_url_base}/{event.deliverable_id}"
        return payload

    async def dispatch(self, event: ReviewEvent) -> bool:
        """
        Deliver one event.

        Returns:
            True if the event was delivered (or only needed logging)
        """
        if event.message is None:
            event.message = self.render(event)

        logger.info("Review event %s on workflow %s: %s", event.event_type, event.workflow_id, event.message)

        if not self.settings.webhook_url:
            return True
        return await self._deliver_webhook(self.build_payload(event))

    async def _deliver_webhook(self, payload: Dict[str, Any]) -> bool:
        attempts = max(1, self.settings.webhook_max_retries)
        for attempt in range(1, attempts + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self.settings.webhook_timeout,
                    transport=self.transport,
                ) as client:
                    response = await client.post(self.settings.webhook_url, json=payload)
                    response.raise_for_status()
                return True
            except httpx.HTTPError as e:
                logger.warning(
                    "Webhook delivery attempt %d/%d for %s failed: %s",
                    attempt, attempts, payload["event_type"], e,
                )
                if attempt < attempts:
                    await asyncio.sleep(self.retry_delay * attempt)

        logger.error("Giving up on webhook delivery for %s on workflow %s", payload["event_type"], payload["workflow_id"])
        return False
