"""Web push delivery to a user's registered devices via pywebpush."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional

import requests
from flask import current_app
from pywebpush import WebPushException, webpush

from extensions import db
from models import PushSubscription, to_utc

GONE_STATUS_CODES = {404, 410}


class WebPushSender:
    """Sends one payload to every active subscription of a user."""

    def __init__(
        self,
        vapid_private_key: Optional[str],
        vapid_claim_email: str,
        timeout: float = 5.0,
        ttl_seconds: int = 60 * 60 * 12,
    ) -> None:
        self.vapid_private_key = vapid_private_key
        self.vapid_claim_email = vapid_claim_email
        self.timeout = timeout
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.vapid_private_key)

    def send(self, user_id: int, payload: dict) -> int:
        """Returns how many devices accepted the push."""
        if not self.enabled:
            return 0

        subscriptions = PushSubscription.query.filter_by(user_id=user_id, is_active=True).all()
        if not subscriptions:
            current_app.logger.info("No active push subscriptions for user %s", user_id)
            return 0

        body = json.dumps(payload)
        delivered = 0
        now = to_utc(datetime.now(timezone.utc))
        for subscription in subscriptions:
            try:
                webpush(
                    subscription_info=subscription.to_subscription_info(),
                    data=body,
                    vapid_private_key=self.vapid_private_key,
                    # pywebpush mutates the claims dict, so hand it a fresh one.
                    vapid_claims={"sub": f"mailto:{self.vapid_claim_email}"},
                    timeout=self.timeout,
                    ttl=self.ttl_seconds,
                )
            except WebPushException as exc:
                status = getattr(getattr(exc, "response", None), "status_code", None)
                if status in GONE_STATUS_CODES:
                    subscription.is_active = False
                    current_app.logger.info(
                        "Deactivated stale push subscription %s for user %s", subscription.id, user_id
                    )
                else:
                    current_app.logger.warning("Web push to user %s failed: %s", user_id, exc)
                continue
            except requests.exceptions.RequestException as exc:
                current_app.logger.warning("Web push to user %s timed out or errored: %s", user_id, exc)
                continue
            subscription.last_used_at = now
            delivered += 1

        db.session.commit()
        return delivered
