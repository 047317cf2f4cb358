"""Push gateway client for pet health alerts.

Uses raw HTTP POST via requests against an FCM-style gateway that accepts
a list of device tokens and a notification payload.
"""
import os
import logging

import requests

from utils.http_client import HTTPClient, APIError
from utils.token_bucket import TokenBucket

logger = logging.getLogger("petalerts.notifications.push")


class PushSender:
    """Thin wrapper around the push gateway API."""

    def __init__(self, config: dict, client=None):
        push_config = config.get("push", {})
        self.gateway_url = push_config.get("gateway_url", "")
        self.server_key = os.environ.get(
            "PET_ALERTS_PUSH_KEY", push_config.get("server_key", ""),
        )
        self.client = client
        if self.client is None and self.gateway_url:
            headers = {"Authorization": f"key={self.server_key}"} if self.server_key else None
            calls_per_minute = push_config.get("calls_per_minute", 0)
            self.client = HTTPClient(
                self.gateway_url,
                throttle=TokenBucket(calls_per_minute) if calls_per_minute else None,
                timeout=push_config.get("timeout_seconds", 10),
                max_retries=push_config.get("max_retries", 1),
                headers=headers,
            )

    def is_configured(self) -> bool:
        return self.client is not None

    def send_push(self, device_tokens, payload) -> bool:
        """Send payload to every device token. True if the gateway accepted at least one."""
        if not self.is_configured():
            logger.warning("Push gateway not configured - skipping send")
            return False
        if not device_tokens:
            logger.warning("No device tokens - skipping push")
            return False

        try:
            data = self.client.post("/send", json={
                "registration_ids": list(device_tokens),
                "notification": {
                    "title": payload.get("title", ""),
                    "body": payload.get("body", ""),
                },
                "data": payload.get("data", {}),
            })
        except (APIError, requests.RequestException) as e:
            logger.error(f"Push send failed: {e}")
            return False

        if not isinstance(data, dict):
            logger.warning(f"Unexpected push gateway response: {data!r}")
            return False
        delivered = data.get("success", 0)
        if delivered <= 0:
            logger.warning(f"Push gateway rejected all {len(device_tokens)} tokens: {data.get('results')}")
            return False
        logger.info(f"Push delivered to {delivered}/{len(device_tokens)} devices")
        return True
