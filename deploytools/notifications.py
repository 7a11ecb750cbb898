"""
Slack notifications for submitted proposals
"""

import logging
from typing import Dict, Optional

import requests

from .config import NetworkConfig

logger = logging.getLogger(__name__)


def send_slack_alert(webhook: str, message: str, fields: Optional[Dict[str, str]] = None):
    """Send Slack alert"""
    payload = {"text": message}
    if fields:
        payload["attachments"] = [
            {
                "fields": [
                    {"title": title, "value": str(value), "short": True}
                    for title, value in fields.items()
                ]
            }
        ]

    response = requests.post(webhook, json=payload, timeout=10)
    response.raise_for_status()


def notify(config: NetworkConfig, message: str, fields: Optional[Dict[str, str]] = None) -> bool:
    """
    Posts a message when SLACK_WEBHOOK is configured.

    The proposal is already on chain when this is called, so delivery failures
    are logged and do not abort the deployment.
    """
    if not config.slack_webhook:
        return False
    try:
        send_slack_alert(config.slack_webhook, message, fields)
        return True
    except requests.RequestException as e:
        logger.error(f"Failed to send Slack alert: {e}")
        return False
