"""
Notifications — Slack webhook delivery for breakout digests.

Delivery reports an outcome instead of raising; the digest batcher records
it and marks the alerts sent either way.
"""
import logging
from typing import Any, Dict, List

import requests

from pulse import config

logger = logging.getLogger('services.notifications')


def _digest_title(alerts, digest_type):
    n = len(alerts)
    noun = 'story' if n == 1 else 'stories'
    if digest_type == 'urgent':
        return f"HN Pulse: {n} URGENT breakout {noun}"
    return f"HN Pulse: {n} breakout {noun}"


def build_digest_blocks(alerts: List[Dict[str, Any]], digest_type: str) -> List[Dict[str, Any]]:
    """Slack block payload: one header, one section per alert."""
    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": _digest_title(alerts, digest_type)},
        },
    ]

    for alert in alerts:
        title = alert.get('title') or f"Item {alert.get('item_id')}"
        link = alert.get('url') or f"https://news.ycombinator.com/item?id={alert.get('item_id')}"
        unit = 'comments/min' if alert.get('alert_type') == 'comment_velocity' else 'pts/min'
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*<{link}|{title}>*"},
            "fields": [
                {"type": "mrkdwn", "text": f"*Type:* {alert.get('alert_type')}"},
                {"type": "mrkdwn", "text": f"*Percentile:* {float(alert.get('percentile') or 0):.1f}"},
                {"type": "mrkdwn", "text": f"*Rate:* {float(alert.get('growth_rate') or 0):.2f} {unit}"},
                {"type": "mrkdwn", "text": f"*Age:* {alert.get('item_age_minutes')}m"},
                {"type": "mrkdwn", "text": f"*Score:* {alert.get('score_at_alert')}"},
                {"type": "mrkdwn", "text": f"*Comments:* {alert.get('comments_at_alert')}"},
            ],
        })

    return blocks


def deliver_digest(alerts: List[Dict[str, Any]], digest_type: str) -> str:
    """
    Post the digest to every configured Slack webhook.

    Returns 'sent' when all posts succeed, 'partial' when some do, 'failed'
    when none do or nothing is configured.
    """
    urls = list(config.SLACK_WEBHOOK_URLS)
    if not urls:
        logger.warning("SLACK_WEBHOOK_URLS not set — digest not delivered")
        return 'failed'

    payload = {"text": _digest_title(alerts, digest_type),
               "blocks": build_digest_blocks(alerts, digest_type)}

    delivered = 0
    for url in urls:
        try:
            resp = requests.post(url, json=payload, timeout=10)
            resp.raise_for_status()
            delivered += 1
        except Exception:
            logger.error("Failed to deliver %s digest to one webhook", digest_type, exc_info=True,
                         extra={'digest_type': digest_type})

    if delivered == len(urls):
        logger.info("%s digest with %d alerts delivered", digest_type.capitalize(), len(alerts))
        return 'sent'
    if delivered:
        return 'partial'
    return 'failed'
