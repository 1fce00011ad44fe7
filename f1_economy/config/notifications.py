import asyncio
import logging
from datetime import datetime

import httpx
import pytz
from django.conf import settings


logger = logging.getLogger(__name__)


async def send_slack_notification_async(message: str, blocks: list = None):
    """
    Send a message to Slack via webhook.

    Args:
        message: Plain text message to send
        blocks: Optional list of Slack Block Kit blocks for rich formatting

    Returns:
        True if message sent successfully, False otherwise
    """
    if not settings.SLACK_WEBHOOK_URL:
        logger.info(f"No Slack webhook configured. Message: {message}")
        return False

    payload = {"text": message}

    if blocks:
        payload["blocks"] = blocks

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                settings.SLACK_WEBHOOK_URL,
                headers={"Content-type": "application/json"},
                json=payload,
                timeout=10.0
            )
            response.raise_for_status()
            return True
    except httpx.HTTPError as e:
        logger.warning(f"Failed to send Slack notification: {e}")
        return False


def send_slack_notification(message: str, blocks: list = None):
    """
    Synchronous wrapper for send_slack_notification_async.

    Use this in management commands and sync flows.

    Example:
        >>> from config.notifications import send_slack_notification
        >>> send_slack_notification("Teams locked for Monaco")
    """
    return asyncio.run(send_slack_notification_async(message, blocks))


def format_local_time(value: str) -> str:
    """Render an ISO timestamp in NOTIFICATION_TIMEZONE for humans."""
    tz = pytz.timezone(settings.NOTIFICATION_TIMEZONE)
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = pytz.utc.localize(moment)
    return moment.astimezone(tz).strftime('%a %d %b %H:%M %Z')


def send_auto_lock_notification(summary: dict):
    """
    Send Slack notification with an auto-lock pass summary.

    Args:
        summary: Summary dict from AutoLockScheduler.run()

    Returns:
        True if notification sent successfully, False otherwise
    """
    try:
        if summary['status'] == 'complete':
            status_text = 'Complete'
        elif summary['status'] == 'failed':
            status_text = 'Failed'
        else:
            status_text = summary['status'].title()

        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"Auto-Lock {status_text}",
                    "emoji": True
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Teams Locked:*\n{summary['teams_locked']}"},
                    {"type": "mrkdwn", "text": f"*Batches:*\n{summary['batches_committed']}"},
                    {"type": "mrkdwn", "text": f"*Races Locked:*\n{summary['races_locked']}"},
                    {"type": "mrkdwn", "text": f"*Races Failed:*\n{summary['races_failed']}"},
                ]
            },
            {
                "type": "divider"
            },
        ]

        for race in summary.get('races', []):
            if race['status'] == 'success':
                text = (
                    f"✅ *{race['race_name']}* - qualifying {format_local_time(race['qualifying'])}\n"
                    f"{race['teams_locked']} teams locked"
                )
            else:
                text = f"❌ *{race['race_name']}* - {race.get('error', 'unknown error')}"
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": text}
            })

        return send_slack_notification(
            message=f"Auto-Lock {status_text}: {summary['teams_locked']} teams locked",
            blocks=blocks
        )

    except Exception as e:
        logger.warning(f"Failed to send auto-lock notification: {e}")
        return False
