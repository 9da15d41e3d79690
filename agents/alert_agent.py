"""
Alert Agent
Validates alert recipients and dispatches simulated test alerts
"""

import logging
import asyncio
import re
from typing import Dict, Any, Optional

from models.schemas import AlertChannel, AlertSetting
from utils.monitoring import monitor_agent_operation
from config import settings

logger = logging.getLogger(__name__)

RECIPIENT_PATTERNS = {
    AlertChannel.EMAIL: re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    AlertChannel.SMS: re.compile(r"^\+?[1-9]\d{1,14}$"),
    AlertChannel.SLACK: re.compile(r"^#[\w-]+$"),
}

RECIPIENT_ERRORS = {
    AlertChannel.EMAIL: "Please enter a valid email.",
    AlertChannel.SMS: "Enter a valid number (e.g., +15551234567).",
    AlertChannel.SLACK: "Enter a valid channel name (e.g., #inventory).",
}

CHANNEL_FIELDS = {
    AlertChannel.EMAIL: "alert_email_list",
    AlertChannel.SMS: "alert_sms_list",
    AlertChannel.SLACK: "alert_slack_list",
}

def validate_recipient(channel: AlertChannel, value: str) -> str:
    """
    Normalize and validate a recipient for a channel

    Raises:
        ValueError: If the value does not match the channel's format
    """
    channel = AlertChannel(channel)
    value = value.strip()
    if not RECIPIENT_PATTERNS[channel].match(value):
        raise ValueError(RECIPIENT_ERRORS[channel])
    return value

class AlertAgent:
    """Agent for alert delivery"""

    def __init__(self, delay_seconds: Optional[float] = None):
        self.delay_seconds = settings.test_alert_delay_seconds if delay_seconds is None else delay_seconds

    @monitor_agent_operation("alerts", "send_test_alert")
    async def send_test_alert(self, product_name: str, alert_setting: AlertSetting) -> Dict[str, Any]:
        """
        Send a test alert to every configured recipient

        Args:
            product_name: Product the alert is about
            alert_setting: Recipient lists to notify

        Returns:
            Result with the delivery summary message
        """
        logger.info(f'Sending test alert for "{product_name}"')
        await asyncio.sleep(self.delay_seconds)

        email_count = len(alert_setting.alert_email_list)
        sms_count = len(alert_setting.alert_sms_list)
        slack_count = len(alert_setting.alert_slack_list)

        if alert_setting.recipient_count() == 0:
            logger.warning(f'Test alert for "{product_name}" has no recipients')
            return {"success": False, "error": "No recipients configured for this product."}

        message = (
            f'Test alert for "{product_name}" sent to {email_count} email(s), '
            f'{sms_count} SMS, and {slack_count} Slack channel(s).'
        )
        logger.info(message)
        return {"success": True, "message": message}
