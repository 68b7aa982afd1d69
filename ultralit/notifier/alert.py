"""
Ultralit Alert Notification System
Raises operator alerts for dead-lettered deliveries and failing delivery cycles
"""

import html
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..config import settings
from ..mailer import SmtpSender

logger = logging.getLogger(__name__)

SEVERITY_COLORS = {
    "info": "#17a2b8",
    "warning": "#ffc107",
    "error": "#dc3545",
    "critical": "#721c24",
}


@dataclass
class AlertMessage:
    """Alert message structure"""
    title: str
    message: str
    severity: str = "warning"  # info, warning, error, critical
    timestamp: datetime = None
    details: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()


class AlertNotifier(ABC):
    """Base class for alert notifications"""

    @abstractmethod
    def send_alert(self, alert: AlertMessage) -> bool:
        """Send an alert notification"""
        pass


class EmailAlertNotifier(AlertNotifier):
    """Send alerts to the operator mailbox"""

    def __init__(self, admin_email: str = None, sender: SmtpSender = None):
        self.admin_email = admin_email or settings.alert_email
        self.sender = sender or SmtpSender()

    def send_alert(self, alert: AlertMessage) -> bool:
        """Send alert email to admin"""
        if not self.admin_email or not self.sender.is_configured:
            logger.warning(f"Alert email not configured, dropping alert: {alert.title}")
            return False

        result = self.sender.send(
            recipient=self.admin_email,
            subject=f"[Ultralit Alert] [{alert.severity.upper()}] {alert.title}",
            html_content=self._create_alert_html(alert),
            sender_name="Ultralit Alerts",
        )

        if result.success:
            logger.info(f"Alert sent to {self.admin_email}: {alert.title}")
        else:
            logger.error(f"Failed to send alert email: {result.error_message}")
        return result.success

    def _create_alert_html(self, alert: AlertMessage) -> str:
        """Create HTML content for alert email"""
        color = SEVERITY_COLORS.get(alert.severity, "#6c757d")

        details_html = ""
        if alert.details:
            items = "".join(
                f"<li><strong>{html.escape(str(key))}:</strong> {html.escape(str(value))}</li>"
                for key, value in alert.details.items()
            )
            details_html = f"<h3>Details:</h3><ul>{items}</ul>"

        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; margin: 0; padding: 20px;">
            <h1>Ultralit System Alert</h1>
            <div style="border-left: 4px solid {color}; background-color: #f8f9fa; padding: 20px;">
                <span style="background-color: {color}; color: white; padding: 4px 12px;
                             border-radius: 4px; font-size: 12px; font-weight: bold;
                             text-transform: uppercase;">{html.escape(alert.severity)}</span>
                <h2>{html.escape(alert.title)}</h2>
                <p>{html.escape(alert.message)}</p>
                {details_html}
                <p style="color: #6c757d; font-size: 14px;">
                    Time: {alert.timestamp.strftime('%Y-%m-%d %H:%M:%S')}
                </p>
            </div>
        </body>
        </html>
        """


class ConsoleAlertNotifier(AlertNotifier):
    """Log alerts to console (for development/testing)"""

    def __init__(self):
        self.sent: list[AlertMessage] = []

    def send_alert(self, alert: AlertMessage) -> bool:
        self.sent.append(alert)
        logger.warning(f"[{alert.severity.upper()}] {alert.title}: {alert.message}")
        return True


# Alert helper functions
_notifier: Optional[AlertNotifier] = None


def get_notifier() -> AlertNotifier:
    """Get the configured alert notifier"""
    global _notifier
    if _notifier is None:
        _notifier = EmailAlertNotifier() if settings.alert_email else ConsoleAlertNotifier()
    return _notifier


def build_dead_letter_alert(
    user_email: str,
    topic_id: int,
    day_number: int,
    attempts: int,
    error_message: str
) -> AlertMessage:
    """Alert for a delivery that hit the retry cap"""
    return AlertMessage(
        title="Content Delivery Dead-Lettered",
        message=f"Day {day_number} of topic {topic_id} could not be delivered to {user_email}",
        severity="error",
        details={
            "Recipient": user_email,
            "Topic": topic_id,
            "Day": day_number,
            "Attempts": attempts,
            "Last Error": error_message,
        }
    )


def build_cycle_summary_alert(total: int, sent_count: int, failed_count: int) -> AlertMessage:
    """Summary of one delivery cycle"""
    severity = "info" if failed_count == 0 else "warning"
    attempted = sent_count + failed_count
    return AlertMessage(
        title="Delivery Cycle Summary",
        message=f"Delivery cycle completed. {sent_count} sent, {failed_count} failed.",
        severity=severity,
        details={
            "Pending Deliveries": total,
            "Sent": sent_count,
            "Failed": failed_count,
            "Success Rate": f"{(sent_count / attempted * 100):.1f}%" if attempted > 0 else "N/A",
        }
    )
