"""Email service for intake notifications and caller confirmations.

Uses aiosmtplib for async email sending to avoid blocking the event loop.
"""
import asyncio
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import List, Optional

import aiosmtplib

from intake_agent.config.settings import Settings, get_settings
from intake_agent.config.constants import EmailConfig
from intake_agent.core.models import CallbackRequest, IntakeResult
from intake_agent.utils.circuit_breaker import smtp_breaker, with_circuit_breaker
from intake_agent.utils.logger import get_logger
from intake_agent.utils.metrics import email_sent, email_latency

logger = get_logger(__name__)


def _row(label: str, value) -> str:
    shown = escape(str(value)) if value not in (None, "", []) else "Not provided"
    return f"<tr><td><strong>{label}:</strong></td><td>{shown}</td></tr>"


def _bullets(items) -> str:
    if not items:
        return "<li>None recorded</li>"
    return "".join(f"<li>{escape(str(item))}</li>" for item in items)


class EmailService:
    """Service for sending staff notifications and caller emails asynchronously."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.firm_name = settings.firm_name
        self.firm_phone = settings.firm_phone
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_email = settings.smtp_email
        self.smtp_password = settings.get_smtp_password()
        self.enabled = settings.enable_email_notifications
        # Determine staff recipients: use test override in non-production app envs
        if not settings.is_production and settings.test_notification_email:
            self.notification_emails = [settings.test_notification_email]
        else:
            self.notification_emails = settings.notification_emails

    async def send_intake_notification(self, result: IntakeResult) -> bool:
        """Send the scored intake to staff.

        Returns:
            True if every staff email was sent
        """
        demographics = result.record.demographics
        scoring = result.scoring
        name = demographics.full_name or "Unknown Caller"
        urgent_badge = "[URGENT] " if result.flags.urgent else ""
        subject = f"{urgent_badge}New Intake: {name} (Score: {scoring.total_score}/100)"

        urgent_block = ""
        if result.flags.urgent:
            urgent_block = (
                f"<p style=\"color: #b00020;\"><strong>URGENT:</strong> "
                f"{escape(result.flags.urgent_reason or 'Flagged during call')}</p>"
            )
        if result.flags.crisis_mentioned:
            urgent_block += "<p style=\"color: #b00020;\"><strong>Caller mentioned a crisis.</strong></p>"

        record = result.record
        body = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2>New Intake {escape(result.intake_id)}</h2>
            {urgent_block}
            <h3>Assessment</h3>
            <table border="1" cellpadding="5" cellspacing="0">
                {_row("Score", f"{scoring.total_score}/100")}
                {_row("Recommendation", scoring.recommendation.value.replace("_", " ").title())}
                {_row("Viability", scoring.viability_rating)}
                {_row("Approval Likelihood", scoring.approval_likelihood)}
                {_row("Callback Within", scoring.callback_timeframe)}
                {_row("Scored By", scoring.source.value)}
            </table>

            <h3>Strengths</h3>
            <ul>{_bullets(scoring.case_strengths)}</ul>
            <h3>Concerns</h3>
            <ul>{_bullets(scoring.case_concerns)}</ul>

            <h3>Caller</h3>
            <table border="1" cellpadding="5" cellspacing="0">
                {_row("Name", name)}
                {_row("Age", demographics.age)}
                {_row("Phone", demographics.phone or result.caller.caller_phone)}
                {_row("Email", demographics.email)}
                {_row("Location", ", ".join(p for p in (demographics.city, demographics.state) if p))}
                {_row("Education", record.education.level.value if record.education.level else None)}
                {_row("Conditions", ", ".join(record.medical.conditions))}
                {_row("Medications", ", ".join(record.medical.medications))}
                {_row("Application Status", record.application.status.value if record.application.status else None)}
                {_row("SMS Consent", "Yes" if record.sms_consent.consent_given else "No")}
                {_row("Transfer Requested", "Yes" if result.flags.transfer_requested else "No")}
                {_row("Outcome", result.outcome.value)}
                {_row("Call Duration", f"{result.duration_seconds // 60} min {result.duration_seconds % 60} s")}
            </table>

            <p>{escape(record.notes or "")}</p>
            <p><em>This intake was collected by the automated intake line.</em></p>
        </body>
        </html>
        """

        return await self._send_to_staff(subject, body)

    async def send_client_confirmation(self, result: IntakeResult) -> bool:
        """Thank the caller by email. Requires an email on the intake."""
        demographics = result.record.demographics
        if not demographics.email:
            return False

        subject = f"Thank you for contacting {self.firm_name}"
        body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6;">
            <p>Dear {escape(demographics.first_name or "Caller")},</p>

            <p>Thank you for calling {escape(self.firm_name)} about your disability case.
            An attorney will review your information and contact you within
            {escape(result.scoring.callback_timeframe)}.</p>

            <p>Your reference number is <strong>{escape(result.intake_id)}</strong>.</p>

            <p>While you wait, it helps to gather recent medical records, a list of your
            treating doctors and any letters you have received from Social Security.</p>

            <p>Questions? Call us at {escape(self.firm_phone or "our main number")}.</p>

            <p>Best regards,<br>
            {escape(self.firm_name)} Team</p>
        </body>
        </html>
        """

        return await self._send_email(
            to_email=str(demographics.email),
            subject=subject,
            body=body,
            is_html=True
        )

    async def send_callback_notification(self, request: CallbackRequest, message_id: str) -> bool:
        """Tell staff about a message left by a non-intake caller."""
        urgent_badge = "[URGENT] " if request.is_urgent else ""
        subject = f"{urgent_badge}New Message: {request.caller_name or 'Unknown Caller'}"
        body = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2>New Callback Request {escape(message_id)}</h2>
            <table border="1" cellpadding="5" cellspacing="0">
                {_row("Caller", request.caller_name)}
                {_row("Phone", request.phone_number)}
                {_row("Category", request.category.value)}
                {_row("Priority", request.priority)}
                {_row("Purpose", request.purpose)}
                {_row("Notes", request.notes)}
                {_row("Received", request.created_at.strftime('%m/%d/%Y %I:%M %p UTC'))}
            </table>
        </body>
        </html>
        """

        return await self._send_to_staff(subject, body)

    async def _send_to_staff(self, subject: str, body: str) -> bool:
        """Send to all notification recipients concurrently."""
        tasks = [
            self._send_email(
                to_email=email,
                subject=subject,
                body=body,
                is_html=True
            )
            for email in self.notification_emails
        ]

        if not tasks:
            logger.warning("No staff notification recipients configured")
            return False

        results = await asyncio.gather(*tasks, return_exceptions=True)

        # Check for any failures
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Staff notification failed: {result}")
                return False
            if result is False:
                return False

        return True

    async def _send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        is_html: bool = False
    ) -> bool:
        """Send email via async SMTP.

        Args:
            to_email: Recipient email address
            subject: Email subject
            body: Email body content
            is_html: Whether body is HTML

        Returns:
            True if email sent successfully, False otherwise
        """
        if not self.enabled:
            logger.info("Email notifications disabled, skipping email send")
            return False

        if not self.smtp_email or not self.smtp_password:
            logger.warning("SMTP not configured, skipping email send")
            return False

        try:
            # Create message
            msg = MIMEMultipart('alternative')
            msg['From'] = self.smtp_email
            msg['To'] = to_email
            msg['Subject'] = subject

            # Attach body
            mime_type = 'html' if is_html else 'plain'
            msg.attach(MIMEText(body, mime_type))

            loop = asyncio.get_running_loop()
            started = loop.time()

            # Send email asynchronously with retry
            for attempt in range(EmailConfig.MAX_RETRY_ATTEMPTS):
                try:
                    await with_circuit_breaker(
                        smtp_breaker,
                        aiosmtplib.send,
                        msg,
                        hostname=self.smtp_host,
                        port=self.smtp_port,
                        start_tls=True,
                        username=self.smtp_email,
                        password=self.smtp_password,
                        timeout=EmailConfig.SMTP_TIMEOUT_SEC
                    )
                    email_sent.labels(status='success').inc()
                    email_latency.observe(loop.time() - started)
                    logger.info(f"Email sent successfully to ***@{to_email.split('@')[-1]}")
                    return True

                except aiosmtplib.SMTPException as smtp_error:
                    if attempt < EmailConfig.MAX_RETRY_ATTEMPTS - 1:
                        delay = EmailConfig.RETRY_BASE_DELAY_SEC * (attempt + 1)
                        logger.warning(
                            f"SMTP error (attempt {attempt + 1}), retrying in {delay}s: {smtp_error}"
                        )
                        await asyncio.sleep(delay)
                    else:
                        raise

        except Exception as e:
            email_sent.labels(status='error').inc()
            logger.error(f"Failed to send email: {e}", exc_info=True)
            # Don't raise - we don't want email failures to break the flow
            return False

        return False

    @property
    def recipients(self) -> List[str]:
        return list(self.notification_emails)
