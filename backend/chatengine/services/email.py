"""Transactional email via the Resend HTTP API. Failures are logged, never raised."""
import html
import logging

import httpx

logger = logging.getLogger(__name__)

TEST_SUBJECT_PREFIX = "[TEST] "


class EmailSender:
    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.resend.com/emails",
        default_from: str = "noreply@example.com",
        superadmin_email: str = "superadmin@example.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = (api_key or "").strip()
        self.api_url = api_url
        self.default_from = default_from
        self.superadmin_email = superadmin_email
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def route(self, to: str, subject: str, test_mode: bool) -> tuple[str, str]:
        """In test mode every email goes to the superadmin, marked as a test."""
        if test_mode:
            return self.superadmin_email, TEST_SUBJECT_PREFIX + subject
        return to, subject

    async def send(
        self,
        from_: str,
        to: str,
        subject: str,
        html_body: str,
        reply_to: str | None = None,
    ) -> str | None:
        """Returns the provider message id, or None when skipped or failed."""
        if not self.enabled:
            logger.info("RESEND_API_KEY not set, skipping email to %s", to)
            return None
        payload = {"from": from_, "to": to, "subject": subject, "html": html_body}
        if reply_to:
            payload["reply_to"] = reply_to
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as e:
            logger.error("Failed to send email to %s: %s", to, e)
            return None
        if r.status_code >= 400:
            logger.error("Resend API error: status=%s body=%s", r.status_code, r.text)
            return None
        try:
            message_id = r.json().get("id")
        except ValueError:
            message_id = None
        logger.info("Email sent: %s (to: %s)", message_id, to)
        return message_id

    async def send_superadmin_alert(
        self,
        customer_name: str,
        session_id: str,
        reason: str | None,
        prompt: str,
        test_mode: bool = False,
    ) -> str | None:
        subject = f"🚨 [SECURITY] Suspicious Activity - {customer_name}"
        if test_mode:
            subject = TEST_SUBJECT_PREFIX + subject
        body = (
            "<h2>Suspicious activity detected</h2>"
            f"<p><strong>Customer:</strong> {html.escape(customer_name)}</p>"
            f"<p><strong>Session:</strong> {html.escape(session_id)}</p>"
            f"<p><strong>Reason:</strong> {html.escape(reason or 'Unknown')}</p>"
            f"<p><strong>Message:</strong></p><pre>{html.escape(prompt[:1000])}</pre>"
        )
        return await self.send(self.default_from, self.superadmin_email, subject, body)
