"""Push notifications to staff devices through the internal dispatch endpoint."""
import logging

import httpx

logger = logging.getLogger(__name__)

NEW_MESSAGE_PREVIEW_LENGTH = 50


class PushClient:
    def __init__(
        self,
        api_url: str,
        internal_api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = (api_url or "").strip()
        self.internal_api_key = internal_api_key or ""
        self.timeout = timeout
        self._transport = transport

    async def send(self, customer_id: str, title: str, body: str, data: dict | None = None) -> bool:
        if not self.api_url:
            logger.info("PUSH_API_URL not set, skipping push: %s", title)
            return False
        payload = {"customerId": customer_id, "title": title, "body": body, "data": data or {}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"X-Internal-API-Key": self.internal_api_key},
                )
        except httpx.HTTPError as e:
            logger.error("Failed to send push: %s", e)
            return False
        if r.status_code >= 400:
            logger.error("Push API error: status=%s body=%s", r.status_code, r.text)
            return False
        logger.info("Push sent: %s", title)
        return True

    async def new_guest_message(
        self, customer_id: str, session_id: str, message: str, guest_name: str | None = None
    ) -> bool:
        preview = message
        if len(preview) > NEW_MESSAGE_PREVIEW_LENGTH:
            preview = preview[:NEW_MESSAGE_PREVIEW_LENGTH] + "..."
        name = guest_name or "Gäst"
        return await self.send(
            customer_id,
            title="💬 Nytt meddelande",
            body=f"{name}: {preview}",
            data={"sessionId": session_id, "type": "new_message", "guestName": guest_name},
        )

    async def for_trigger(
        self,
        customer_id: str,
        session_id: str,
        trigger: str,
        analysis: dict,
        notification_type: str | None = None,
    ) -> bool:
        """Push matching a fired analysis trigger (reservation, complaint, needs human)."""
        guest_name = analysis.get("guest_name")
        if trigger == "reservation_complete":
            title = "📅 Ny bokning!"
            body = (
                f"{guest_name or 'Gäst'} vill boka {analysis.get('reservation_date') or ''} "
                f"kl {analysis.get('reservation_time') or ''} för {analysis.get('party_size') or '?'} pers"
            )
        elif trigger == "is_complaint":
            title = "⚠️ Klagomål"
            body = f"{guest_name or 'En gäst'} har uttryckt missnöje"
        elif trigger == "needs_human_response":
            title = "💬 Behöver svar"
            body = f"{guest_name or 'En gäst'} har en fråga som behöver ditt svar"
        else:
            title = "🔔 Nytt ärende"
            body = "Du har ett nytt meddelande"
        return await self.send(
            customer_id,
            title=title,
            body=body,
            data={"sessionId": session_id, "type": notification_type or trigger, "guestName": guest_name},
        )
