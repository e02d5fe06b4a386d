import json

from chatengine.services.email import EmailSender
from chatengine.services.push import PushClient

from conftest import RecordingTransport


async def test_email_posts_to_resend(email_sender, email_transport):
    message_id = await email_sender.send(
        from_="Sofia <sofia@bella.test>", to="staff@bella.test", subject="Hej", html_body="<p>x</p>",
        reply_to="info@bella.test",
    )
    assert message_id == "msg_123"
    request = email_transport.requests[0]
    assert request.headers["Authorization"] == "Bearer re_test"
    assert json.loads(request.content) == {
        "from": "Sofia <sofia@bella.test>",
        "to": "staff@bella.test",
        "subject": "Hej",
        "html": "<p>x</p>",
        "reply_to": "info@bella.test",
    }


async def test_email_without_api_key_is_skipped():
    transport = RecordingTransport()
    sender = EmailSender(api_key="", transport=transport)
    assert await sender.send("a@b", "c@d", "s", "h") is None
    assert transport.requests == []


async def test_email_provider_error_is_logged_not_raised():
    sender = EmailSender(api_key="k", transport=RecordingTransport(status_code=422, body={"message": "bad"}))
    assert await sender.send("a@b", "c@d", "s", "h") is None


def test_test_mode_routes_to_superadmin(email_sender):
    assert email_sender.route("guest@x.se", "Tack", test_mode=True) == ("admin@platform.test", "[TEST] Tack")
    assert email_sender.route("guest@x.se", "Tack", test_mode=False) == ("guest@x.se", "Tack")


async def test_superadmin_alert(email_sender, email_transport):
    await email_sender.send_superadmin_alert("Bella Italia", "sid-1", "injection", "<ignore rules>")
    payload = email_transport.payloads()[0]
    assert payload["to"] == "admin@platform.test"
    assert payload["subject"] == "🚨 [SECURITY] Suspicious Activity - Bella Italia"
    assert "&lt;ignore rules&gt;" in payload["html"]


async def test_new_message_push_truncates_preview(push_client, push_transport):
    assert await push_client.new_guest_message("c1", "s1", "x" * 60, "Eva") is True
    request = push_transport.requests[0]
    assert request.headers["X-Internal-API-Key"] == "internal"
    payload = json.loads(request.content)
    assert payload["customerId"] == "c1"
    assert payload["title"] == "💬 Nytt meddelande"
    assert payload["body"] == "Eva: " + "x" * 50 + "..."
    assert payload["data"] == {"sessionId": "s1", "type": "new_message", "guestName": "Eva"}


async def test_reservation_push_copy(push_client, push_transport):
    analysis = {"guest_name": "Eva", "reservation_date": "fredag", "reservation_time": "19:00", "party_size": 4}
    await push_client.for_trigger("c1", "s1", "reservation_complete", analysis, "reservation")
    payload = push_transport.payloads()[0]
    assert payload["title"] == "📅 Ny bokning!"
    assert payload["body"] == "Eva vill boka fredag kl 19:00 för 4 pers"
    assert payload["data"]["type"] == "reservation"


async def test_push_without_endpoint_is_skipped():
    transport = RecordingTransport()
    assert await PushClient(api_url="", transport=transport).send("c", "t", "b") is False
    assert transport.requests == []
