"""
Background task tests.

Tasks run eagerly via apply(); Resend and the broker are patched out.
"""

import uuid
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

from app.core.config import settings
from app.models import NotificationType
from app.schemas.notification import OrganizationNotificationCreate
from app.workers.email_tasks import build_accept_url, queue_invitation_email, send_invitation_email
from app.workers.notification_tasks import queue_organization_notification


def test_accept_url_carries_token_org_and_email():
    url = build_accept_url("tok-123", "org-1", "new+hire@example.com")

    parsed = urlparse(url)
    assert url.startswith(f"{settings.FRONTEND_URL}/accept-invite?")
    assert parse_qs(parsed.query) == {
        "token": ["tok-123"],
        "orgId": ["org-1"],
        "email": ["new+hire@example.com"],
    }


def test_invitation_email_is_sent_through_resend():
    with patch("app.workers.email_tasks.resend.Emails.send", return_value={"id": "msg_1"}) as send:
        result = send_invitation_email.apply(
            kwargs={
                "to_email": "a@example.com",
                "organization_id": "org-1",
                "organization_name": "Acme",
                "inviter_name": "Olivia",
                "role": "MEMBER",
                "invitation_token": "tok-1",
            }
        ).get()

    assert result == {"status": "sent", "message_id": "msg_1"}
    params = send.call_args.args[0]
    assert params["to"] == ["a@example.com"]
    assert "Acme" in params["subject"]
    assert "token=tok-1" in params["html"]


def test_queue_invitation_email_enqueues():
    with patch.object(send_invitation_email, "delay") as delay:
        queue_invitation_email(to_email="a@example.com", invitation_token="t")

    delay.assert_called_once_with(to_email="a@example.com", invitation_token="t")


def test_queue_notification_serializes_payload():
    org_id = uuid.uuid4()
    payload = OrganizationNotificationCreate(
        type=NotificationType.ORG_MEMBER_JOINED,
        organization_id=org_id,
        data={"member_name": "Nina"},
    )

    with patch("app.workers.notification_tasks.dispatch_organization_notification.delay") as delay:
        queue_organization_notification(payload)

    [sent] = delay.call_args.args
    assert sent["type"] == "ORG_MEMBER_JOINED"
    assert sent["organization_id"] == str(org_id)
    assert sent["channels"] == ["IN_APP"]
