"""
Email background tasks.

Invitation emails sent through Resend.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode

import resend

from app.core.config import settings
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def build_accept_url(invitation_token: str, organization_id: str, to_email: str) -> str:
    """Frontend link that lands the invitee on the accept screen."""
    query = urlencode({"token": invitation_token, "orgId": organization_id, "email": to_email})
    return f"{settings.FRONTEND_URL}/accept-invite?{query}"


@celery_app.task(name="app.workers.email_tasks.send_invitation_email", bind=True, max_retries=3)
def send_invitation_email(
    self,  # type: ignore[no-untyped-def]
    to_email: str,
    organization_id: str,
    organization_name: str,
    inviter_name: str,
    role: str,
    invitation_token: str,
) -> dict[str, str]:
    """
    Send an invitation email via Resend.

    Args:
        to_email: Recipient email address.
        organization_id: Organization UUID as string.
        organization_name: Organization display name.
        inviter_name: Display name of the person who sent the invite.
        role: Role being assigned.
        invitation_token: Token for the invitation link.

    Returns:
        Dict with status and message_id.
    """
    try:
        resend.api_key = settings.RESEND_API_KEY

        accept_url = build_accept_url(invitation_token, organization_id, to_email)

        params: resend.Emails.SendParams = {
            "from": settings.EMAIL_FROM,
            "to": [to_email],
            "subject": f"You've been invited to join {organization_name}",
            "html": f"""
                <h2>Join {organization_name}</h2>
                <p><strong>{inviter_name}</strong> has invited you to join
                <strong>{organization_name}</strong> as <strong>{role}</strong>.</p>
                <p>
                    <a href="{accept_url}"
                       style="background:#1976d2;color:#fff;padding:12px 24px;
                              border-radius:6px;text-decoration:none;display:inline-block;">
                        Accept Invitation
                    </a>
                </p>
                <p>This invitation expires in {settings.INVITATION_EXPIRY_DAYS} days.</p>
                <p>If you did not expect this invitation, you can safely ignore this email.</p>
            """,
        }

        response = resend.Emails.send(params)
        return {"status": "sent", "message_id": response["id"]}

    except Exception as exc:
        logger.warning("Invitation email to %s failed: %s", to_email, exc)
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))


def queue_invitation_email(**kwargs: str) -> None:
    """Dispatcher handed to InvitationService."""
    send_invitation_email.delay(**kwargs)
