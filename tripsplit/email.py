import logging
import os

import resend

logger = logging.getLogger("tripsplit")


def _send(to: str, subject: str, html: str) -> None:
    api_key = os.getenv("RESEND_API_KEY")
    if not api_key:
        return

    resend.api_key = api_key
    try:
        resend.Emails.send({
            "from": os.getenv("EMAIL_FROM", "onboarding@resend.dev"),
            "to": [to],
            "subject": subject,
            "html": html,
        })
    except Exception as e:
        # Email is best-effort; the in-app notification already exists
        logger.warning(f"Email delivery failed: {e}", extra={"extra_data": {"to": to, "subject": subject}})


def send_payment_request_email(
    email: str,
    payer_name: str,
    amount_label: str,
    description: str,
    group_id: str,
    group_name: str,
    upi_link: str | None = None,
):
    frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173")
    group_url = f"{frontend_url}/groups/{group_id}/expenses"

    pay_line = f'<p><a href="{upi_link}">Pay with UPI</a></p>' if upi_link else ""
    _send(
        email,
        f"{payer_name} requests {amount_label} for {description}",
        (
            f"<p><strong>{payer_name}</strong> added <strong>{description}</strong> "
            f"to <strong>{group_name}</strong>. Your share is <strong>{amount_label}</strong>.</p>"
            f"{pay_line}"
            f'<p><a href="{group_url}">View group expenses</a></p>'
        ),
    )


def send_settlement_email(email: str, payer_name: str, amount_label: str, description: str):
    _send(
        email,
        f"Payment for {description} settled",
        (
            f"<p><strong>{payer_name}</strong> marked your payment of "
            f"<strong>{amount_label}</strong> for <strong>{description}</strong> as settled.</p>"
        ),
    )


def send_invitation_email(email: str, inviter_name: str, group_name: str, message: str | None = None):
    frontend_url = os.getenv("FRONTEND_URL", "http://localhost:5173")
    note = f"<p><em>{message}</em></p>" if message else ""
    _send(
        email,
        f"{inviter_name} invited you to {group_name}",
        (
            f"<p><strong>{inviter_name}</strong> invited you to join "
            f"<strong>{group_name}</strong>.</p>"
            f"{note}"
            f'<p><a href="{frontend_url}/invitations">Review the invitation</a></p>'
        ),
    )
