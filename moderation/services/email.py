import html

import aioboto3

from moderation.settings import settings

SUBJECTS = {
    "report_verification": "Please confirm your event report",
    "new_report": "A new report was filed on your calendar",
    "admin_report": "An administrator reported an event on your calendar",
    "escalation_reminder": "A report on your calendar needs attention",
    "report_escalated": "A report has been escalated for review",
    "report_closed": "Your report has been reviewed",
}


def render_notification(kind: str, data: dict) -> tuple[str, str]:
    """Minimal subject and HTML body for a notification kind."""
    subject = SUBJECTS.get(kind, "Moderation notification")
    if kind == "report_verification":
        url = html.escape(data.get("verify_url", ""))
        body = (
            "<p>Thanks for reporting an event. Confirm your report by opening "
            f'<a href="{url}">this link</a>.</p>'
            f"<p>The link expires at {html.escape(str(data.get('expires_at')))}.</p>"
        )
    else:
        rows = "".join(
            f"<li>{html.escape(str(k))}: {html.escape(str(v))}</li>"
            for k, v in data.items()
            if v is not None
        )
        body = f"<p>{html.escape(subject)}</p><ul>{rows}</ul>"
    return subject, body


async def send_email(
    to_addr: str,
    subject: str,
    body: str,
) -> None:
    """Sends an email using AWS SES."""
    session = aioboto3.Session(region_name=settings.AWS_REGION)

    async with session.client("ses") as client:
        await client.send_email(
            Source=settings.MAIL_FROM,
            Destination={"ToAddresses": [to_addr]},
            Message={
                "Subject": {"Data": subject},
                "Body": {"Html": {"Data": body}},
            },
        )
