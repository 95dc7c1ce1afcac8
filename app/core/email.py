"""
Email notifications using Resend.

Notifications are dispatched after the triggering transition has committed
and run as background tasks bounded by EMAIL_TIMEOUT_SECONDS. A failed or
slow send is logged; it never propagates back into the workflow.
"""

import asyncio
import logging
from html import escape
from typing import Any, Coroutine, Optional, Set

import resend

from app.core.config import settings

logger = logging.getLogger(__name__)

# Strong references to in-flight notification tasks until they finish.
_pending: Set[asyncio.Task] = set()


async def _send_bounded(notification: Coroutine[Any, Any, bool]) -> bool:
    return await asyncio.wait_for(notification, timeout=settings.email_timeout_seconds)


def _log_outcome(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        logger.warning(f"Notification {task.get_name()} was cancelled")
        return
    error = task.exception()
    if isinstance(error, asyncio.TimeoutError):
        logger.error(f"Notification {task.get_name()} timed out after {settings.email_timeout_seconds}s")
    elif error is not None:
        logger.error(f"Notification {task.get_name()} failed: {error}", exc_info=error)


def dispatch_notification(notification: Coroutine[Any, Any, bool], name: str) -> asyncio.Task:
    """
    Schedule a notify_* coroutine without waiting for it.

    The caller's operation (and its timeout) completes independently of the
    mail provider; the outcome is only logged.
    """
    task = asyncio.create_task(_send_bounded(notification), name=name)
    _pending.add(task)
    task.add_done_callback(_log_outcome)
    return task


async def drain_notifications(timeout: Optional[float] = None) -> None:
    """Wait for in-flight notifications, e.g. on shutdown."""
    if _pending:
        await asyncio.wait(set(_pending), timeout=timeout)


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged, when no API key is configured)
    """
    if not settings.resend_api_key:
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    resend.api_key = settings.resend_api_key
    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def notify_document_reviewed(
    to_email: str,
    user_name: str,
    document_type_name: str,
    decision: str,
    notes: Optional[str] = None,
) -> bool:
    safe_name = escape(user_name)
    safe_type = escape(document_type_name)
    notes_html = f"<p>Notes: {escape(notes)}</p>" if notes else ""
    html_content = f"""
    <p>Hello {safe_name},</p>
    <p>Your document <strong>{safe_type}</strong> was <strong>{escape(decision)}</strong>.</p>
    {notes_html}
    <p>{escape(settings.institution_name)}</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Document {decision}: {safe_type}",
        html_content=html_content,
    )


async def notify_contract_issued(
    to_email: str,
    user_name: str,
    semester: int,
    year: int,
) -> bool:
    html_content = f"""
    <p>Hello {escape(user_name)},</p>
    <p>Your contract for semester {semester}/{year} is available and awaiting your acceptance.</p>
    <p>{escape(settings.institution_name)}</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Contract {semester}/{year} awaiting acceptance",
        html_content=html_content,
    )


async def notify_request_reviewed(
    to_email: str,
    user_name: str,
    request_type_name: str,
    decision: str,
) -> bool:
    html_content = f"""
    <p>Hello {escape(user_name)},</p>
    <p>Your request <strong>{escape(request_type_name)}</strong> was <strong>{escape(decision)}</strong>.</p>
    <p>{escape(settings.institution_name)}</p>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Request {decision}: {escape(request_type_name)}",
        html_content=html_content,
    )
