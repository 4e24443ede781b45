# backend/blogapi/notifications/listener.py
import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..events import EventBus, PostCreated, POST_CREATED, POST_UPDATED, POST_DELETED
from ..users.service import list_notification_emails
from .audit import PostAuditLog
from .mailer import Mailer, BulkSendReport
from .templates import new_post_subject, render_new_post_email

logger = logging.getLogger(__name__)


class NewPostNotifier:
    """Emails every other active user with an address when a post is published."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        mailer: Optional[Mailer],
        *,
        base_url: str,
        batch_size: int = 5,
        batch_delay: float = 1.0,
        contact_email: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.mailer = mailer
        self.base_url = base_url
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.contact_email = contact_email

    async def __call__(self, event: PostCreated) -> Optional[BulkSendReport]:
        if self.mailer is None:
            logger.info(f"SMTP not configured; skipping new post email for {event.post_id}")
            return None

        async with self.session_factory() as db:
            recipients = await list_notification_emails(db, exclude_user_id=event.author.id)
        if not recipients:
            logger.info("No users to notify about the new post")
            return None

        logger.info(f'Sending new post notification for "{event.title}" to {len(recipients)} users')
        html = render_new_post_email(event, base_url=self.base_url, contact_email=self.contact_email)
        return await self.mailer.send_bulk(
            recipients,
            new_post_subject(event),
            html,
            batch_size=self.batch_size,
            batch_delay=self.batch_delay,
        )


def register_post_listeners(
    bus: EventBus,
    *,
    audit_log: PostAuditLog,
    notifier: Optional[NewPostNotifier] = None,
) -> None:
    for name in (POST_CREATED, POST_UPDATED, POST_DELETED):
        bus.subscribe(name, audit_log)
    if notifier is not None:
        bus.subscribe(POST_CREATED, notifier)
