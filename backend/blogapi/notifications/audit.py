# backend/blogapi/notifications/audit.py
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import aiofiles

from ..events import DomainEvent, PostCreated, PostUpdated, PostDeleted

logger = logging.getLogger(__name__)


def format_audit_line(event: DomainEvent, at: datetime) -> str:
    prefix = f"[{at.isoformat()}]"
    if isinstance(event, PostCreated):
        return (
            f'{prefix} POST_CREATED - ID: {event.post_id}, Title: "{event.title}", '
            f"Author: {event.author.username}, Category: {event.category}"
        )
    kind = "POST_UPDATED" if isinstance(event, PostUpdated) else "POST_DELETED"
    return f'{prefix} {kind} - ID: {event.post_id}, Title: "{event.title}", Author: {event.author.username}'


class PostAuditLog:
    """Appends one line per post event to a day-partitioned file, posts-YYYY-MM-DD.log."""

    def __init__(self, log_dir: str, clock: Optional[Callable[[], datetime]] = None):
        self.log_dir = Path(log_dir)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def path_for(self, at: datetime) -> Path:
        return self.log_dir / f"posts-{at.strftime('%Y-%m-%d')}.log"

    async def __call__(self, event: DomainEvent) -> None:
        if isinstance(event, PostCreated):
            logger.info(f'New post created: "{event.title}" by {event.author.username}')
        elif isinstance(event, PostUpdated):
            logger.info(f'Post updated: "{event.title}" by {event.author.username}')
        elif isinstance(event, PostDeleted):
            logger.info(f'Post deleted: "{event.title}" by {event.author.username}')

        at = self.clock()
        self.log_dir.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.path_for(at), "a", encoding="utf-8") as f:
            await f.write(format_audit_line(event, at) + "\n")
