# backend/blogapi/notifications/templates.py
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..events import PostCreated

PREVIEW_LENGTH = 200

env = Environment(
    loader=FileSystemLoader(Path(__file__).resolve().parent / "email_templates"),
    autoescape=select_autoescape(["html"]),
)


def content_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    return content if len(content) <= length else content[:length] + "..."


def new_post_subject(event: PostCreated) -> str:
    return f"New post published: {event.title}"


def render_new_post_email(event: PostCreated, *, base_url: str, contact_email: Optional[str] = None) -> str:
    """HTML body announcing a freshly published post. All user text is autoescaped."""
    base_url = base_url.rstrip("/")
    return env.get_template("new_post.html").render(
        post=event,
        published=event.created_at.strftime("%B %d, %Y %H:%M UTC"),
        preview=content_preview(event.content),
        thumbnail_url=base_url + event.thumbnail if event.thumbnail else None,
        post_url=f"{base_url}/api/posts/{event.post_id}",
        contact_email=contact_email,
        base_url=base_url,
    )
