from datetime import datetime, timezone

import aiosmtplib

from blogapi.events import AuthorRef, PostCreated
from blogapi.notifications.listener import NewPostNotifier
from blogapi.notifications.mailer import SMTPMailer
from blogapi.notifications.templates import content_preview, render_new_post_email
from blogapi.users.models import User, UserRole
from blogapi.users.schema import UserCreate
from blogapi.users.service import create_user


def make_event(author_id, content="Short body", thumbnail=None):
    return PostCreated(
        post_id="post-1",
        title="<Big> news",
        content=content,
        category="tech",
        thumbnail=thumbnail,
        created_at=datetime(2024, 5, 17, 9, 30, tzinfo=timezone.utc),
        author=AuthorRef(id=author_id, username="alice", full_name="Alice L."),
    )


async def add_user(db, username, email=None, active=True) -> User:
    user = await create_user(UserCreate(username=username, password="secret1", email=email), db)
    if not active:
        user.is_active = False
        await db.commit()
    return user


def test_preview_is_truncated():
    assert content_preview("x" * 200) == "x" * 200
    assert content_preview("x" * 250) == "x" * 200 + "..."


def test_template_escapes_and_links():
    html = render_new_post_email(
        make_event("u1", content="y" * 300, thumbnail="/uploads/a.png"),
        base_url="https://blog.example.com/",
        contact_email="noreply@example.com",
    )
    assert "&lt;Big&gt; news" in html
    assert "<Big>" not in html
    assert 'href="https://blog.example.com/api/posts/post-1"' in html
    assert 'src="https://blog.example.com/uploads/a.png"' in html
    assert "y" * 200 + "..." in html
    assert "Alice L." in html
    assert "May 17, 2024" in html
    assert "Contact: noreply@example.com" in html


def test_template_without_thumbnail_or_contact():
    html = render_new_post_email(make_event("u1"), base_url="http://test")
    assert "<img" not in html
    assert "Contact:" not in html
    assert "<strong>alice</strong> (Alice L.)" in html


async def test_notifier_emails_other_active_users(db, session_factory, mailer):
    alice = await add_user(db, "alice", "alice@example.com")
    await add_user(db, "bob", "bob@example.com")
    await add_user(db, "carol", "carol@example.com", active=False)
    await add_user(db, "dave")
    await create_user(UserCreate(username="root", password="secret1", email="root@example.com"), db, role=UserRole.ADMIN)

    notifier = NewPostNotifier(session_factory, mailer, base_url="http://test", batch_delay=0)
    report = await notifier(make_event(alice.id))

    assert sorted(to for to, _, _ in mailer.sent) == ["bob@example.com", "root@example.com"]
    assert report.success_count == 2
    assert report.fail_count == 0
    subject = mailer.sent[0][1]
    assert subject == "New post published: <Big> news"


async def test_notifier_tallies_failures(db, session_factory, mailer):
    alice = await add_user(db, "alice", "alice@example.com")
    for i in range(7):
        await add_user(db, f"reader{i}", f"reader{i}@example.com")
    mailer.fail_for = {"reader3@example.com"}

    notifier = NewPostNotifier(session_factory, mailer, base_url="http://test", batch_size=5, batch_delay=0)
    report = await notifier(make_event(alice.id))

    assert len(report.results) == 7
    assert report.success_count == 6
    assert report.fail_count == 1
    failed = [r for r in report.results if not r.success]
    assert failed[0].recipient == "reader3@example.com"
    assert "mailbox unavailable" in failed[0].error


async def test_notifier_skips_without_mailer(db, session_factory):
    alice = await add_user(db, "alice", "alice@example.com")
    notifier = NewPostNotifier(session_factory, None, base_url="http://test")
    assert await notifier(make_event(alice.id)) is None


async def test_send_bulk_batches(mailer):
    recipients = [f"user{i}@example.com" for i in range(12)]
    report = await mailer.send_bulk(recipients, "subject", "<p>hi</p>", batch_size=5, batch_delay=0)
    assert [r.recipient for r in report.results] == recipients
    assert report.success_count == 12


def test_smtp_message_headers():
    mailer = SMTPMailer("smtp.example.com", from_email="noreply@example.com", from_name="Post Management System")
    msg = mailer._build_message("bob@example.com", "Hello", "<p>hi</p>")
    assert msg["To"] == "bob@example.com"
    assert msg["Subject"] == "Hello"
    assert msg["From"] == "Post Management System <noreply@example.com>"
    assert msg.get_body(preferencelist=("html",)).get_content().strip() == "<p>hi</p>"


def test_smtp_mailer_disabled_without_host():
    assert SMTPMailer.from_settings() is None


def test_smtp_client_settings():
    implicit = SMTPMailer("smtp.example.com", 465, use_ssl=True, timeout=5)._client()
    assert isinstance(implicit, aiosmtplib.SMTP)
    assert implicit.hostname == "smtp.example.com"
    assert implicit.port == 465
    assert implicit.use_tls is True

    plain = SMTPMailer("smtp.example.com", 587)._client()
    assert plain.use_tls is False


async def test_smtp_verify_reports_unreachable_server():
    mailer = SMTPMailer("127.0.0.1", 1, starttls=False, timeout=2)
    assert await mailer.verify() is False


async def test_smtp_delivery_failure_becomes_a_result():
    mailer = SMTPMailer("127.0.0.1", 1, starttls=False, timeout=2)
    result = await mailer.send("bob@example.com", "Hello", "<p>hi</p>")
    assert result.success is False
    assert result.recipient == "bob@example.com"


async def test_test_email_endpoint(client, admin, signup, mailer):
    _, admin_headers = admin
    resp = await client.get("/test-email", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["message"] == "Email configuration is valid"

    mailer.verified = False
    resp = await client.get("/test-email", headers=admin_headers)
    assert resp.json()["success"] is False

    _, user_headers = await signup("alice")
    assert (await client.get("/test-email", headers=user_headers)).status_code == 403


async def test_root_and_unknown_route(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["message"] == "Welcome to Post Management System API"

    resp = await client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "message": "Route not found",
        "error": {"requestedUrl": "/api/nothing-here"},
    }
