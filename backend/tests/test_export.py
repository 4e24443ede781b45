import csv
import io
from datetime import timedelta
from pathlib import Path

from sqlalchemy import update

from blogapi.config import settings
from blogapi.posts.models import Post
from blogapi.posts.service import CSV_HEADER
from blogapi.users.models import utcnow


def read_csv(resp):
    return list(csv.reader(io.StringIO(resp.text)))


async def test_export_requires_auth(client):
    resp = await client.get("/api/posts/export")
    assert resp.status_code == 401


async def test_user_export_is_limited_to_own_posts(client, signup, create_post):
    alice, alice_headers = await signup("alice", email="alice@example.com", fullName="Alice L.")
    bob, bob_headers = await signup("bob")
    await create_post(alice_headers, title="A1")
    await create_post(alice_headers, title="A2")
    await create_post(bob_headers, title="B1")

    # the author filter is ignored for regular users
    resp = await client.get("/api/posts/export", params={"author": bob["id"]}, headers=alice_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    disposition = resp.headers["content-disposition"]
    assert disposition.startswith("attachment;")
    assert "posts_export_" in disposition

    rows = read_csv(resp)
    assert rows[0] == CSV_HEADER
    assert sorted(r[1] for r in rows[1:]) == ["A1", "A2"]
    assert {r[4] for r in rows[1:]} == {"alice"}
    assert {r[5] for r in rows[1:]} == {"Alice L."}
    assert {r[6] for r in rows[1:]} == {"alice@example.com"}


async def test_export_cleans_content_and_fills_missing_fields(client, signup, create_post):
    _, headers = await signup("bob")
    await create_post(headers, title="Notes", content="line one\nline two, with comma")

    rows = read_csv(await client.get("/api/posts/export", headers=headers))
    row = dict(zip(rows[0], rows[1]))
    assert row["Content"] == "line one line two; with comma"
    assert row["Author Full Name"] == "N/A"
    assert row["Author Email"] == "N/A"
    assert row["Thumbnail"] == "N/A"
    assert row["Created At"].endswith("+00:00")


async def test_admin_export_filters(client, signup, admin, create_post, db):
    alice, alice_headers = await signup("alice")
    _, bob_headers = await signup("bob")
    _, admin_headers = admin
    old = await create_post(alice_headers, title="Old tech", category="tech")
    await create_post(alice_headers, title="New health", category="health")
    await create_post(bob_headers, title="Bob tech", category="tech")

    await db.execute(update(Post).where(Post.id == old["id"]).values(created_at=utcnow() - timedelta(days=10)))
    await db.commit()

    rows = read_csv(await client.get("/api/posts/export", headers=admin_headers))
    assert len(rows) == 4

    rows = read_csv(await client.get("/api/posts/export", params={"author": alice["id"]}, headers=admin_headers))
    assert sorted(r[1] for r in rows[1:]) == ["New health", "Old tech"]

    rows = read_csv(await client.get("/api/posts/export", params={"category": "tech"}, headers=admin_headers))
    assert sorted(r[1] for r in rows[1:]) == ["Bob tech", "Old tech"]

    rows = read_csv(await client.get("/api/posts/export", params={"search": "HEALTH"}, headers=admin_headers))
    assert [r[1] for r in rows[1:]] == ["New health"]

    since = (utcnow() - timedelta(days=1)).isoformat()
    rows = read_csv(await client.get("/api/posts/export", params={"startDate": since}, headers=admin_headers))
    assert sorted(r[1] for r in rows[1:]) == ["Bob tech", "New health"]

    until = (utcnow() - timedelta(days=5)).isoformat()
    rows = read_csv(await client.get("/api/posts/export", params={"endDate": until}, headers=admin_headers))
    assert [r[1] for r in rows[1:]] == ["Old tech"]


async def test_export_with_no_posts(client, signup):
    _, headers = await signup("alice")
    resp = await client.get("/api/posts/export", headers=headers)
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "No posts found for export"}


async def test_export_file_is_removed_after_download(client, signup, create_post):
    _, headers = await signup("alice")
    await create_post(headers)

    resp = await client.get("/api/posts/export", headers=headers)
    assert resp.status_code == 200
    assert list(Path(settings.EXPORT_DIR).glob("posts_export_*.csv")) == []
