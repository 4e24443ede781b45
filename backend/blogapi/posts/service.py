# backend/blogapi/posts/service.py
import csv
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..cache import PostCache, list_cache_key, detail_cache_key
from ..events import EventBus, AuthorRef, PostCreated, PostUpdated, PostDeleted
from ..exceptions import Forbidden, InternalError, NotFound, ValidationError
from ..models import ApiResponse, Pagination, as_utc
from ..users.models import User
from ..users.service import like_pattern
from .models import Post, PostCategory
from .schemas import PostCreate, PostPatch, PostOut, PostListData, ExportFilters, parse_form
from .storage import save_thumbnail, delete_thumbnail

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "createdAt": Post.created_at,
    "updatedAt": Post.updated_at,
    "title": Post.title,
    "category": Post.category,
}

CSV_HEADER = [
    "ID", "Title", "Content", "Category",
    "Author Username", "Author Full Name", "Author Email",
    "Thumbnail", "Created At", "Updated At",
]


def parse_category(category: Optional[str]) -> Optional[PostCategory]:
    """`None`, blank and "all" mean no category filter."""
    if category is None or not category.strip() or category.strip().lower() == "all":
        return None
    try:
        return PostCategory(category.strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid category: {category}")


def _author_ref(post: Post) -> AuthorRef:
    return AuthorRef(id=post.author.id, username=post.author.username, full_name=post.author.full_name)


async def _load_post(db: AsyncSession, post_id: str) -> Optional[Post]:
    result = await db.execute(
        select(Post)
        .options(selectinload(Post.author))
        .where(Post.id == post_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_owned_post(db: AsyncSession, post_id: str, caller: User, action: str) -> Post:
    post = await _load_post(db, post_id)
    if not post:
        raise NotFound("Post not found")
    if post.author_id != caller.id:
        raise Forbidden(f"You can only {action} your own posts")
    return post


async def list_posts(
    db: AsyncSession,
    cache: PostCache,
    *,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "createdAt",
    order: str = "desc",
    category: Optional[str] = None,
    search: Optional[str] = None,
) -> Tuple[Dict[str, Any], bool]:
    """
    One page of posts as a ready-to-send envelope, plus whether it came from cache.

    The cached value is the serialized envelope itself, so a hit returns exactly
    the bytes a miss would have produced for the same query.
    """
    category_filter = parse_category(category)
    search = search.strip() if search else None

    key = list_cache_key(
        page, limit, sort_by, order,
        category_filter.value if category_filter else None,
        search,
    )
    cached = await cache.get(key)
    if cached is not None:
        return cached, True

    conditions = []
    if category_filter is not None:
        conditions.append(Post.category == category_filter)
    if search:
        pattern = like_pattern(search)
        conditions.append(or_(
            Post.title.ilike(pattern, escape="\\"),
            Post.content.ilike(pattern, escape="\\"),
        ))

    total = (await db.execute(
        select(func.count()).select_from(Post).where(*conditions)
    )).scalar_one()

    column = SORT_COLUMNS[sort_by]
    ordering = column.asc() if order == "asc" else column.desc()
    result = await db.execute(
        select(Post)
        .options(selectinload(Post.author))
        .where(*conditions)
        .order_by(ordering, Post.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    posts = result.scalars().all()

    payload = ApiResponse(
        message="Posts retrieved successfully",
        data=PostListData(
            posts=[PostOut.model_validate(p) for p in posts],
            pagination=Pagination.build(page=page, limit=limit, total=total),
        ),
    ).model_dump(mode="json", by_alias=True)
    await cache.set(key, payload, cache.list_ttl)
    return payload, False


async def get_post(db: AsyncSession, cache: PostCache, post_id: str) -> Tuple[Dict[str, Any], bool]:
    key = detail_cache_key(post_id)
    cached = await cache.get(key)
    if cached is not None:
        return cached, True

    post = await _load_post(db, post_id)
    if not post:
        raise NotFound("Post not found")

    payload = ApiResponse(
        message="Post retrieved successfully",
        data=PostOut.model_validate(post),
    ).model_dump(mode="json", by_alias=True)
    await cache.set(key, payload, cache.detail_ttl)
    return payload, False


async def create_post(
    db: AsyncSession,
    cache: PostCache,
    events: EventBus,
    *,
    author: User,
    data: PostCreate,
    thumbnail: Optional[UploadFile] = None,
) -> PostOut:
    thumbnail_path = await save_thumbnail(thumbnail) if thumbnail else None

    post = Post(
        title=data.title,
        content=data.content,
        category=data.category,
        author_id=author.id,
        thumbnail=thumbnail_path,
    )
    db.add(post)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        await delete_thumbnail(thumbnail_path)
        raise

    post = await _load_post(db, post.id)
    logger.info(f"Post created: {post.id} by {author.username}")

    events.publish(PostCreated(
        post_id=post.id,
        title=post.title,
        content=post.content,
        category=post.category.value,
        thumbnail=post.thumbnail,
        created_at=as_utc(post.created_at),
        author=_author_ref(post),
    ))
    # new posts are not written to the detail cache; the first read fills it
    await cache.invalidate_lists()
    return PostOut.model_validate(post)


async def update_post(
    db: AsyncSession,
    cache: PostCache,
    events: EventBus,
    *,
    post_id: str,
    caller: User,
    fields: Dict[str, Any],
    thumbnail: Optional[UploadFile] = None,
) -> PostOut:
    """
    Apply a partial update from raw form `fields`.
    Ownership is checked before the fields are validated, so a non-author
    gets 403 whatever they sent.
    """
    post = await _get_owned_post(db, post_id, caller, "update")
    patch = parse_form(PostPatch, **fields)

    changes = patch.model_dump(exclude_unset=True)
    remove_thumbnail = changes.pop("remove_thumbnail", False)

    previous_thumbnail = post.thumbnail
    new_thumbnail = await save_thumbnail(thumbnail) if thumbnail else None
    if new_thumbnail:
        post.thumbnail = new_thumbnail
    elif remove_thumbnail:
        post.thumbnail = None

    for field, value in changes.items():
        if value is not None:
            setattr(post, field, value)

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        await delete_thumbnail(new_thumbnail)
        raise

    if previous_thumbnail and post.thumbnail != previous_thumbnail:
        await delete_thumbnail(previous_thumbnail)

    post = await _load_post(db, post_id)
    logger.info(f"Post updated: {post.id} by {caller.username}")

    events.publish(PostUpdated(post_id=post.id, title=post.title, author=_author_ref(post)))
    await cache.invalidate_lists(detail_cache_key(post_id))
    return PostOut.model_validate(post)


async def delete_post(
    db: AsyncSession,
    cache: PostCache,
    events: EventBus,
    *,
    post_id: str,
    caller: User,
) -> None:
    post = await _get_owned_post(db, post_id, caller, "delete")
    event = PostDeleted(post_id=post.id, title=post.title, author=_author_ref(post))
    thumbnail_path = post.thumbnail

    await db.delete(post)
    await db.commit()
    await delete_thumbnail(thumbnail_path)
    logger.info(f"Post deleted: {post_id} by {caller.username}")

    events.publish(event)
    await cache.invalidate_lists(detail_cache_key(post_id))


def _csv_row(post: Post) -> List[str]:
    author = post.author
    return [
        post.id,
        post.title,
        post.content.replace("\r\n", " ").replace("\n", " ").replace(",", ";"),
        post.category.value,
        (author.username if author else None) or "Unknown",
        (author.full_name if author else None) or "N/A",
        (author.email if author else None) or "N/A",
        post.thumbnail or "N/A",
        as_utc(post.created_at).isoformat(),
        as_utc(post.updated_at).isoformat(),
    ]


def _write_csv(path: Path, rows: List[List[str]]) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        writer.writerows(rows)


async def export_posts_csv(
    db: AsyncSession,
    *,
    caller: User,
    filters: ExportFilters,
    export_dir: str,
) -> Tuple[Path, int]:
    """
    Write the matching posts to a CSV file under `export_dir`.
    Regular users always get their own posts only; admins may filter by author.
    Returns the file path and the number of rows written.
    """
    conditions = []
    if not caller.is_admin:
        conditions.append(Post.author_id == caller.id)
    elif filters.author:
        conditions.append(Post.author_id == filters.author)

    category_filter = parse_category(filters.category)
    if category_filter is not None:
        conditions.append(Post.category == category_filter)
    if filters.search and filters.search.strip():
        pattern = like_pattern(filters.search.strip())
        conditions.append(or_(
            Post.title.ilike(pattern, escape="\\"),
            Post.content.ilike(pattern, escape="\\"),
        ))
    if filters.start_date:
        conditions.append(Post.created_at >= as_utc(filters.start_date))
    if filters.end_date:
        conditions.append(Post.created_at <= as_utc(filters.end_date))

    result = await db.execute(
        select(Post)
        .options(selectinload(Post.author))
        .where(*conditions)
        .order_by(Post.created_at.desc(), Post.id)
    )
    posts = result.scalars().all()
    if not posts:
        raise NotFound("No posts found for export")

    target_dir = Path(export_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-").replace("+", "_")
    path = target_dir / f"posts_export_{timestamp}.csv"

    try:
        await run_in_threadpool(_write_csv, path, [_csv_row(p) for p in posts])
    except OSError as e:
        logger.exception(f"Export posts to CSV error: {e}")
        raise InternalError("Error exporting posts to CSV")
    logger.info(f"Posts exported to CSV by user: {caller.username}, Posts count: {len(posts)}")
    return path, len(posts)
