# backend/blogapi/posts/router.py
import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiofiles.os
from fastapi import APIRouter, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask

from ..cache import CacheDep
from ..config import settings
from ..database import SessionDep
from ..events import EventBusDep
from ..exceptions import ValidationError
from ..models import ApiResponse
from ..users.models import User as UserModel
from ..auth.dependencies import ActiveUser
from .schemas import PostCreate, PostOut, PostListData, ExportFilters, SortField, SortOrder, parse_form
from . import service as post_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["posts"])


def _cached_json(payload: dict, hit: bool, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(payload, status_code=status_code, headers={"X-Cache": "HIT" if hit else "MISS"})


def _upload_or_none(upload: Optional[UploadFile]) -> Optional[UploadFile]:
    # browsers send an empty file part when the input is left blank
    if upload is None or not upload.filename:
        return None
    return upload


async def remove_export_later(path: Path, delay: float) -> None:
    if delay > 0:
        await asyncio.sleep(delay)
    try:
        await aiofiles.os.remove(path)
        logger.info(f"Removed export file {path.name}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Export cleanup failed for {path}: {e}")


@router.get("", response_model=ApiResponse[PostListData])
async def list_posts(
    db: SessionDep,
    cache: CacheDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: SortField = Query("createdAt", alias="sortBy"),
    order: SortOrder = "desc",
    category: Optional[str] = None,
    search: Optional[str] = None,
):
    payload, hit = await post_service.list_posts(
        db, cache,
        page=page, limit=limit, sort_by=sort_by, order=order,
        category=category, search=search,
    )
    return _cached_json(payload, hit)


# declared before /{post_id} so "export" is not taken for an id
@router.get("/export", response_class=FileResponse)
async def export_posts(
    db: SessionDep,
    current_user: UserModel = ActiveUser,
    category: Optional[str] = None,
    search: Optional[str] = None,
    author: Optional[str] = None,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
):
    filters = ExportFilters(
        category=category, search=search, author=author,
        start_date=start_date, end_date=end_date,
    )
    path, _ = await post_service.export_posts_csv(
        db, caller=current_user, filters=filters, export_dir=settings.EXPORT_DIR,
    )
    return FileResponse(
        path,
        media_type="text/csv",
        filename=path.name,
        background=BackgroundTask(remove_export_later, path, settings.EXPORT_CLEANUP_DELAY_SECONDS),
    )


@router.get("/{post_id}", response_model=ApiResponse[PostOut])
async def get_post(post_id: str, db: SessionDep, cache: CacheDep):
    payload, hit = await post_service.get_post(db, cache, post_id)
    return _cached_json(payload, hit)


@router.post("", response_model=ApiResponse[PostOut], status_code=status.HTTP_201_CREATED)
async def create_post(
    db: SessionDep,
    cache: CacheDep,
    events: EventBusDep,
    current_user: UserModel = ActiveUser,
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
):
    if not (title and title.strip()) or not (content and content.strip()) or not (category and category.strip()):
        raise ValidationError("Title, content, and category are required")

    data = parse_form(PostCreate, title=title, content=content, category=category.strip().lower())
    post = await post_service.create_post(
        db, cache, events,
        author=current_user, data=data, thumbnail=_upload_or_none(thumbnail),
    )
    return ApiResponse(message="Post created successfully", data=post)


@router.put("/{post_id}", response_model=ApiResponse[PostOut])
async def update_post(
    post_id: str,
    db: SessionDep,
    cache: CacheDep,
    events: EventBusDep,
    current_user: UserModel = ActiveUser,
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    remove_thumbnail: bool = Form(False, alias="removeThumbnail"),
    thumbnail: Optional[UploadFile] = File(None),
):
    # blank values are treated as "not sent"
    fields = {
        name: value.strip().lower() if name == "category" else value
        for name, value in (("title", title), ("content", content), ("category", category))
        if value is not None and value.strip()
    }
    if remove_thumbnail:
        fields["remove_thumbnail"] = True

    post = await post_service.update_post(
        db, cache, events,
        post_id=post_id, caller=current_user, fields=fields, thumbnail=_upload_or_none(thumbnail),
    )
    return ApiResponse(message="Post updated successfully", data=post)


@router.delete("/{post_id}", response_model=ApiResponse[None])
async def delete_post(
    post_id: str,
    db: SessionDep,
    cache: CacheDep,
    events: EventBusDep,
    current_user: UserModel = ActiveUser,
):
    await post_service.delete_post(db, cache, events, post_id=post_id, caller=current_user)
    return ApiResponse(message="Post deleted successfully")
