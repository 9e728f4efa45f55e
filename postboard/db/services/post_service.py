"""Post service for CRUD operations on posts and their tag links."""

from __future__ import annotations

import math
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.db.models import Comment, CommentRelation, Media, Post, PostRelation, RelationKind, Tag
from postboard.db.services.reaction_ledger import comment_ledger, post_ledger
from postboard.lib.exceptions import InvalidArgumentError, StorageFailureError, require_id
from postboard.lib.hooks import AFTER_POST_CREATE, AFTER_POST_DELETE, POST_VIEW, hooks
from postboard.lib.media import UserSummary, format_image_url, summarize_user

SortBy = Literal["created_at", "updated_at", "title"]
SortOrder = Literal["asc", "desc"]

_SORT_COLUMNS = {
    "created_at": Post.created_at,
    "updated_at": Post.updated_at,
    "title": Post.title,
}

_UNSET = object()  # Sentinel for distinguishing None from "not provided"


@dataclass(frozen=True)
class ImageUpload:
    """File metadata reported by the upload provider after a client-side upload."""

    file_key: str
    file_url: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None


@dataclass
class CommentPreview:
    id: int
    content: str
    likes: int
    created_at: datetime
    user: UserSummary | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "likes": self.likes,
            "created_at": self.created_at,
            "user": self.user.to_dict() if self.user else None,
        }


@dataclass
class PostView:
    id: int
    title: str
    question: str
    created_at: datetime
    updated_at: datetime
    image_url: str | None
    user: UserSummary | None
    like_count: int
    tags: list[dict[str, Any]] = field(default_factory=list)
    comment_count: int | None = None
    comments: list[CommentPreview] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "question": self.question,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "imageUrl": self.image_url,
            "user": self.user.to_dict() if self.user else None,
            "likeCount": self.like_count,
            "tags": self.tags,
        }
        if self.comment_count is not None:
            data["commentCount"] = self.comment_count
        if self.comments is not None:
            data["comments"] = [c.to_dict() for c in self.comments]
        return data


@dataclass(frozen=True)
class Pagination:
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
        }


@dataclass
class PostPage:
    posts: list[PostView]
    pagination: Pagination

    def to_dict(self) -> dict[str, Any]:
        return {
            "posts": [p.to_dict() for p in self.posts],
            "pagination": self.pagination.to_dict(),
        }


def _build_view(post: Post, like_count: int, tags: list[dict[str, Any]]) -> PostView:
    return PostView(
        id=post.id,
        title=post.title,
        question=post.question,
        created_at=post.created_at,
        updated_at=post.updated_at,
        image_url=format_image_url(post.image_id, post.image_url, post.media),
        user=summarize_user(post.user),
        like_count=like_count,
        tags=tags,
    )


async def post_exists(db_session: AsyncSession, post_id: int) -> bool:
    result = await db_session.execute(select(Post.id).where(Post.id == post_id))
    return result.scalar_one_or_none() is not None


async def _load_tags(db_session: AsyncSession, post_ids: list[int]) -> dict[int, list[dict[str, Any]]]:
    """Tag summaries keyed by post id."""
    tags: dict[int, list[dict[str, Any]]] = defaultdict(list)
    if not post_ids:
        return tags
    result = await db_session.execute(
        select(PostRelation)
        .where(PostRelation.parent_id.in_(post_ids), PostRelation.path == RelationKind.TAGS)
        .order_by(PostRelation.id)
    )
    for rel in result.scalars().all():
        if rel.tag is not None:
            tags[rel.parent_id].append({"id": rel.tag.id, "name": rel.tag.name})
    return tags


async def _validate_tag_ids(db_session: AsyncSession, tag_ids: list[Any]) -> list[int]:
    ids = list(dict.fromkeys(require_id(t, "tags") for t in tag_ids))
    if not ids:
        return ids
    result = await db_session.execute(select(Tag.id).where(Tag.id.in_(ids)))
    missing = set(ids) - set(result.scalars().all())
    if missing:
        raise InvalidArgumentError(f"Unknown tag ids: {sorted(missing)}")
    return ids


def _media_from_upload(image: ImageUpload) -> Media:
    return Media(
        alt=image.file_name or "Post image",
        key=image.file_key,
        url=image.file_url,
        filename=image.file_name or f"upload-{int(time.time() * 1000)}",
        mime_type=image.file_type or "image/jpeg",
        filesize=image.file_size or 0,
    )


async def create_post(
    db_session: AsyncSession,
    title: str,
    question: str = "",
    user_id: int | None = None,
    tags: list[Any] | None = None,
    image_id: int | None = None,
    image_url: str | None = None,
    image: ImageUpload | None = None,
) -> PostView:
    """Create a post, its optional media row and its tag links in one transaction.

    Args:
        db_session: Database session
        title: Post title
        question: Post body
        user_id: Author user ID (optional)
        tags: Tag IDs to link
        image_id: Existing media ID
        image_url: Direct image URL, used only when no media is linked
        image: Upload metadata; creates a media row when ``image_id`` is absent

    Returns:
        The created post as a PostView
    """
    if not title:
        raise InvalidArgumentError("Missing required field: title")
    tag_ids = await _validate_tag_ids(db_session, tags or [])

    try:
        if image is not None and image_id is None:
            media = _media_from_upload(image)
            db_session.add(media)
            await db_session.flush()
            image_id = media.id

        post = Post(
            title=title,
            question=question,
            user_id=user_id,
            image_id=image_id,
            image_url=image_url if image_id is None else None,
        )
        db_session.add(post)
        await db_session.flush()
        post_id = post.id

        for tag_id in tag_ids:
            db_session.add(PostRelation(parent_id=post_id, tags_id=tag_id, path=RelationKind.TAGS))
        await db_session.commit()
    except SQLAlchemyError as exc:
        await db_session.rollback()
        raise StorageFailureError("Failed to create post") from exc

    view = await get_post_by_id(db_session, post_id)
    await hooks.do_action(AFTER_POST_CREATE, view)
    return view


async def get_post_by_id(db_session: AsyncSession, post_id: Any) -> PostView | None:
    """Get a single post with its like count, tags, image URL and author."""
    post_id = require_id(post_id, "postId")
    result = await db_session.execute(
        select(Post).where(Post.id == post_id).execution_options(populate_existing=True)
    )
    post = result.scalar_one_or_none()
    if post is None:
        return None

    like_count = await post_ledger(db_session).count_reactions(post.id, RelationKind.LIKED_BY)
    tags = await _load_tags(db_session, [post.id])
    view = _build_view(post, like_count, tags.get(post.id, []))
    return await hooks.apply_filters(POST_VIEW, view, post)


async def list_posts(
    db_session: AsyncSession,
    page: int = 1,
    limit: int = 10,
    sort_by: SortBy = "created_at",
    sort_order: SortOrder = "desc",
    user_id: int | None = None,
) -> PostPage:
    """List posts page by page with like counts, comment counts and comment previews.

    Pagination contract: ``total`` counts every matching post, ``page`` is
    1-based, and ``total_pages`` is ``ceil(total / limit)``.
    """
    if page < 1 or limit < 1:
        raise InvalidArgumentError("page and limit must be positive integers")
    if sort_by not in _SORT_COLUMNS:
        raise InvalidArgumentError(f"Cannot sort by {sort_by!r}")
    if sort_order not in ("asc", "desc"):
        raise InvalidArgumentError(f"Invalid sort order {sort_order!r}")

    filters = []
    if user_id is not None:
        filters.append(Post.user_id == user_id)

    total = (
        await db_session.execute(select(func.count()).select_from(Post).where(*filters))
    ).scalar_one()

    column = _SORT_COLUMNS[sort_by]
    query = (
        select(Post)
        .where(*filters)
        .order_by(column.asc() if sort_order == "asc" else column.desc(), Post.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    posts = list((await db_session.execute(query)).scalars().all())
    post_ids = [p.id for p in posts]

    like_counts = await post_ledger(db_session).counts_for(post_ids, RelationKind.LIKED_BY)
    tags = await _load_tags(db_session, post_ids)

    comments_by_post: dict[int, list[Comment]] = defaultdict(list)
    comment_likes: dict[int, int] = {}
    if post_ids:
        result = await db_session.execute(
            select(Comment)
            .where(Comment.post_id.in_(post_ids))
            .order_by(Comment.created_at.desc(), Comment.id.desc())
            .execution_options(populate_existing=True)
        )
        for comment in result.scalars().all():
            comments_by_post[comment.post_id].append(comment)
        comment_ids = [c.id for cs in comments_by_post.values() for c in cs]
        comment_likes = await comment_ledger(db_session).counts_for(comment_ids, RelationKind.LIKED_BY)

    views = []
    for post in posts:
        view = _build_view(post, like_counts.get(post.id, 0), tags.get(post.id, []))
        comments = comments_by_post.get(post.id, [])
        view.comment_count = len(comments)
        view.comments = [
            CommentPreview(
                id=c.id,
                content=c.content,
                likes=comment_likes.get(c.id, 0),
                created_at=c.created_at,
                user=summarize_user(c.user),
            )
            for c in comments
        ]
        views.append(view)

    return PostPage(posts=views, pagination=Pagination(total=total, page=page, limit=limit))


async def update_post(
    db_session: AsyncSession,
    post_id: Any,
    title: str | None = None,
    question: str | None = None,
    user_id: int | None = None,
    tags: list[Any] | None = None,
    image_id: int | None | object = _UNSET,
    image_url: str | None | object = _UNSET,
    image: ImageUpload | None = None,
) -> PostView | None:
    """Update a post. ``tags`` replaces every tag link when given.

    A new upload or ``image_id`` links media and clears the direct URL; an
    ``image_url`` without media unlinks any media.

    Returns:
        Updated PostView or None if the post does not exist
    """
    post_id = require_id(post_id, "postId")
    result = await db_session.execute(select(Post).where(Post.id == post_id))
    post = result.scalar_one_or_none()
    if post is None:
        return None
    tag_ids = await _validate_tag_ids(db_session, tags) if tags is not None else None

    try:
        new_image_id = image_id
        if image is not None and image_id in (_UNSET, None):
            media = _media_from_upload(image)
            db_session.add(media)
            await db_session.flush()
            new_image_id = media.id

        if new_image_id not in (_UNSET, None):
            post.image_id = require_id(new_image_id, "image_id")
            post.image_url = None
        elif image_url is not _UNSET and image_url:
            post.image_id = None
            post.image_url = image_url

        if title is not None:
            post.title = title
        if question is not None:
            post.question = question
        if user_id is not None:
            post.user_id = user_id

        if tag_ids is not None:
            await db_session.execute(
                delete(PostRelation).where(
                    PostRelation.parent_id == post_id, PostRelation.path == RelationKind.TAGS
                )
            )
            for tag_id in tag_ids:
                db_session.add(PostRelation(parent_id=post_id, tags_id=tag_id, path=RelationKind.TAGS))

        await db_session.commit()
    except SQLAlchemyError as exc:
        await db_session.rollback()
        raise StorageFailureError(f"Failed to update post {post_id}") from exc

    return await get_post_by_id(db_session, post_id)


async def delete_post(db_session: AsyncSession, post_id: Any) -> bool:
    """Delete a post together with its comments and every relation row.

    Returns:
        True if the post existed and was deleted
    """
    post_id = require_id(post_id, "postId")
    if not await post_exists(db_session, post_id):
        return False

    comment_ids = select(Comment.id).where(Comment.post_id == post_id)
    try:
        await db_session.execute(delete(CommentRelation).where(CommentRelation.parent_id.in_(comment_ids)))
        await db_session.execute(delete(Comment).where(Comment.post_id == post_id))
        await db_session.execute(delete(PostRelation).where(PostRelation.parent_id == post_id))
        await db_session.execute(delete(Post).where(Post.id == post_id))
        await db_session.commit()
    except SQLAlchemyError as exc:
        await db_session.rollback()
        raise StorageFailureError(f"Failed to delete post {post_id}") from exc

    await hooks.do_action(AFTER_POST_DELETE, post_id)
    return True
