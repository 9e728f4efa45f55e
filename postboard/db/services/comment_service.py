"""Comment service for CRUD operations on comments and replies."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.db.models import Comment, CommentRelation, RelationKind
from postboard.db.services.post_service import post_exists
from postboard.db.services.reaction_ledger import comment_ledger
from postboard.lib.exceptions import (
    InvalidArgumentError,
    StorageFailureError,
    TargetNotFoundError,
    require_id,
)
from postboard.lib.hooks import AFTER_COMMENT_CREATE, hooks
from postboard.lib.media import UserSummary, summarize_user


@dataclass
class CommentView:
    id: int
    post_id: int
    parent_id: int | None
    content: str
    created_at: datetime
    updated_at: datetime
    user: UserSummary | None
    likes: int
    dislikes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "postId": self.post_id,
            "parentId": self.parent_id,
            "content": self.content,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "user": self.user.to_dict() if self.user else None,
            "likes": self.likes,
            "dislikes": self.dislikes,
        }


async def comment_exists(db_session: AsyncSession, comment_id: int) -> bool:
    result = await db_session.execute(select(Comment.id).where(Comment.id == comment_id))
    return result.scalar_one_or_none() is not None


async def _to_views(db_session: AsyncSession, comments: list[Comment]) -> list[CommentView]:
    ledger = comment_ledger(db_session)
    ids = [c.id for c in comments]
    likes = await ledger.counts_for(ids, RelationKind.LIKED_BY)
    dislikes = await ledger.counts_for(ids, RelationKind.DISLIKED_BY)
    return [
        CommentView(
            id=c.id,
            post_id=c.post_id,
            parent_id=c.parent_id,
            content=c.content,
            created_at=c.created_at,
            updated_at=c.updated_at,
            user=summarize_user(c.user),
            likes=likes.get(c.id, 0),
            dislikes=dislikes.get(c.id, 0),
        )
        for c in comments
    ]


async def _get_comment(db_session: AsyncSession, comment_id: int) -> Comment | None:
    result = await db_session.execute(
        select(Comment).where(Comment.id == comment_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def create_comment(
    db_session: AsyncSession,
    post_id: Any,
    user_id: Any,
    content: str,
    parent_id: Any = None,
) -> CommentView:
    """Create a comment on a post, or a reply when ``parent_id`` is given.

    Raises:
        InvalidArgumentError: content or identifiers missing, or the parent
            comment belongs to another post
        TargetNotFoundError: the post or parent comment does not exist
    """
    post_id = require_id(post_id, "postId")
    user_id = require_id(user_id, "userId")
    if not content or not content.strip():
        raise InvalidArgumentError("Missing required field: content")

    if not await post_exists(db_session, post_id):
        raise TargetNotFoundError("post", post_id)

    if parent_id is not None:
        parent_id = require_id(parent_id, "parentId")
        parent = await _get_comment(db_session, parent_id)
        if parent is None:
            raise TargetNotFoundError("comment", parent_id)
        if parent.post_id != post_id:
            raise InvalidArgumentError("Parent comment belongs to a different post")

    comment = Comment(post_id=post_id, user_id=user_id, content=content, parent_id=parent_id)
    try:
        db_session.add(comment)
        await db_session.flush()
        comment_id = comment.id
        await db_session.commit()
    except SQLAlchemyError as exc:
        await db_session.rollback()
        raise StorageFailureError("Failed to create comment") from exc

    view = await get_comment_by_id(db_session, comment_id)
    await hooks.do_action(AFTER_COMMENT_CREATE, view)
    return view


async def get_comment_by_id(db_session: AsyncSession, comment_id: Any) -> CommentView | None:
    comment = await _get_comment(db_session, require_id(comment_id, "commentId"))
    if comment is None:
        return None
    return (await _to_views(db_session, [comment]))[0]


async def list_comments_for_post(db_session: AsyncSession, post_id: Any) -> list[CommentView]:
    """All comments and replies on a post, newest first."""
    result = await db_session.execute(
        select(Comment)
        .where(Comment.post_id == require_id(post_id, "postId"))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .execution_options(populate_existing=True)
    )
    return await _to_views(db_session, list(result.scalars().all()))


async def update_comment(db_session: AsyncSession, comment_id: Any, content: str) -> CommentView | None:
    comment_id = require_id(comment_id, "commentId")
    if not content or not content.strip():
        raise InvalidArgumentError("Missing required field: content")

    comment = await _get_comment(db_session, comment_id)
    if comment is None:
        return None

    comment.content = content
    try:
        await db_session.commit()
    except SQLAlchemyError as exc:
        await db_session.rollback()
        raise StorageFailureError(f"Failed to update comment {comment_id}") from exc
    return await get_comment_by_id(db_session, comment_id)


async def delete_comment(db_session: AsyncSession, comment_id: Any) -> bool:
    """Delete a comment, its replies and their reaction rows.

    Returns:
        True if the comment existed and was deleted
    """
    comment_id = require_id(comment_id, "commentId")
    if not await comment_exists(db_session, comment_id):
        return False

    # Collect the whole reply subtree
    doomed = [comment_id]
    frontier = [comment_id]
    while frontier:
        result = await db_session.execute(select(Comment.id).where(Comment.parent_id.in_(frontier)))
        frontier = list(result.scalars().all())
        doomed.extend(frontier)

    try:
        await db_session.execute(delete(CommentRelation).where(CommentRelation.parent_id.in_(doomed)))
        await db_session.execute(delete(Comment).where(Comment.id.in_(doomed)))
        await db_session.commit()
    except SQLAlchemyError as exc:
        await db_session.rollback()
        raise StorageFailureError(f"Failed to delete comment {comment_id}") from exc
    return True
