"""Comment endpoints: reactions and CRUD."""

from typing import Any

from litestar import Controller, delete, get, patch, post
from litestar.exceptions import NotFoundException
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.db.models import RelationKind
from postboard.db.services import comment_service
from postboard.db.services.reaction_ledger import comment_ledger
from postboard.lib.exceptions import require_id


class CommentReactionBody(BaseModel):
    userId: Any = None


class CreateCommentBody(BaseModel):
    postId: Any = None
    userId: Any = None
    content: str = ""
    parentId: Any = None


class UpdateCommentBody(BaseModel):
    content: str = ""


class CommentController(Controller):
    path = "/comment"

    @post("/like-comment/{comment_id:int}", status_code=HTTP_200_OK)
    async def like(self, db_session: AsyncSession, comment_id: int, data: CommentReactionBody) -> dict:
        result = await comment_ledger(db_session).like(comment_id, require_id(data.userId, "userId"))
        return {"liked": result.active, "likeCount": result.count, "message": result.message}

    @post("/dislike-comment/{comment_id:int}", status_code=HTTP_200_OK)
    async def dislike(self, db_session: AsyncSession, comment_id: int, data: CommentReactionBody) -> dict:
        result = await comment_ledger(db_session).dislike(comment_id, require_id(data.userId, "userId"))
        return {"disliked": result.active, "dislikeCount": result.count, "message": result.message}

    @post("/unlike-comment/{comment_id:int}", status_code=HTTP_200_OK)
    async def unlike(self, db_session: AsyncSession, comment_id: int, data: CommentReactionBody) -> dict:
        """Remove the user's like; 404 when the comment does not exist."""
        result = await comment_ledger(db_session).unlike(comment_id, require_id(data.userId, "userId"))
        return {"message": result.message, "likes": result.count}

    @get("/{comment_id:int}/is-liked")
    async def is_liked(
        self, db_session: AsyncSession, comment_id: int, userId: str | None = None
    ) -> dict:
        liked = await comment_ledger(db_session).is_liked_by_user(comment_id, require_id(userId, "userId"))
        return {"liked": liked}

    @get("/{comment_id:int}/likes")
    async def likes(self, db_session: AsyncSession, comment_id: int) -> list[dict]:
        reactors = await comment_ledger(db_session).list_reactors(comment_id, RelationKind.LIKED_BY)
        return [r.to_dict() for r in reactors]

    @post("/create-comment", status_code=HTTP_201_CREATED)
    async def create_comment(self, db_session: AsyncSession, data: CreateCommentBody) -> dict:
        view = await comment_service.create_comment(
            db_session,
            post_id=data.postId,
            user_id=data.userId,
            content=data.content,
            parent_id=data.parentId,
        )
        return view.to_dict()

    @get("/{comment_id:int}")
    async def get_comment(self, db_session: AsyncSession, comment_id: int) -> dict:
        view = await comment_service.get_comment_by_id(db_session, comment_id)
        if view is None:
            raise NotFoundException("Comment not found")
        return view.to_dict()

    @get("/post/{post_id:int}")
    async def comments_for_post(self, db_session: AsyncSession, post_id: int) -> list[dict]:
        return [c.to_dict() for c in await comment_service.list_comments_for_post(db_session, post_id)]

    @patch("/update-comment/{comment_id:int}")
    async def update_comment(
        self, db_session: AsyncSession, comment_id: int, data: UpdateCommentBody
    ) -> dict:
        view = await comment_service.update_comment(db_session, comment_id, data.content)
        if view is None:
            raise NotFoundException("Comment not found")
        return view.to_dict()

    @delete("/delete-comment/{comment_id:int}", status_code=HTTP_200_OK)
    async def delete_comment(self, db_session: AsyncSession, comment_id: int) -> dict:
        if not await comment_service.delete_comment(db_session, comment_id):
            raise NotFoundException("Comment not found")
        return {"deleted": True}
