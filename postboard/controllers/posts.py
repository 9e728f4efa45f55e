"""Post endpoints: reactions, CRUD and feeds."""

from typing import Any

from litestar import Controller, delete, get, post, put
from litestar.exceptions import NotFoundException
from litestar.status_codes import HTTP_200_OK, HTTP_201_CREATED
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from postboard.db.models import RelationKind
from postboard.db.services import comment_service, post_service
from postboard.db.services.post_service import ImageUpload
from postboard.db.services.reaction_ledger import post_ledger
from postboard.lib.exceptions import require_id


class PostReactionBody(BaseModel):
    postId: Any = None
    userId: Any = None


class ImageBody(BaseModel):
    fileKey: str
    fileUrl: str | None = None
    fileName: str | None = None
    fileType: str | None = None
    fileSize: int | None = None

    def to_upload(self) -> ImageUpload:
        return ImageUpload(
            file_key=self.fileKey,
            file_url=self.fileUrl,
            file_name=self.fileName,
            file_type=self.fileType,
            file_size=self.fileSize,
        )


class CreatePostBody(BaseModel):
    title: str = ""
    question: str = ""
    userId: Any = None
    tags: list[Any] | None = None
    imageId: Any = None
    imageUrl: str | None = None
    image: ImageBody | None = None


class EditPostBody(BaseModel):
    postId: Any = None
    title: str | None = None
    question: str | None = None
    userId: Any = None
    tags: list[Any] | None = None
    imageId: Any = None
    imageUrl: str | None = None
    image: ImageBody | None = None


class CommentFields(BaseModel):
    content: str = ""
    userId: Any = None
    parentId: Any = None


class CommentPostBody(BaseModel):
    """``comment`` is either the content string or the full comment object."""

    postId: Any = None
    userId: Any = None
    comment: CommentFields | str | None = None

    def fields(self) -> CommentFields:
        if isinstance(self.comment, CommentFields):
            if self.comment.userId is None:
                return self.comment.model_copy(update={"userId": self.userId})
            return self.comment
        return CommentFields(content=self.comment or "", userId=self.userId)


def _optional_id(value: Any, name: str) -> int | None:
    return None if value is None else require_id(value, name)


class PostController(Controller):
    path = "/post"

    @post("/like", status_code=HTTP_200_OK)
    async def like(self, db_session: AsyncSession, data: PostReactionBody) -> dict:
        result = await post_ledger(db_session).like(
            require_id(data.postId, "postId"), require_id(data.userId, "userId")
        )
        return {"liked": result.active, "likeCount": result.count, "message": result.message}

    @post("/dislike", status_code=HTTP_200_OK)
    async def dislike(self, db_session: AsyncSession, data: PostReactionBody) -> dict:
        result = await post_ledger(db_session).dislike(
            require_id(data.postId, "postId"), require_id(data.userId, "userId")
        )
        return {"disliked": result.active, "dislikeCount": result.count, "message": result.message}

    @post("/unlike", status_code=HTTP_200_OK)
    async def unlike(self, db_session: AsyncSession, data: PostReactionBody) -> dict:
        result = await post_ledger(db_session).unlike(
            require_id(data.postId, "postId"), require_id(data.userId, "userId")
        )
        return {"message": result.message, "likes": result.count}

    @get("/{post_id:int}/is-liked")
    async def is_liked(self, db_session: AsyncSession, post_id: int, userId: str | None = None) -> dict:
        liked = await post_ledger(db_session).is_liked_by_user(post_id, require_id(userId, "userId"))
        return {"liked": liked}

    @get("/{post_id:int}/likes")
    async def likes(self, db_session: AsyncSession, post_id: int) -> list[dict]:
        reactors = await post_ledger(db_session).list_reactors(post_id, RelationKind.LIKED_BY)
        return [r.to_dict() for r in reactors]

    @post("/create-post", status_code=HTTP_201_CREATED)
    async def create_post(self, db_session: AsyncSession, data: CreatePostBody) -> dict:
        view = await post_service.create_post(
            db_session,
            title=data.title,
            question=data.question,
            user_id=_optional_id(data.userId, "userId"),
            tags=data.tags,
            image_id=_optional_id(data.imageId, "imageId"),
            image_url=data.imageUrl,
            image=data.image.to_upload() if data.image else None,
        )
        return view.to_dict()

    @post("/comment-post", status_code=HTTP_200_OK)
    async def comment_post(self, db_session: AsyncSession, data: CommentPostBody) -> dict:
        fields = data.fields()
        comment = await comment_service.create_comment(
            db_session,
            post_id=data.postId,
            user_id=fields.userId,
            content=fields.content,
            parent_id=fields.parentId,
        )
        post_view = await post_service.get_post_by_id(db_session, comment.post_id)
        return {**comment.to_dict(), "post": post_view.to_dict() if post_view else None}

    @get("/get-post")
    async def get_post(self, db_session: AsyncSession, id: str | None = None) -> dict:
        view = await post_service.get_post_by_id(db_session, require_id(id, "id"))
        if view is None:
            raise NotFoundException("Post not found")
        return view.to_dict()

    @get("/get-all-posts")
    async def get_all_posts(
        self,
        db_session: AsyncSession,
        page: int = 1,
        limit: int = 10,
        sortBy: str = "created_at",
        sortOrder: str = "desc",
    ) -> dict:
        result = await post_service.list_posts(
            db_session, page=page, limit=limit, sort_by=sortBy, sort_order=sortOrder
        )
        return result.to_dict()

    @get("/get-posts-by-user")
    async def get_posts_by_user(
        self,
        db_session: AsyncSession,
        userId: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        result = await post_service.list_posts(
            db_session, page=page, limit=limit, user_id=require_id(userId, "userId")
        )
        return result.to_dict()

    @put("/edit-post")
    async def edit_post(self, db_session: AsyncSession, data: EditPostBody) -> dict:
        changes: dict[str, Any] = {}
        if data.imageId is not None:
            changes["image_id"] = require_id(data.imageId, "imageId")
        if data.imageUrl is not None:
            changes["image_url"] = data.imageUrl

        view = await post_service.update_post(
            db_session,
            require_id(data.postId, "postId"),
            title=data.title,
            question=data.question,
            user_id=_optional_id(data.userId, "userId"),
            tags=data.tags,
            image=data.image.to_upload() if data.image else None,
            **changes,
        )
        if view is None:
            raise NotFoundException("Post not found")
        return view.to_dict()

    @delete("/delete-post", status_code=HTTP_200_OK)
    async def delete_post(self, db_session: AsyncSession, postId: str | None = None) -> dict:
        if not await post_service.delete_post(db_session, require_id(postId, "postId")):
            raise NotFoundException("Post not found")
        return {"deleted": True}
