"""Relation tables shared by reactions and tag links.

Each content table has a companion ``*_rels`` table whose rows link a parent
entity to either a user (``likedBy``/``dislikedBy``) or a tag (``tags``). The
``path`` column discriminates the kind of link, and the composite unique key
``(parent_id, user_id, path)`` guarantees a user holds at most one edge of
each reaction kind per parent. Tag rows leave ``user_id`` NULL, which unique
constraints treat as distinct.
"""

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from postboard.db.base import Base

if TYPE_CHECKING:
    from postboard.db.models.tag import Tag
    from postboard.db.models.user import User


class RelationKind(str, Enum):
    """Discriminator stored in the ``path`` column."""

    LIKED_BY = "likedBy"
    DISLIKED_BY = "dislikedBy"
    TAGS = "tags"

    @property
    def is_reaction(self) -> bool:
        return self in REACTION_KINDS


REACTION_KINDS = frozenset({RelationKind.LIKED_BY, RelationKind.DISLIKED_BY})

_relation_kind_type = SAEnum(
    RelationKind,
    native_enum=False,
    length=32,
    values_callable=lambda kinds: [k.value for k in kinds],
    validate_strings=True,
)


class PostRelation(Base):
    __tablename__ = "posts_rels"

    parent_id: Mapped[int] = mapped_column(
        ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    path: Mapped[RelationKind] = mapped_column(_relation_kind_type, nullable=False)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    user: Mapped["User | None"] = relationship("User", lazy="selectin")
    tags_id: Mapped[int | None] = mapped_column(
        ForeignKey("tags.id", ondelete="CASCADE"), nullable=True
    )
    tag: Mapped["Tag | None"] = relationship("Tag", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("parent_id", "user_id", "path", name="uq_posts_rels_parent_user_path"),
        UniqueConstraint("parent_id", "tags_id", "path", name="uq_posts_rels_parent_tag_path"),
        CheckConstraint(
            "(path = 'tags' AND tags_id IS NOT NULL) OR (path <> 'tags' AND user_id IS NOT NULL)",
            name="ck_posts_rels_path_target",
        ),
        Index("ix_posts_rels_parent_path", "parent_id", "path"),
    )


class CommentRelation(Base):
    __tablename__ = "comments_rels"

    parent_id: Mapped[int] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), nullable=False
    )
    path: Mapped[RelationKind] = mapped_column(_relation_kind_type, nullable=False)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    user: Mapped["User | None"] = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("parent_id", "user_id", "path", name="uq_comments_rels_parent_user_path"),
        CheckConstraint("user_id IS NOT NULL", name="ck_comments_rels_user"),
        Index("ix_comments_rels_parent_path", "parent_id", "path"),
    )
