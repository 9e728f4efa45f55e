from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from postboard.db.base import Base

if TYPE_CHECKING:
    from postboard.db.models.media import Media
    from postboard.db.models.user import User


class Post(Base):
    """A question-style post, optionally illustrated by media or a direct image URL."""

    __tablename__ = "posts"

    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    user: Mapped["User | None"] = relationship("User", lazy="selectin")

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Either a linked media row or a direct URL, never both
    image_id: Mapped[int | None] = mapped_column(
        ForeignKey("media.id", ondelete="SET NULL"), nullable=True
    )
    media: Mapped["Media | None"] = relationship("Media", lazy="selectin")
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
