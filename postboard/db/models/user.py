from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from postboard.db.base import Base


class User(Base):
    """Author and reactor account. Credentials live outside this service."""

    __tablename__ = "users"

    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    avatar_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    # Storage key of an uploaded avatar, resolved against the media base URL
    avatar: Mapped[str | None] = mapped_column(String(512), nullable=True)
