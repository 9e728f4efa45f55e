from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from postboard.db.base import Base


class Media(Base):
    """Uploaded file metadata. The bytes live on the external file host."""

    __tablename__ = "media"

    alt: Mapped[str | None] = mapped_column(String(500), nullable=True)
    key: Mapped[str | None] = mapped_column(String(512), nullable=True, index=True)
    url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False, default="image/jpeg")
    filesize: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
