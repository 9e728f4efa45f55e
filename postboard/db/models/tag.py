from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from postboard.db.base import Base


class Tag(Base):
    __tablename__ = "tags"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
