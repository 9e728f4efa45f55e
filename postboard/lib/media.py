"""Public URL and user-summary formatting for API responses."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from postboard.config import get_settings

if TYPE_CHECKING:
    from postboard.config import MediaConfig
    from postboard.db.models import Media, User

UPLOADTHING_KEY_PREFIX = "ut_"


@dataclass(frozen=True)
class UserSummary:
    """Non-sensitive user fields safe to embed in any response."""

    id: int
    full_name: str | None
    avatar_url: str | None
    avatarUrl: str | None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "avatar_url": self.avatar_url,
            "avatarUrl": self.avatarUrl,
        }


def _media_config(config: MediaConfig | None) -> MediaConfig:
    return config if config is not None else get_settings().media


def url_for_key(key: str, config: MediaConfig | None = None) -> str:
    """Resolve a storage key on whichever file host issued it."""
    config = _media_config(config)
    if key.startswith(UPLOADTHING_KEY_PREFIX):
        return f"{config.uploadthing_base_url}{key}"
    return f"{config.image_base_url}{key}"


def format_image_url(
    image_id: int | None,
    image_url: str | None,
    media: Media | None,
    config: MediaConfig | None = None,
) -> str | None:
    """Pick the public URL of a post image.

    A direct ``image_url`` wins when no media row is linked. Otherwise the
    media's stored URL is used, falling back to its key on the file host.
    """
    if image_id is None and image_url:
        return image_url
    if media is not None:
        if media.url:
            return media.url
        if media.key:
            return url_for_key(media.key, config)
        return None
    return image_url or None


def summarize_user(user: User | None, config: MediaConfig | None = None) -> UserSummary | None:
    if user is None:
        return None
    config = _media_config(config)
    return UserSummary(
        id=user.id,
        full_name=user.full_name,
        avatar_url=user.avatar_url,
        avatarUrl=f"{config.image_base_url}{user.avatar}" if user.avatar else None,
    )
