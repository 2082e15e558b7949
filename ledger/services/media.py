"""
Media URL resolution for content cards.

Stored paths that are already absolute URLs are used verbatim; bucket-relative
paths resolve to the storage service's public object URL; cards without an
image fall back to a fixed placeholder.
"""

from collections.abc import Iterable

from ledger.config import settings
from ledger.models.api import MediaType
from ledger.models.domain import MediaCount, MediaItem

PLACEHOLDER_IMAGE = (
    "data:image/svg+xml;base64,PHN2ZyB3aWR0aD0iNjAwIiBoZWlnaHQ9IjgwMCIgeG1sbnM9Imh0dHA6Ly93"
    "d3cudzMub3JnLzIwMDAvc3ZnIj48cmVjdCB3aWR0aD0iNjAwIiBoZWlnaHQ9IjgwMCIgZmlsbD0iIzI2MjYyNiIv"
    "Pjx0ZXh0IHg9IjUwJSIgeT0iNTAlIiBmb250LWZhbWlseT0iQXJpYWwiIGZvbnQtc2l6ZT0iMjQiIGZpbGw9IiM2"
    "NjYiIHRleHQtYW5jaG9yPSJtaWRkbGUiIGR5PSIuM2VtIj5ObyBJbWFnZTwvdGV4dD48L3N2Zz4="
)

DEFAULT_PROFILE_PICTURE = "https://images.unsplash.com/photo-1535713875002-d1d0cf377fde?w=150"


def resolve_public_url(
    storage_path: str | None,
    base_url: str | None = None,
    bucket: str | None = None,
) -> str:
    """
    Resolve a stored media path to a URL the client can load.

    >>> resolve_public_url("https://cdn.example.com/a.jpg")
    'https://cdn.example.com/a.jpg'
    """
    if not storage_path:
        return PLACEHOLDER_IMAGE
    if storage_path.startswith("http"):
        return storage_path

    base_url = (base_url or settings.storage_public_url).rstrip("/")
    bucket = bucket or settings.storage_bucket
    clean_path = storage_path.removeprefix(f"{bucket}/").lstrip("/")
    return f"{base_url}/storage/v1/object/public/{bucket}/{clean_path}"


def count_media(media: Iterable[MediaItem]) -> MediaCount:
    """Count images and videos."""
    images = 0
    videos = 0
    for item in media:
        if item.media_type == MediaType.IMAGE:
            images += 1
        elif item.media_type == MediaType.VIDEO:
            videos += 1
    return MediaCount(images=images, videos=videos)


def cover_image_url(media: Iterable[MediaItem]) -> str:
    """URL of the first image by display order, or the placeholder."""
    images = sorted(
        (m for m in media if m.media_type == MediaType.IMAGE),
        key=lambda m: m.display_order,
    )
    if not images:
        return PLACEHOLDER_IMAGE
    return resolve_public_url(images[0].storage_path)
