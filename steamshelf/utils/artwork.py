"""Artwork URL templates and the image fallback chain.

A game's artwork is tried in a fixed order when the current image can't be
shown:

    library_600x900 (primary) -> header -> icon (if known) -> placeholder

The chain only moves forward and the placeholder is a fixed point, so a game
settles after at most three failures. No state is kept here; the current
position is whatever reference the game is displaying.
"""

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

STEAM_CDN = "https://cdn.cloudflare.steamstatic.com/steam/apps"
STEAM_ICON_CDN = "https://media.steampowered.com/steamcommunity/public/images/apps"

PRIMARY_IMAGE_NAME = "library_600x900.jpg"
HEADER_IMAGE_NAME = "header.jpg"

PLACEHOLDER_IMAGE_URL = (
    "https://community.cloudflare.steamstatic.com/public/images/applications/store/defaultappimage.gif"
)


def get_primary_image_url(app_id: int) -> str:
    """Portrait library artwork (600x900)."""
    return f"{STEAM_CDN}/{app_id}/{PRIMARY_IMAGE_NAME}"


def get_header_image_url(app_id: int) -> str:
    """Store header artwork (460x215)."""
    return f"{STEAM_CDN}/{app_id}/{HEADER_IMAGE_NAME}"


def get_icon_url(app_id: int, icon_hash: Optional[str]) -> str:
    """Community icon for a game, or "" when the listing has no icon hash."""
    if not icon_hash:
        return ""
    return f"{STEAM_ICON_CDN}/{app_id}/{icon_hash}.jpg"


def is_primary_reference(ref: Optional[str], app_id: int) -> bool:
    """True if ref is the primary artwork, remote or a locally cached copy of it."""
    if not ref:
        return False
    if ref == get_primary_image_url(app_id) or ref.endswith(f"/{PRIMARY_IMAGE_NAME}"):
        return True
    # The local image cache only ever holds primary artwork ({app_id}.jpg)
    return Path(ref).name == f"{app_id}.jpg" and not ref.startswith(("http://", "https://"))


def is_header_reference(ref: Optional[str], app_id: int) -> bool:
    if not ref:
        return False
    return ref == get_header_image_url(app_id) or ref.endswith(f"/{HEADER_IMAGE_NAME}")


def get_fallback_image_url(app_id: int, current_url: Optional[str], icon_url: Optional[str]) -> str:
    """Get the next image reference to try after current_url failed to load.

    Args:
        app_id: Steam app ID of the game
        current_url: Reference that just failed (may be None)
        icon_url: The game's icon reference, "" when it has none

    Returns:
        Header image after the primary artwork, the icon after the header
        image (when there is one), otherwise the placeholder
    """
    if is_primary_reference(current_url, app_id):
        return get_header_image_url(app_id)

    if is_header_reference(current_url, app_id) and icon_url:
        return icon_url

    return PLACEHOLDER_IMAGE_URL
