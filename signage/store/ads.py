"""Ad creative listing for the category chosen by the dominant-category verdict."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from signage.io_utils import list_images
from signage.types import FEMALE, MALE

LOGGER = logging.getLogger("signage.store.ads")

CATEGORY_FOLDERS: Dict[str, str] = {
    "kids": "kids",
    "teen": "teen",
    "young-adults": "young adults",
    "adults": "adults",
    "senior-adults": "senior adults",
    "common": "common",
}
# Only this folder is split further by gender
GENDERED_FOLDERS = {"adults"}
URL_PREFIX = "/asset/ads"


def list_ad_images(ads_root: Path, slug: str, gender: Optional[str] = None) -> List[str]:
    """Return URL paths of the creatives for ``slug`` (empty for unknown slugs)."""
    folder = CATEGORY_FOLDERS.get(slug)
    if folder is None:
        LOGGER.debug("Unknown ad category %r", slug)
        return []
    parts = [folder]
    if gender and folder in GENDERED_FOLDERS:
        gender = gender.lower()
        if gender not in (MALE, FEMALE):
            return []
        parts.append(gender)
    directory = Path(ads_root).joinpath(*parts)
    prefix = "/".join([URL_PREFIX, *parts])
    return [f"{prefix}/{path.name}" for path in list_images(directory)]
