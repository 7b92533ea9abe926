"""Age bracket partition used for content targeting."""

from __future__ import annotations

import math
from typing import Optional, Tuple

from signage.types import AgeCategory

AGE_CATEGORIES: Tuple[AgeCategory, ...] = (
    AgeCategory("Kids", "5-10", 5, 10),
    AgeCategory("Teen", "11-15", 11, 15),
    AgeCategory("Young Adults", "16-22", 16, 22),
    AgeCategory("Adults", "23-35", 23, 35),
    AgeCategory("Senior Adults", "36-50", 36, 50),
)


def round_age(age: float) -> int:
    """Round half-up, so 22.5 lands in the older bracket."""
    return int(math.floor(age + 0.5))


def age_category(age: int) -> Optional[AgeCategory]:
    """Return the bracket containing ``age`` or None when outside every range."""
    for bracket in AGE_CATEGORIES:
        if bracket.contains(age):
            return bracket
    return None


def category_slug(category: str) -> str:
    """Convert a category name ("Young Adults") into its URL slug ("young-adults")."""
    return category.strip().lower().replace(" ", "-")
