"""
Task category to model tier routing.

The router only decides the tier. Each provider owns its own
``TIER_TO_MODEL`` table, so providers can swap underlying models
without touching calling code.
"""

from enum import Enum
from typing import Dict, Union


class ModelTier(str, Enum):
    """Coarse quality/cost buckets."""
    FAST = "fast"
    STANDARD = "standard"
    ADVANCED = "advanced"


class Category(str, Enum):
    """Task categories assigned by the orchestrator."""
    VISUAL_ENGINEERING = "visual-engineering"
    ULTRABRAIN = "ultrabrain"
    ARTISTRY = "artistry"
    QUICK = "quick"
    UNSPECIFIED_LOW = "unspecified-low"
    UNSPECIFIED_HIGH = "unspecified-high"
    WRITING = "writing"


CATEGORY_TIERS: Dict[Category, ModelTier] = {
    Category.QUICK: ModelTier.FAST,
    Category.UNSPECIFIED_LOW: ModelTier.FAST,
    Category.VISUAL_ENGINEERING: ModelTier.STANDARD,
    Category.WRITING: ModelTier.STANDARD,
    Category.ARTISTRY: ModelTier.ADVANCED,
    Category.ULTRABRAIN: ModelTier.ADVANCED,
    Category.UNSPECIFIED_HIGH: ModelTier.ADVANCED,
}


def category_to_model_tier(category: Union[Category, str, None]) -> ModelTier:
    """
    Map a task category to a model tier.

    Total and pure. Unknown categories fall back to ``STANDARD``
    rather than failing.

    Args:
        category: Category enum member or its string value

    Returns:
        The tier for that category
    """
    if isinstance(category, str) and not isinstance(category, Category):
        try:
            category = Category(category)
        except ValueError:
            return ModelTier.STANDARD
    return CATEGORY_TIERS.get(category, ModelTier.STANDARD)
