"""Category hierarchy helpers.

Categories form a shallow tree through ``parent_id``. The default tree ships
in ``settings/categories.json``; user categories are stored in the document
store next to it.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional

from . import db
from .models import Category
from .settings import get_setting, load_settings

logger = logging.getLogger(__name__)

UNCATEGORIZED_ID: str = get_setting('categories', 'uncategorized_id', default='uncategorized')
TRANSFER_ID = 'transfer'


def default_categories() -> List[Category]:
    """Return fresh copies of the built-in categories."""
    return [Category.from_dict(dict(entry)) for entry in load_settings('categories')['defaults']]


DEFAULT_CATEGORIES: List[Category] = default_categories()


def normalize_category_id(category_id: Optional[str]) -> str:
    if category_id is None:
        return UNCATEGORIZED_ID
    cleaned = str(category_id).strip()
    return cleaned or UNCATEGORIZED_ID


def build_index(categories: Iterable[Category]) -> Dict[str, Category]:
    return {category.id: category for category in categories}


def get_children(categories: Iterable[Category], parent_id: str) -> List[Category]:
    return sorted_categories(c for c in categories if c.parent_id == parent_id)


def root_of(categories: Iterable[Category], category_id: str) -> str:
    """Walk up the parent chain and return the top-level category id.

    Unknown parents end the walk; cycles stop at the first repeated id.
    """
    index = build_index(categories)
    current = category_id
    seen = set()
    while current in index and index[current].parent_id and current not in seen:
        seen.add(current)
        parent = index[current].parent_id
        if parent not in index:
            break
        current = parent
    return current


def sorted_categories(categories: Iterable[Category]) -> List[Category]:
    return sorted(
        categories,
        key=lambda c: (c.order if c.order is not None else float('inf'), c.name.lower()),
    )


def validate_category_id(category_id: Optional[str], categories: Iterable[Category]) -> str:
    """Return the normalized id, raising ``ValueError`` when it is unknown."""
    normalized = normalize_category_id(category_id)
    index = build_index(categories)
    if normalized not in index:
        raise ValueError(f"Unknown category id: {normalized}")
    return normalized


def validate_parent(category: Category, categories: Iterable[Category]) -> None:
    """Reject parents that are missing or that would create a cycle."""
    if not category.parent_id:
        return
    index = build_index(categories)
    if category.parent_id == category.id:
        raise ValueError("A category cannot be its own parent")
    if category.parent_id not in index:
        raise ValueError(f"Unknown parent category: {category.parent_id}")
    current = category.parent_id
    seen = set()
    while current and current not in seen:
        if current == category.id:
            raise ValueError(f"Parent {category.parent_id} would create a cycle")
        seen.add(current)
        parent = index.get(current)
        current = parent.parent_id if parent else None


def ensure_mutable(category: Category) -> None:
    if category.is_system:
        raise ValueError(f"System category '{category.id}' cannot be changed")


def rollup_totals(totals: Mapping[str, float], categories: Iterable[Category]) -> Dict[str, float]:
    """Add every child's total into its top-level parent.

    Ids missing from ``categories`` keep their own bucket.
    """
    categories = list(categories)
    rolled: Dict[str, float] = {}
    for category_id, amount in totals.items():
        root = root_of(categories, category_id)
        rolled[root] = rolled.get(root, 0.0) + float(amount)
    return rolled


def budgeted_categories(categories: Iterable[Category]) -> List[Category]:
    return [c for c in categories if c.budget is not None and c.budget > 0]


def display_name(category_id: str, categories: Iterable[Category]) -> str:
    category = build_index(categories).get(category_id)
    return category.name if category else category_id


# --- persistence ----------------------------------------------------------

CATEGORY_COLLECTION = 'categories'


def load_categories() -> List[Category]:
    """Built-in categories overlaid with the stored ones, in display order."""
    merged = build_index(default_categories())
    for data in db.list_documents(CATEGORY_COLLECTION):
        category = Category.from_dict(data)
        merged[category.id] = category
    return sorted_categories(merged.values())


def save_category(category: Category) -> Category:
    if not category.id or not category.name or not category.name.strip():
        raise ValueError("A category needs an id and a name")
    existing = build_index(load_categories())
    current = existing.get(category.id)
    if current is not None and current.is_system:
        raise ValueError(f"System category '{category.id}' cannot be changed")
    validate_parent(category, list(existing.values()) + [category])
    db.put_document(CATEGORY_COLLECTION, category.id, category.to_dict())
    logger.info("Saved category %s", category.id)
    return category


def delete_category(category_id: str) -> bool:
    """Delete a stored category; system categories raise and built-ins are never stored."""
    index = build_index(load_categories())
    category = index.get(category_id)
    if category is None:
        return False
    ensure_mutable(category)
    if any(c.parent_id == category_id for c in index.values()):
        raise ValueError(f"Category '{category_id}' still has sub-categories")
    return db.delete_document(CATEGORY_COLLECTION, category_id)
