"""
Category registry.

Maps each category name to its grounding context and to the courses column
holding its rank. Column identifiers are validated when the registry is
built; nothing downstream ever sees an unvalidated column name.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, field_validator

from .errors import InvalidRankColumn, UnknownCategory

logger = logging.getLogger(__name__)

RANK_COLUMN_PATTERN = re.compile(r'^[a-z0-9_]+$')


def validate_rank_column(column: str) -> str:
    """
    Check a rank column identifier against ^[a-z0-9_]+$.

    Returns:
        The column unchanged

    Raises:
        InvalidRankColumn: If the identifier does not match
    """
    if not isinstance(column, str) or not RANK_COLUMN_PATTERN.fullmatch(column):
        raise InvalidRankColumn(f"Invalid rank column name: {column!r}")
    return column


def rank_column_for_tag(tag: str) -> str:
    """
    Derive the rank column for a landing-page tag.

    Tags are URL-friendly (letters, digits, hyphens); hyphens become
    underscores so the column passes validation.
    """
    normalized = tag.strip().lower().replace('-', '_')
    return validate_rank_column(f"{normalized}_relevancy")


class Category(BaseModel):
    """One axis of relevance."""
    model_config = ConfigDict(frozen=True)

    name: str
    context: str
    rank_column: str

    @field_validator('rank_column')
    @classmethod
    def _check_column(cls, value: str) -> str:
        return validate_rank_column(value)


class CategoryRegistry:
    """
    Immutable name -> Category lookup.

    Usage:
        registry = CategoryRegistry.from_yaml('config/categories.yml')
        business = registry.get('Business')
        registry = registry.with_landing_pages(db.get_landing_pages())
    """

    def __init__(self, categories: Iterable[Category], version: int = 1):
        self._categories: Dict[str, Category] = {}
        columns = set()
        for category in categories:
            if category.name in self._categories:
                raise ValueError(f"Duplicate category name: {category.name}")
            if category.rank_column in columns:
                raise ValueError(f"Duplicate rank column: {category.rank_column}")
            self._categories[category.name] = category
            columns.add(category.rank_column)
        self.version = version

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'CategoryRegistry':
        entries = config.get('categories') or []
        if not entries:
            raise ValueError("No categories found in configuration")

        categories = [
            Category(
                name=entry['name'],
                context=' '.join(str(entry['context']).split()),
                rank_column=entry['rank_column'],
            )
            for entry in entries
        ]
        return cls(categories, version=int(config.get('version', 1)))

    @classmethod
    def from_yaml(cls, path) -> 'CategoryRegistry':
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}

        registry = cls.from_config(config)
        logger.info(f"Loaded {len(registry)} categories (version {registry.version}) from {path}")
        return registry

    def with_landing_pages(self, landing_pages: Iterable[Dict[str, Any]]) -> 'CategoryRegistry':
        """
        Return a new registry extended with landing-page categories.

        Each row needs tag, name, description and relevancy_column. Rows
        whose column fails validation, or that clash with an existing
        category, are skipped.
        """
        categories: List[Category] = list(self._categories.values())
        names = set(self._categories)
        columns = {c.rank_column for c in categories}

        for page in landing_pages:
            name = page.get('tag') or page.get('name')
            column = page.get('relevancy_column')
            try:
                validate_rank_column(column)
            except InvalidRankColumn:
                logger.error(f"Skipping landing page {name!r}: invalid relevancy column {column!r}")
                continue

            if name in names or column in columns:
                logger.debug(f"Landing page {name!r} already registered")
                continue

            context = (page.get('description') or '').strip() or f"AI courses relevant to {page.get('name') or name}"
            categories.append(Category(name=name, context=context, rank_column=column))
            names.add(name)
            columns.add(column)

        return CategoryRegistry(categories, version=self.version)

    def get(self, name: str) -> Category:
        try:
            return self._categories[name]
        except KeyError:
            raise UnknownCategory(name) from None

    def find(self, name: str) -> Optional[Category]:
        """Case-insensitive lookup by name or rank column, None if absent."""
        lowered = name.lower()
        for category in self._categories.values():
            if category.name.lower() == lowered or category.rank_column == lowered:
                return category
        return None

    @property
    def names(self) -> List[str]:
        return list(self._categories)

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories.values())

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, name: object) -> bool:
        return name in self._categories
