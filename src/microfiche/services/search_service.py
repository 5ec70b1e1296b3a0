"""Service for searching notes in the hierarchy."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

from microfiche.models.schema import NoteEntry
from microfiche.observability import traced
from microfiche.storage.hierarchy_store import HierarchyStore, StoreSnapshot

logger = logging.getLogger(__name__)


class SearchTier(str, Enum):
    """Which rule produced a search result."""

    EMPTY = "empty"  # Blank query, nothing searched
    CATEGORY = "category"  # Single word naming a category
    SUBCATEGORY = "subcategory"  # Whole query naming a subcategory
    CONTENT = "content"  # Every term found in path or note text
    FILTERED = "filtered"  # Field-filtered advanced search


@dataclass
class SearchResult:
    """Notes matched by a search, in snapshot order."""

    query: str
    tier: SearchTier
    entries: List[NoteEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[NoteEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> NoteEntry:
        return self.entries[index]


def _normalize_filter(value: Optional[str]) -> Optional[str]:
    """Lowercase a filter, treating None and blank strings as absent."""
    if value is None or not value.strip():
        return None
    return value.lower()


class SearchService:
    """Tiered, case-insensitive lookup over a HierarchyStore."""

    def __init__(self, store: HierarchyStore):
        self.store = store

    @traced("search")
    def search(self, query: str) -> SearchResult:
        """Search the store, trying each tier in order.

        1. A single word equal to a category name returns that category.
        2. The query (words joined by single spaces) equal to a subcategory
           name returns that subcategory.
        3. Otherwise a note matches when every whitespace-separated term is
           a substring of its lowercased path and text.

        Comparisons ignore case. A blank query returns an empty result.
        """
        words = query.split()
        if not words:
            return SearchResult(query=query, tier=SearchTier.EMPTY)

        snapshot = self.store.snapshot()

        if len(words) == 1:
            entries = self._category_entries(snapshot, words[0].lower())
            if entries:
                logger.debug(f"Query '{query}' resolved as category ({len(entries)} notes)")
                return SearchResult(query=query, tier=SearchTier.CATEGORY, entries=entries)

        entries = self._subcategory_entries(snapshot, " ".join(words).lower())
        if entries:
            logger.debug(f"Query '{query}' resolved as subcategory ({len(entries)} notes)")
            return SearchResult(query=query, tier=SearchTier.SUBCATEGORY, entries=entries)

        terms = [word.lower() for word in words]
        entries = [
            entry
            for entry in snapshot.entries()
            if all(term in self._haystack(entry) for term in terms)
        ]
        return SearchResult(query=query, tier=SearchTier.CONTENT, entries=entries)

    @staticmethod
    def _category_entries(snapshot: StoreSnapshot, name: str) -> List[NoteEntry]:
        return [
            entry
            for category in snapshot.categories
            if category.name.lower() == name
            for entry in category.entries()
        ]

    @staticmethod
    def _subcategory_entries(snapshot: StoreSnapshot, name: str) -> List[NoteEntry]:
        return [
            entry
            for category in snapshot.categories
            for subcategory in category.children
            if subcategory.name.lower() == name
            for entry in subcategory.entries((category.name,))
        ]

    @staticmethod
    def _haystack(entry: NoteEntry) -> str:
        return " ".join(entry.path + (entry.text,)).lower()

    @traced("advanced_search")
    def advanced_search(
        self,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        content: Optional[str] = None,
    ) -> SearchResult:
        """Return notes passing every supplied filter.

        Args:
            category: Substring of the category name.
            subcategory: Substring of the subcategory name.
            content: Terms that must all occur in the note text.

        Missing or blank filters impose no constraint.
        """
        category_filter = _normalize_filter(category)
        subcategory_filter = _normalize_filter(subcategory)
        terms = content.lower().split() if content else []

        entries = []
        for entry in self.store.snapshot().entries():
            if category_filter and category_filter not in entry.category.lower():
                continue
            if subcategory_filter and subcategory_filter not in entry.subcategory.lower():
                continue
            if terms:
                text = entry.text.lower()
                if not all(term in text for term in terms):
                    continue
            entries.append(entry)

        description = ", ".join(
            f"{name}={value}"
            for name, value in (
                ("category", category), ("subcategory", subcategory), ("content", content)
            )
            if value
        )
        return SearchResult(query=description, tier=SearchTier.FILTERED, entries=entries)
