"""Term statistics over the note hierarchy.

Tokenizes concept names and note text, then derives global term
frequency, the categories each term appears in, and per-note term
co-occurrence. Results are cached per store revision, so repeated reads
between mutations cost nothing.
"""

import logging
import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from itertools import combinations
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple, TypeVar

from microfiche.config import config
from microfiche.models.schema import CategoryTerms, CoOccurrence, FicheSchema, Page
from microfiche.observability import timed_operation
from microfiche.storage.hierarchy_store import HierarchyStore, NodeView, StoreSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

# English function words plus link and code-hosting noise common in notes
DEFAULT_STOPWORDS: FrozenSet[str] = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
    "been", "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "should", "could", "may", "might", "must", "can", "this",
    "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
    "what", "which", "who", "when", "where", "why", "how", "all", "each",
    "every", "both", "few", "more", "most", "other", "some", "such", "no",
    "not", "only", "own", "same", "so", "than", "too", "very", "just",
    "www", "youtube", "https", "com", "github", "http", "watch", "conference",
    "commit", "src", "main",
})

# Anything that is not a letter or digit separates tokens, underscore included
_TOKEN_SEPARATOR = re.compile(r"[\W_]+")


def tokenize(
    text: str,
    stopwords: FrozenSet[str] = DEFAULT_STOPWORDS,
    min_length: int = 3,
) -> List[str]:
    """Split text into lowercase alphanumeric tokens.

    Tokens shorter than ``min_length`` and stopwords are dropped. Order and
    repeats are kept.

    Examples:
        >>> tokenize("The Abelian group, defined!")
        ['abelian', 'group', 'defined']
    """
    return [
        token
        for token in _TOKEN_SEPARATOR.split(text.lower())
        if len(token) >= min_length and token not in stopwords
    ]


@dataclass(frozen=True)
class TermStatistics:
    """Raw term counts for one store revision.

    Attributes:
        revision: Store revision the counts were computed from.
        word_frequency: Occurrences of each term in concept names and notes.
        category_terms: Terms found in each category (every category listed).
        term_categories: Categories each term was found in.
        co_occurrences: Per-note pair counts keyed by (term1, term2), term1 < term2.
    """

    revision: int
    word_frequency: Dict[str, int]
    category_terms: Dict[str, FrozenSet[str]]
    term_categories: Dict[str, FrozenSet[str]]
    co_occurrences: Dict[Tuple[str, str], int]


def _concept_notes(concept: NodeView, schema: FicheSchema) -> Iterable[str]:
    if schema is FicheSchema.KEY_DETAIL:
        for key_detail in concept.children:
            yield from key_detail.notes
    else:
        yield from concept.notes


def count_pairs(tokens: Sequence[str], counter: Counter) -> None:
    """Add every pair of differing tokens at positions i < j to ``counter``.

    Repeated tokens are not collapsed first, so a term occurring twice in a
    note pairs with each other term twice.
    """
    for first, second in combinations(tokens, 2):
        if first == second:
            continue
        pair = (first, second) if first < second else (second, first)
        counter[pair] += 1


def compute_term_statistics(
    snapshot: StoreSnapshot,
    stopwords: FrozenSet[str] = DEFAULT_STOPWORDS,
    min_length: int = 3,
) -> TermStatistics:
    """Walk a snapshot and count terms, term categories and co-occurrences."""
    word_frequency: Counter = Counter()
    co_occurrences: Counter = Counter()
    category_terms: Dict[str, Set[str]] = {}
    term_categories: Dict[str, Set[str]] = defaultdict(set)

    for category in snapshot.categories:
        seen: Set[str] = set()
        for subcategory in category.children:
            for concept in subcategory.children:
                tokens = tokenize(concept.name, stopwords, min_length)
                word_frequency.update(tokens)
                seen.update(tokens)
                for note in _concept_notes(concept, snapshot.schema):
                    tokens = tokenize(note, stopwords, min_length)
                    word_frequency.update(tokens)
                    seen.update(tokens)
                    count_pairs(tokens, co_occurrences)
        category_terms[category.name] = seen
        for term in seen:
            term_categories[term].add(category.name)

    return TermStatistics(
        revision=snapshot.revision,
        word_frequency=dict(word_frequency),
        category_terms={name: frozenset(terms) for name, terms in category_terms.items()},
        term_categories={term: frozenset(cats) for term, cats in term_categories.items()},
        co_occurrences=dict(co_occurrences),
    )


class Paginator:
    """A page cursor over a list whose length may change between reads.

    The cursor stays within ``[0, max(page_count, 1) - 1]`` and is clamped
    again every time a page is taken, so a shrinking list never produces an
    out-of-range page.
    """

    def __init__(self, page_size: int = 10):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.page_size = page_size
        self.page = 0

    def page_count(self, total: int) -> int:
        return (total + self.page_size - 1) // self.page_size

    def clamp(self, total: int) -> int:
        """Pull the cursor back inside the valid range for ``total`` items."""
        last = max(self.page_count(total), 1) - 1
        self.page = min(max(self.page, 0), last)
        return self.page

    def next_page(self, total: int) -> int:
        self.clamp(total)
        if self.page < self.page_count(total) - 1:
            self.page += 1
        return self.page

    def previous_page(self) -> int:
        if self.page > 0:
            self.page -= 1
        return self.page

    def go_to(self, page: int, total: int) -> int:
        """Jump to a 0-based page, clamped to the valid range."""
        self.page = page
        return self.clamp(total)

    def slice(self, items: Sequence[T]) -> Page[T]:
        total = len(items)
        self.clamp(total)
        start = self.page * self.page_size
        return Page(
            items=list(items[start:start + self.page_size]),
            page=self.page,
            page_count=self.page_count(total),
            total_items=total,
        )


class TextAnalytics:
    """Ranked, paginated term statistics for a HierarchyStore."""

    def __init__(
        self,
        store: HierarchyStore,
        stopwords: Optional[Iterable[str]] = None,
        min_token_length: Optional[int] = None,
        page_size: Optional[int] = None,
        top_terms: Optional[int] = None,
    ):
        """Initialize the analytics engine.

        Args:
            store: Store to analyze.
            stopwords: Words to ignore. Defaults to the built-in list plus
                config.extra_stopwords.
            min_token_length: Shortest token kept (config.min_token_length).
            page_size: Items per page for both ranked views (config.page_size).
            top_terms: Terms shown per category (config.top_terms).
        """
        self.store = store
        if stopwords is None:
            self.stopwords = DEFAULT_STOPWORDS | frozenset(config.extra_stopwords)
        else:
            self.stopwords = frozenset(word.lower() for word in stopwords)
        self.min_token_length = min_token_length or config.min_token_length
        self.top_terms = top_terms or config.top_terms
        page_size = page_size or config.page_size
        self.cooccurrence_pager = Paginator(page_size)
        self.category_pager = Paginator(page_size)

        self._statistics: Optional[TermStatistics] = None
        self._ranked_pairs: Optional[List[CoOccurrence]] = None
        self._distribution: Optional[List[CategoryTerms]] = None

    def tokenize(self, text: str) -> List[str]:
        return tokenize(text, self.stopwords, self.min_token_length)

    def statistics(self) -> TermStatistics:
        """Term statistics for the current store, recomputed only after mutations."""
        revision = self.store.revision
        if self._statistics is None or self._statistics.revision != revision:
            with timed_operation("analytics_recompute", revision=revision) as op:
                self._statistics = compute_term_statistics(
                    self.store.snapshot(), self.stopwords, self.min_token_length
                )
                op["terms"] = len(self._statistics.word_frequency)
                op["pairs"] = len(self._statistics.co_occurrences)
            self._ranked_pairs = None
            self._distribution = None
        return self._statistics

    def word_frequency(self) -> Dict[str, int]:
        return self.statistics().word_frequency

    def unique_term_count(self) -> int:
        return len(self.statistics().word_frequency)

    def shared_categories(self, term1: str, term2: str) -> List[str]:
        """Categories containing both terms, sorted by name."""
        term_categories = self.statistics().term_categories
        first = term_categories.get(term1, frozenset())
        second = term_categories.get(term2, frozenset())
        return sorted(first & second)

    def ranked_cooccurrences(self) -> List[CoOccurrence]:
        """All pairs by count descending, ties by (term1, term2) ascending."""
        stats = self.statistics()
        if self._ranked_pairs is None:
            ranked = sorted(
                stats.co_occurrences.items(), key=lambda item: (-item[1], item[0])
            )
            self._ranked_pairs = [
                CoOccurrence(
                    term1=term1,
                    term2=term2,
                    count=count,
                    shared_categories=self.shared_categories(term1, term2),
                )
                for (term1, term2), count in ranked
            ]
        return self._ranked_pairs

    def category_distribution(self) -> List[CategoryTerms]:
        """Per-category top terms, categories sorted by name.

        Terms are ranked by global frequency descending, ties by term.
        """
        stats = self.statistics()
        if self._distribution is None:
            frequency = stats.word_frequency
            self._distribution = [
                CategoryTerms(
                    category=name,
                    unique_terms=len(terms),
                    top_terms=[
                        (term, frequency[term])
                        for term in sorted(terms, key=lambda t: (-frequency[t], t))[:self.top_terms]
                    ],
                )
                for name, terms in sorted(stats.category_terms.items())
            ]
        return self._distribution

    def cooccurrence_page(self) -> Page[CoOccurrence]:
        """Current page of ranked pairs; the cursor is clamped first."""
        return self.cooccurrence_pager.slice(self.ranked_cooccurrences())

    def category_page(self) -> Page[CategoryTerms]:
        """Current page of the category distribution; the cursor is clamped first."""
        return self.category_pager.slice(self.category_distribution())
