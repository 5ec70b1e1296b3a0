"""Data models for Microfiche."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class FicheSchema(str, Enum):
    """Depth of the note hierarchy.

    CONCEPT files notes directly under a Concept (4 levels including the
    note); KEY_DETAIL adds a KeyDetail level below the Concept (5 levels).
    """

    CONCEPT = "concept"
    KEY_DETAIL = "key_detail"

    @property
    def levels(self) -> Tuple[str, ...]:
        """Names of the path levels, from Category down to the leaf."""
        if self is FicheSchema.KEY_DETAIL:
            return ("Category", "Subcategory", "Concept", "KeyDetail")
        return ("Category", "Subcategory", "Concept")

    @property
    def depth(self) -> int:
        """Number of names in a full path."""
        return len(self.levels)

    @property
    def columns(self) -> Tuple[str, ...]:
        """Literal column names of the flat row format."""
        return self.levels + ("Note",)


@dataclass(frozen=True)
class NoteEntry:
    """A note tagged with the full path of the leaf that owns it."""

    path: Tuple[str, ...]
    text: str

    @property
    def category(self) -> str:
        return self.path[0]

    @property
    def subcategory(self) -> str:
        return self.path[1]

    @property
    def concept(self) -> str:
        return self.path[2]

    @property
    def key_detail(self) -> Optional[str]:
        return self.path[3] if len(self.path) > 3 else None

    def as_row(self) -> Tuple[str, ...]:
        """Flatten to the column order of the row format."""
        return self.path + (self.text,)


class FicheRow(BaseModel):
    """One record of the flat row format."""

    category: str
    subcategory: str
    concept: str
    key_detail: Optional[str] = None
    note: str

    model_config = {"frozen": True, "extra": "forbid"}

    @property
    def path(self) -> Tuple[str, ...]:
        """Path segments for HierarchyStore.insert_row."""
        if self.key_detail is None:
            return (self.category, self.subcategory, self.concept)
        return (self.category, self.subcategory, self.concept, self.key_detail)

    @classmethod
    def from_fields(cls, fields: Sequence[str], schema: FicheSchema) -> "FicheRow":
        """Build a row from raw column values in schema column order."""
        if schema is FicheSchema.KEY_DETAIL:
            category, subcategory, concept, key_detail, note = fields
        else:
            category, subcategory, concept, note = fields
            key_detail = None
        return cls(
            category=category,
            subcategory=subcategory,
            concept=concept,
            key_detail=key_detail,
            note=note,
        )


class StoreStats(BaseModel):
    """Aggregate node counts of a store."""

    categories: int = 0
    subcategories: int = 0
    concepts: int = 0
    key_details: Optional[int] = Field(
        default=None, description="Only counted in the KEY_DETAIL schema"
    )
    notes: int = 0


class WarningKind(str, Enum):
    """Problems reported by the validation prepass."""

    EMPTY_FIELD = "empty_field"
    DUPLICATE = "duplicate"
    EMBEDDED_NEWLINE = "embedded_newline"
    MALFORMED_ROW = "malformed_row"


class ValidationWarning(BaseModel):
    """A non-fatal, line-numbered finding about a row."""

    line: int
    kind: WarningKind
    message: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"Line {self.line}: {self.message}"


class CoOccurrence(BaseModel):
    """A pair of distinct terms seen together in notes, term1 < term2."""

    term1: str
    term2: str
    count: int
    shared_categories: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class CategoryTerms(BaseModel):
    """Top terms of one category, ranked by global frequency."""

    category: str
    unique_terms: int
    top_terms: List[Tuple[str, int]] = Field(default_factory=list)

    model_config = {"frozen": True}


@dataclass
class Page(Generic[T]):
    """One page of a ranked list.

    Attributes:
        items: Items on this page.
        page: 0-based index of this page.
        page_count: Number of pages, 0 when there is nothing to show.
        total_items: Length of the underlying list.
    """

    items: List[T] = field(default_factory=list)
    page: int = 0
    page_count: int = 0
    total_items: int = 0

    @property
    def label(self) -> str:
        return f"Page {self.page + 1} / {max(self.page_count, 1)}"


class LoadResult(BaseModel):
    """Outcome of loading a data file into the service."""

    success: bool
    message: str
    path: Optional[str] = None
    note_count: int = 0
    warnings: List[ValidationWarning] = Field(default_factory=list)


class SaveResult(BaseModel):
    """Outcome of saving the store to a data file."""

    success: bool
    message: str
    path: Optional[str] = None
    note_count: int = 0
