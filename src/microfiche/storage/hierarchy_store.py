"""In-memory hierarchical note store.

Notes are filed under a fixed-depth path of named nodes
(Category > Subcategory > Concept > [KeyDetail]). Sibling names are unique
under exact string comparison. Nodes are created on the first insert that
reaches them and pruned as soon as nothing remains beneath them.

Internal dictionaries keep insertion order, which is not meaningful. Every
externally visible traversal goes through ``snapshot()``, which sorts by
name at every level.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from microfiche.exceptions import InvalidPathError
from microfiche.models.schema import FicheSchema, NoteEntry, StoreStats

logger = logging.getLogger(__name__)


class _Node:
    """Mutable tree node. Inner nodes own children, leaves own notes."""

    __slots__ = ("name", "children", "notes")

    def __init__(self, name: str):
        self.name = name
        self.children: Dict[str, "_Node"] = {}
        self.notes: List[str] = []

    def is_empty(self) -> bool:
        return not self.children and not self.notes

    def freeze(self) -> "NodeView":
        return NodeView(
            name=self.name,
            children=tuple(self.children[name].freeze() for name in sorted(self.children)),
            notes=tuple(sorted(self.notes)),
        )


@dataclass(frozen=True)
class NodeView:
    """Read-only, name-sorted copy of one node and everything beneath it."""

    name: str
    children: Tuple["NodeView", ...] = ()
    notes: Tuple[str, ...] = ()

    def entries(self, prefix: Tuple[str, ...] = ()) -> Iterator[NoteEntry]:
        """Yield every note under this node, tagged with its full path."""
        path = prefix + (self.name,)
        for text in self.notes:
            yield NoteEntry(path=path, text=text)
        for child in self.children:
            yield from child.entries(path)

    def note_count(self) -> int:
        return len(self.notes) + sum(child.note_count() for child in self.children)


@dataclass(frozen=True)
class StoreSnapshot:
    """Sorted, immutable view of a store at one revision."""

    schema: FicheSchema
    revision: int
    categories: Tuple[NodeView, ...]

    def entries(self) -> Iterator[NoteEntry]:
        """Yield every note in snapshot order."""
        for category in self.categories:
            yield from category.entries()

    def category_names(self) -> List[str]:
        return [category.name for category in self.categories]

    def is_empty(self) -> bool:
        return not self.categories


class HierarchyStore:
    """Owns the note tree; the single writer of its contents.

    No internal locking is done. A host that shares one store between
    threads must serialize access itself.
    """

    def __init__(self, schema: FicheSchema = FicheSchema.CONCEPT):
        self.schema = schema
        self._categories: Dict[str, _Node] = {}
        self._revision = 0
        self._snapshot: Optional[StoreSnapshot] = None

    @property
    def revision(self) -> int:
        """Counter bumped by every successful mutation."""
        return self._revision

    def is_empty(self) -> bool:
        return not self._categories

    def check_path(self, path: Sequence[str]) -> Tuple[str, ...]:
        if isinstance(path, (str, bytes)) or not isinstance(path, Sequence):
            raise InvalidPathError(path, self.schema.depth)
        if len(path) != self.schema.depth:
            raise InvalidPathError(path, self.schema.depth)
        return tuple(path)

    def _touch(self) -> None:
        self._revision += 1
        self._snapshot = None

    def insert_row(self, path: Sequence[str], note_text: str) -> None:
        """Append ``note_text`` under ``path``, creating missing nodes.

        Existing segments are reused. Identical (path, note) pairs are
        stored as separate notes.

        Raises:
            InvalidPathError: If ``path`` does not have one name per level.
        """
        segments = self.check_path(path)
        children = self._categories
        node = None
        for name in segments:
            node = children.get(name)
            if node is None:
                node = _Node(name)
                children[name] = node
            children = node.children
        node.notes.append(note_text)
        self._touch()

    def delete_note(self, path: Sequence[str], note_text: str) -> bool:
        """Remove the first note under ``path`` equal to ``note_text``.

        Returns:
            True if a note was removed, False if the path or note is absent.

        Raises:
            InvalidPathError: If ``path`` does not have one name per level.
        """
        segments = self.check_path(path)
        trail: List[_Node] = []
        children = self._categories
        for name in segments:
            node = children.get(name)
            if node is None:
                return False
            trail.append(node)
            children = node.children

        leaf = trail[-1]
        try:
            leaf.notes.remove(note_text)
        except ValueError:
            return False

        self._prune(trail)
        self._touch()
        return True

    def _prune(self, trail: List[_Node]) -> None:
        """Remove nodes left empty, walking from the leaf up to the category."""
        for depth in range(len(trail) - 1, -1, -1):
            node = trail[depth]
            if not node.is_empty():
                break
            parent = trail[depth - 1].children if depth else self._categories
            del parent[node.name]
            logger.debug(
                "Pruned empty %s '%s'", self.schema.levels[depth], node.name
            )

    def stats(self) -> StoreStats:
        """Count nodes at every level and notes in total."""
        subcategories = concepts = key_details = notes = 0
        for category in self._categories.values():
            subcategories += len(category.children)
            for subcategory in category.children.values():
                concepts += len(subcategory.children)
                for concept in subcategory.children.values():
                    if self.schema is FicheSchema.KEY_DETAIL:
                        key_details += len(concept.children)
                        notes += sum(len(kd.notes) for kd in concept.children.values())
                    else:
                        notes += len(concept.notes)

        return StoreStats(
            categories=len(self._categories),
            subcategories=subcategories,
            concepts=concepts,
            key_details=key_details if self.schema is FicheSchema.KEY_DETAIL else None,
            notes=notes,
        )

    def snapshot(self) -> StoreSnapshot:
        """Return a name-sorted read-only view, cached until the next mutation."""
        if self._snapshot is None:
            self._snapshot = StoreSnapshot(
                schema=self.schema,
                revision=self._revision,
                categories=tuple(
                    self._categories[name].freeze() for name in sorted(self._categories)
                ),
            )
        return self._snapshot

    def entries(self) -> Iterator[NoteEntry]:
        """Yield every note in snapshot order (used to flatten for saving)."""
        return self.snapshot().entries()
