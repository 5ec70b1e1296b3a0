"""MCP server implementation for Microfiche."""

import atexit
import logging
import uuid
from pathlib import Path
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from microfiche.config import config
from microfiche.exceptions import MicroficheError
from microfiche.models.schema import NoteEntry
from microfiche.observability import timed_operation
from microfiche.services.fiche_service import FicheService
from microfiche.services.search_service import SearchResult

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 200
MAX_NOTE_LENGTH = 100_000


def _as_path(value: str) -> Path:
    return Path(value).expanduser()


def _validate_input_lengths(path: List[str], note: Optional[str] = None) -> None:
    """Validate input string lengths at the MCP boundary."""
    for name in path:
        if name and len(name) > MAX_NAME_LENGTH:
            raise ValueError(
                f"Path segment exceeds maximum length of {MAX_NAME_LENGTH} characters"
            )
    if note and len(note) > MAX_NOTE_LENGTH:
        raise ValueError(
            f"Note exceeds maximum length of {MAX_NOTE_LENGTH} characters"
        )


class MicroficheMcpServer:
    """MCP server for Microfiche."""

    def __init__(self, service: Optional[FicheService] = None):
        """Initialize the MCP server.

        Args:
            service: Pre-loaded service. When None, an empty store bound
                to config.schema_kind is used.
        """
        self.mcp = FastMCP(config.server_name, version=config.server_version)
        self.service = service or FicheService()
        logger.info("Microfiche MCP server initialized")
        # Register shutdown hook for resource cleanup
        atexit.register(self._shutdown)
        self._register_tools()

    def _shutdown(self) -> None:
        """Clean up resources on server exit."""
        self.service.shutdown()

    def _path(
        self,
        category: str,
        subcategory: str,
        concept: str,
        key_detail: Optional[str] = None,
    ) -> List[str]:
        """Assemble a path in the shape the store's schema expects."""
        path = [category, subcategory, concept]
        if self.service.schema.depth > 3 or key_detail is not None:
            path.append(key_detail or "")
        return path

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Generate a unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, MicroficheError):
            # Structured domain errors - use the error code and message
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            # Log full detail but return generic ref to avoid leaking internals
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            # File system errors - don't expose paths or detailed error messages
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            # Unexpected errors - log with full stack trace but return generic message
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    @staticmethod
    def _format_entries(title: str, entries: List[NoteEntry]) -> str:
        if not entries:
            return f"{title}: no matching notes."
        result = f"{title}: {len(entries)} note(s)\n\n"
        for i, entry in enumerate(entries, 1):
            result += f"{i}. {' > '.join(entry.path)}\n"
            result += f"   {entry.text}\n"
        return result

    def _format_search(self, result: SearchResult) -> str:
        return self._format_entries(
            f"Search '{result.query}' ({result.tier.value})", result.entries
        )

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="fiche_add_note")
        def fiche_add_note(
            category: str,
            subcategory: str,
            concept: str,
            note: str,
            key_detail: Optional[str] = None,
        ) -> str:
            """File a note under Category > Subcategory > Concept [> KeyDetail].
            Args:
                category: Top-level category name
                subcategory: Subcategory name
                concept: Concept name
                note: Note text
                key_detail: KeyDetail name (required for the 5-level schema)
            """
            with timed_operation("fiche_add_note", category=category[:30]) as op:
                try:
                    path = self._path(category, subcategory, concept, key_detail)
                    _validate_input_lengths(path, note)
                    entry = self.service.add_note(path, note)
                    op["depth"] = len(entry.path)
                    return f"Note added under {' > '.join(entry.path)}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_delete_note")
        def fiche_delete_note(
            category: str,
            subcategory: str,
            concept: str,
            note: str,
            key_detail: Optional[str] = None,
        ) -> str:
            """Delete one note; containers left empty are removed with it.
            Args:
                category: Category name
                subcategory: Subcategory name
                concept: Concept name
                note: Exact text of the note to delete
                key_detail: KeyDetail name (5-level schema only)
            """
            with timed_operation("fiche_delete_note", category=category[:30]) as op:
                try:
                    path = self._path(category, subcategory, concept, key_detail)
                    deleted = self.service.delete_note(path, note)
                    op["deleted"] = deleted
                    if not deleted:
                        return f"Note not found under {' > '.join(path)}"
                    return f"Note deleted from {' > '.join(path)}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_edit_note")
        def fiche_edit_note(
            category: str,
            subcategory: str,
            concept: str,
            old_note: str,
            new_note: str,
            key_detail: Optional[str] = None,
            new_category: Optional[str] = None,
            new_subcategory: Optional[str] = None,
            new_concept: Optional[str] = None,
            new_key_detail: Optional[str] = None,
        ) -> str:
            """Replace a note's text, optionally moving it to another path.
            Args:
                category: Current category name
                subcategory: Current subcategory name
                concept: Current concept name
                old_note: Exact text of the note to replace
                new_note: Replacement text
                key_detail: Current KeyDetail name (5-level schema only)
                new_category: Target category (defaults to the current one)
                new_subcategory: Target subcategory (defaults to the current one)
                new_concept: Target concept (defaults to the current one)
                new_key_detail: Target KeyDetail (defaults to the current one)
            """
            with timed_operation("fiche_edit_note", category=category[:30]) as op:
                try:
                    path = self._path(category, subcategory, concept, key_detail)
                    new_path = self._path(
                        new_category or category,
                        new_subcategory or subcategory,
                        new_concept or concept,
                        new_key_detail or key_detail,
                    )
                    _validate_input_lengths(new_path, new_note)
                    edited = self.service.edit_note(path, old_note, new_note, new_path)
                    op["edited"] = edited
                    if not edited:
                        return f"Note not found under {' > '.join(path)}"
                    return f"Note updated under {' > '.join(new_path)}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_search")
        def fiche_search(query: str) -> str:
            """Search notes.

            A single word naming a category returns that category; a query
            naming a subcategory returns that subcategory; otherwise notes
            whose path and text contain every term are returned.
            Matching ignores case.

            Args:
                query: Search text
            """
            with timed_operation("fiche_search", query=query[:30]) as op:
                try:
                    result = self.service.search(query)
                    op["result_count"] = len(result)
                    return self._format_search(result)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_advanced_search")
        def fiche_advanced_search(
            category: Optional[str] = None,
            subcategory: Optional[str] = None,
            content: Optional[str] = None,
        ) -> str:
            """Search with per-field filters. Omitted filters match everything.
            Args:
                category: Substring of the category name
                subcategory: Substring of the subcategory name
                content: Terms that must all appear in the note text
            """
            with timed_operation("fiche_advanced_search") as op:
                try:
                    result = self.service.advanced_search(
                        category=category, subcategory=subcategory, content=content
                    )
                    op["result_count"] = len(result)
                    return self._format_search(result)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_stats")
        def fiche_stats() -> str:
            """Count categories, subcategories, concepts and notes."""
            with timed_operation("fiche_stats"):
                try:
                    stats = self.service.stats()
                    unique_terms = self.service.analytics.unique_term_count()
                    result = "# Microfiche Statistics\n\n"
                    result += f"Categories: {stats.categories}\n"
                    result += f"Subcategories: {stats.subcategories}\n"
                    result += f"Concepts: {stats.concepts}\n"
                    if stats.key_details is not None:
                        result += f"Key details: {stats.key_details}\n"
                    result += f"Notes: {stats.notes}\n"
                    result += f"Unique terms: {unique_terms}\n"
                    if self.service.current_file:
                        result += f"File: {self.service.current_file.name}\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_cooccurrences")
        def fiche_cooccurrences(page: int = 1) -> str:
            """List term pairs that appear together in notes, most frequent first.
            Args:
                page: 1-based page number (clamped to the available pages)
            """
            with timed_operation("fiche_cooccurrences", page=page) as op:
                try:
                    analytics = self.service.analytics
                    pairs = analytics.ranked_cooccurrences()
                    analytics.cooccurrence_pager.go_to(page - 1, len(pairs))
                    current = analytics.cooccurrence_page()
                    op["result_count"] = len(current.items)
                    if not current.items:
                        return "No term co-occurrences yet."

                    shown = config.shared_categories_shown
                    result = f"# Term Co-occurrence ({current.label})\n\n"
                    result += "| Term 1 | Term 2 | Count | Shared categories |\n"
                    result += "|--------|--------|-------|-------------------|\n"
                    for pair in current.items:
                        categories = ", ".join(pair.shared_categories[:shown])
                        if len(pair.shared_categories) > shown:
                            categories += ", ..."
                        result += f"| {pair.term1} | {pair.term2} | {pair.count} | {categories} |\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_category_terms")
        def fiche_category_terms(page: int = 1) -> str:
            """Show the most frequent terms of each category.
            Args:
                page: 1-based page number (clamped to the available pages)
            """
            with timed_operation("fiche_category_terms", page=page) as op:
                try:
                    analytics = self.service.analytics
                    distribution = analytics.category_distribution()
                    analytics.category_pager.go_to(page - 1, len(distribution))
                    current = analytics.category_page()
                    op["result_count"] = len(current.items)
                    if not current.items:
                        return "No categories yet."

                    result = f"# Category Terms ({current.label})\n\n"
                    for item in current.items:
                        result += f"## {item.category} ({item.unique_terms} unique terms)\n"
                        terms = ", ".join(f"{term} ({count})" for term, count in item.top_terms)
                        result += f"{terms or 'no terms'}\n\n"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_load")
        def fiche_load(path: str) -> str:
            """Replace the store with the contents of a CSV or SQLite file.
            On failure the current notes are kept.
            Args:
                path: File to load (.db/.sqlite/.sqlite3 for SQLite, CSV otherwise)
            """
            with timed_operation("fiche_load"):
                try:
                    result = self.service.load(config.get_absolute_path(_as_path(path)))
                    if not result.success:
                        return result.message
                    message = f"{result.message} ({result.note_count} notes)"
                    if result.warnings:
                        message += f"\n{len(result.warnings)} warning(s):\n"
                        message += "\n".join(str(w) for w in result.warnings)
                    return message
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_save")
        def fiche_save(path: Optional[str] = None) -> str:
            """Save all notes to a file, or to the current file when omitted.
            Args:
                path: Target file (.db/.sqlite/.sqlite3 for SQLite, CSV otherwise)
            """
            with timed_operation("fiche_save"):
                try:
                    target = config.get_absolute_path(_as_path(path)) if path else None
                    result = self.service.save(target)
                    if not result.success:
                        return result.message
                    return f"{result.message} ({result.note_count} notes)"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="fiche_validate")
        def fiche_validate(path: Optional[str] = None) -> str:
            """Check a data file for empty fields, duplicates and multi-line notes.
            Args:
                path: File to check (defaults to the current file)
            """
            with timed_operation("fiche_validate") as op:
                try:
                    target = config.get_absolute_path(_as_path(path)) if path else None
                    warnings = self.service.validate(target)
                    op["warning_count"] = len(warnings)
                    if not warnings:
                        return "No problems found."
                    return f"{len(warnings)} warning(s):\n" + "\n".join(
                        str(w) for w in warnings
                    )
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
