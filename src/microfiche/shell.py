"""Interactive line-oriented query loop over a FicheService."""

from typing import Callable, List, Sequence

from microfiche.exceptions import MicroficheError
from microfiche.models.schema import NoteEntry
from microfiche.observability import get_logger
from microfiche.services.fiche_service import FicheService
from microfiche.services.search_service import SearchResult

logger = get_logger("shell")

PREVIEW_WIDTH = 72

HELP_TEXT = """\
Commands:
  <query>          search categories, subcategories, then note content
  cat:<text>       notes whose category contains <text>
  sub:<text>       notes whose subcategory contains <text>
  #<n>             show result <n> of the last search in full
  list             categories with their subcategories and note counts
  help             show this message
  quit             leave the shell"""


def format_path(path: Sequence[str]) -> str:
    return " > ".join(path)


def preview(text: str, width: int = PREVIEW_WIDTH) -> str:
    """First line of ``text``, cut to ``width`` characters."""
    first_line = text.splitlines()[0] if text else ""
    if len(first_line) > width or first_line != text:
        return first_line[:width].rstrip() + "..."
    return first_line


class QueryShell:
    """Reads commands one line at a time and writes plain-text answers.

    The last result list is kept so that ``#<n>`` can refer back to it.
    """

    def __init__(self, service: FicheService, write: Callable[[str], None] = print):
        self.service = service
        self.write = write
        self.results: List[NoteEntry] = []

    def handle(self, line: str) -> bool:
        """Run one command. Returns False when the shell should stop."""
        command = line.strip()
        if not command:
            return True
        if command.lower() == "quit":
            return False

        logger.debug("Command received", command=command[:50])
        try:
            if command.lower() == "help":
                self.write(HELP_TEXT)
            elif command.lower() == "list":
                self._list()
            elif command.startswith("#"):
                self._show(command[1:])
            elif command.lower().startswith("cat:"):
                self._show_results(self.service.advanced_search(category=command[4:].strip()))
            elif command.lower().startswith("sub:"):
                self._show_results(self.service.advanced_search(subcategory=command[4:].strip()))
            else:
                self._show_results(self.service.search(command))
        except MicroficheError as e:
            logger.error(f"Command failed: {e}")
            self.write(f"Error: {e.message}")
        return True

    def run(self, read_line: Callable[[str], str] = input) -> None:
        """Loop until ``quit`` or end of input."""
        stats = self.service.stats()
        self.write(
            f"{stats.notes} notes in {stats.categories} categories. "
            "Type 'help' for commands."
        )
        while True:
            try:
                line = read_line("> ")
            except EOFError:
                break
            if not self.handle(line):
                break
        logger.info("Shell closed")

    def _list(self) -> None:
        snapshot = self.service.store.snapshot()
        if snapshot.is_empty():
            self.write("No notes.")
            return
        for category in snapshot.categories:
            self.write(f"{category.name} ({category.note_count()})")
            for subcategory in category.children:
                self.write(f"  {subcategory.name} ({subcategory.note_count()})")

    def _show_results(self, result: SearchResult) -> None:
        self.results = list(result.entries)
        if not self.results:
            self.write("No matches.")
            return
        self.write(f"{len(self.results)} result(s) ({result.tier.value})")
        for number, entry in enumerate(self.results, 1):
            self.write(f"{number:>3}. {format_path(entry.path)}: {preview(entry.text)}")

    def _show(self, argument: str) -> None:
        try:
            number = int(argument.strip())
        except ValueError:
            self.write(f"Not a result number: {argument.strip()}")
            return
        if not 1 <= number <= len(self.results):
            self.write(f"No result #{number} (last search had {len(self.results)})")
            return
        entry = self.results[number - 1]
        for level, name in zip(self.service.schema.levels, entry.path):
            self.write(f"{level}: {name}")
        self.write("")
        self.write(entry.text)
