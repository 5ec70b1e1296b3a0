"""Tests for the search service."""
import pytest

from microfiche.services.search_service import SearchService, SearchTier


@pytest.fixture
def search(populated_store):
    return SearchService(populated_store)


class TestSearch:
    """Tests for tiered search."""

    @pytest.mark.parametrize("query", ["", "   ", "\t\n"])
    def test_blank_query_is_empty(self, search, query):
        """Blank queries search nothing."""
        result = search.search(query)
        assert result.tier == SearchTier.EMPTY
        assert len(result) == 0

    def test_single_word_category(self, search):
        """A single category name returns exactly that category's notes."""
        result = search.search("math")
        assert result.tier == SearchTier.CATEGORY
        assert len(result) == 3
        assert all(entry.category == "Math" for entry in result)

    def test_category_match_ignores_case(self, search):
        result = search.search("SCIENCE")
        assert result.tier == SearchTier.CATEGORY
        assert [entry.concept for entry in result] == ["Energy"]

    def test_subcategory_match(self, search):
        """A query naming a subcategory returns that subcategory."""
        result = search.search("algebra")
        assert result.tier == SearchTier.SUBCATEGORY
        assert [entry.concept for entry in result] == ["Groups", "Rings"]

    def test_multi_word_subcategory(self, store):
        """Subcategory names with spaces match on normalized whitespace."""
        store.insert_row(["Math", "Linear Algebra", "Vectors"], "Magnitude and direction")
        result = SearchService(store).search("  linear   algebra ")
        assert result.tier == SearchTier.SUBCATEGORY
        assert len(result) == 1

    def test_content_terms_all_required(self, search):
        """Every term must appear somewhere in the path or note."""
        result = search.search("groups multiplication")
        assert result.tier == SearchTier.CONTENT
        assert [entry.concept for entry in result] == ["Rings"]

    def test_content_matches_path_segments(self, search):
        """Path names count as searchable text."""
        result = search.search("calculus epsilon")
        assert [entry.concept for entry in result] == ["Limits"]

    def test_content_matches_substrings(self, search):
        result = search.search("conserv")
        assert result.tier == SearchTier.CONTENT
        assert [entry.concept for entry in result] == ["Energy"]

    def test_no_match(self, search):
        result = search.search("topology")
        assert result.tier == SearchTier.CONTENT
        assert len(result) == 0

    def test_results_follow_snapshot_order(self, search):
        result = search.search("e")
        paths = [entry.path for entry in result]
        assert len(paths) == 4
        assert paths == sorted(paths)

    def test_all_case_variant_categories_returned(self, store):
        """Categories differing only in case all match."""
        store.insert_row(["Math", "A", "B"], "one")
        store.insert_row(["MATH", "A", "B"], "two")
        result = SearchService(store).search("math")
        assert result.tier == SearchTier.CATEGORY
        assert len(result) == 2


class TestAdvancedSearch:
    """Tests for field-filtered search."""

    def test_no_filters_returns_everything(self, search):
        result = search.advanced_search()
        assert result.tier == SearchTier.FILTERED
        assert len(result) == 4

    def test_category_substring(self, search):
        result = search.advanced_search(category="sci")
        assert [entry.category for entry in result] == ["Science"]

    def test_subcategory_substring(self, search):
        result = search.advanced_search(subcategory="CALC")
        assert [entry.concept for entry in result] == ["Limits"]

    def test_content_terms_only_search_note_text(self, search):
        """Content terms are matched against the note, not the path."""
        assert len(search.advanced_search(content="calculus")) == 0
        assert len(search.advanced_search(content="epsilon delta")) == 1

    def test_filters_combine(self, search):
        result = search.advanced_search(category="math", content="groups")
        assert [entry.concept for entry in result] == ["Rings"]

    def test_blank_filters_ignored(self, search):
        assert len(search.advanced_search(category="  ", subcategory="")) == 4

    def test_query_description(self, search):
        result = search.advanced_search(category="math", content="groups")
        assert result.query == "category=math, content=groups"
