"""
Unit tests for free-text search intent detection.
"""

from datetime import date

import pytest

from service_sharepoint.app.query.intent import IntentClassifier, IntentType

FOLDER_ROOT = "/sites/Team/Documents"


class TestIntentClassifier:
    """Test cases for IntentClassifier."""

    @pytest.fixture
    def classifier(self):
        return IntentClassifier(FOLDER_ROOT, today=lambda: date(2025, 6, 1))

    def test_rule_order(self, classifier):
        assert [name for name, _rule in classifier.rules] == [
            "author", "file_type", "month", "recent", "folder", "statistics", "file_name",
        ]

    def test_author_wins_over_file_type(self, classifier):
        intent = classifier.classify("excel files from Nicole")

        assert intent.type == IntentType.FILE_BY_AUTHOR
        assert intent.author == "Nicole Stirling"

    def test_unknown_author_is_title_cased(self, classifier):
        intent = classifier.classify("reports by john smith")

        assert intent.type == IntentType.FILE_BY_AUTHOR
        assert intent.author == "John Smith"

    def test_author_name_stops_at_preposition(self, classifier):
        intent = classifier.classify("files created by john smith in marketing")

        assert intent.type == IntentType.FILE_BY_AUTHOR
        assert intent.author == "John Smith"

    def test_known_full_name_without_phrase(self, classifier):
        intent = classifier.classify("christine gooding budget")

        assert intent.type == IntentType.FILE_BY_AUTHOR
        assert intent.author == "Christine Gooding"

    def test_custom_known_authors(self):
        classifier = IntentClassifier(FOLDER_ROOT, known_authors={"sam": "Sam Jones"})

        assert classifier.classify("anything sam wrote").author == "Sam Jones"
        assert classifier.classify("nicole stirling notes").type == IntentType.KEYWORD_SEARCH

    @pytest.mark.parametrize("query,extension", [
        ("show me pdf files", "pdf"),
        ("all spreadsheets", "xlsx"),
        ("presentations for the pitch", "pptx"),
        ("word files", "docx"),
    ])
    def test_file_type(self, classifier, query, extension):
        intent = classifier.classify(query)

        assert intent.type == IntentType.FILE_BY_TYPE
        assert intent.file_type == extension

    def test_month_with_year(self, classifier):
        intent = classifier.classify("files from march 2024")

        assert intent.type == IntentType.FILE_BY_DATE
        assert intent.month == 3
        assert intent.year == 2024

    def test_month_defaults_to_current_year(self, classifier):
        intent = classifier.classify("files from march")

        assert intent.type == IntentType.FILE_BY_DATE
        assert (intent.month, intent.year) == (3, 2025)

    def test_recent_with_count(self, classifier):
        intent = classifier.classify("show me the 5 most recent files")

        assert intent.type == IntentType.RECENT_FILES
        assert intent.count == 5

    def test_recent_default_count(self, classifier):
        intent = classifier.classify("latest uploads")

        assert intent.type == IntentType.RECENT_FILES
        assert intent.count == 10

    def test_folder_keyword(self, classifier):
        intent = classifier.classify("templates folder")

        assert intent.type == IntentType.FOLDER_CONTENTS
        assert intent.folder_path == "/sites/Team/Documents/templates"

    def test_statistics(self, classifier):
        assert classifier.classify("how many files do we have").type == IntentType.STATISTICS

    def test_known_file_name(self, classifier):
        intent = classifier.classify("venue research")

        assert intent.type == IntentType.FILE_BY_NAME
        assert intent.term == "Venue Research"

    def test_keyword_fallback(self, classifier):
        intent = classifier.classify("  Quarterly Budget ")

        assert intent.type == IntentType.KEYWORD_SEARCH
        assert intent.keyword == "quarterly budget"
        assert intent.term == "quarterly budget"

    def test_to_dict_drops_unset_fields(self, classifier):
        data = classifier.classify("excel files from Nicole").to_dict()

        assert data == {
            "type": "file_by_author",
            "term": "excel files from nicole",
            "author": "Nicole Stirling",
        }

    def test_custom_folder_root(self):
        intent = IntentClassifier(folder_root="/sites/Other/Shared Documents/").classify("marketing")

        assert intent.type == IntentType.FOLDER_CONTENTS
        assert intent.folder_path == "/sites/Other/Shared Documents/marketing"
