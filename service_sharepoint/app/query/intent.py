"""
Free-text search intent detection.

A query is lowercased and run through an ordered rule table; the first rule
that returns an :class:`Intent` wins. Queries no rule claims become a
keyword search over the whole text.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple


class IntentType(str, Enum):
    FILE_BY_NAME = "file_by_name"
    FILE_BY_TYPE = "file_by_type"
    FILE_BY_AUTHOR = "file_by_author"
    FILE_BY_DATE = "file_by_date"
    FOLDER_CONTENTS = "folder_contents"
    KEYWORD_SEARCH = "keyword_search"
    RECENT_FILES = "recent_files"
    STATISTICS = "statistics"
    MULTI_CRITERIA = "multi_criteria"


@dataclass
class Intent:
    """Detected intent plus the parameters its query template needs."""

    type: IntentType
    term: Optional[str] = None
    file_type: Optional[str] = None
    author: Optional[str] = None
    month: Optional[int] = None
    year: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    folder_path: Optional[str] = None
    keyword: Optional[str] = None
    count: Optional[int] = None
    criteria: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {key: value for key, value in asdict(self).items() if value not in (None, {})}
        data["type"] = self.type.value
        return data


# Checked in order; first pattern that matches decides the extension.
FILE_TYPE_PATTERNS: List[Tuple[str, str]] = [
    (r"word|docx|doc|word documents?", "docx"),
    (r"powerpoint|pptx|ppt|presentations?|slides?", "pptx"),
    (r"excel|xlsx|xls|spreadsheets?", "xlsx"),
    (r"pdf|pdfs", "pdf"),
]

AUTHOR_PHRASE = re.compile(r"\b(?:by|created by|from|authored by)\s+([a-z\s]+)")

# Words that follow "by"/"from" without naming a person.
NON_AUTHOR_WORDS = {"the", "this", "last", "my", "our", "all", "a", "an", "type", "date", "name", "folder"}

# Words that end a captured author name.
NAME_TERMINATORS = {"in", "on", "at", "with", "and", "for", "during", "since", "about"}

# Lowercase name fragment -> display name stored on the platform.
DEFAULT_KNOWN_AUTHORS: Dict[str, str] = {
    "nicole stirling": "Nicole Stirling",
    "christine gooding": "Christine Gooding",
    "sajjad": "Sajjad",
    "nicole": "Nicole Stirling",
    "christine": "Christine Gooding",
}

MONTHS: Dict[str, int] = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}

YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")
NUMBER_PATTERN = re.compile(r"(\d+)")

RECENT_KEYWORDS = ("recent", "latest", "newest")
DEFAULT_RECENT_COUNT = 10

FOLDER_KEYWORDS = ("templates", "marketing", "branding", "clients", "internal assets")

STATISTICS_KEYWORDS = ("statistics", "summary", "how many", "count")

# Phrase -> file name fragment searched for.
KNOWN_FILE_NAMES: Dict[str, str] = {
    "venue research": "Venue Research",
    "conference checklist": "conference checklist",
    "event signage": "Event signage",
}

Rule = Callable[[str], Optional[Intent]]


class IntentClassifier:
    """Maps free-text search input to an :class:`Intent`."""

    def __init__(
        self,
        folder_root: str = "/sites/YourSite/Documents",
        *,
        known_authors: Optional[Mapping[str, str]] = None,
        today: Callable[[], date] = date.today,
    ):
        self.folder_root = folder_root.rstrip("/")
        self.known_authors = dict(DEFAULT_KNOWN_AUTHORS if known_authors is None else known_authors)
        self._today = today
        self.rules: List[Tuple[str, Rule]] = [
            ("author", self._match_author),
            ("file_type", self._match_file_type),
            ("month", self._match_month),
            ("recent", self._match_recent),
            ("folder", self._match_folder),
            ("statistics", self._match_statistics),
            ("file_name", self._match_file_name),
        ]

    def classify(self, query: str) -> Intent:
        text = query.lower().strip()
        for _name, rule in self.rules:
            intent = rule(text)
            if intent is not None:
                return intent
        return Intent(IntentType.KEYWORD_SEARCH, term=text, keyword=text)

    def _resolve_author(self, name: str) -> str:
        words = []
        for word in name.split():
            if word in NAME_TERMINATORS:
                break
            words.append(word)
        name = " ".join(words)
        for fragment in sorted(self.known_authors, key=len, reverse=True):
            if name == fragment or name.startswith(fragment + " "):
                return self.known_authors[fragment]
        return name.title()

    def _match_author(self, text: str) -> Optional[Intent]:
        match = AUTHOR_PHRASE.search(text)
        words = match.group(1).split() if match else []
        if words and words[0] not in NON_AUTHOR_WORDS and words[0] not in MONTHS:
            author = self._resolve_author(match.group(1))
            if author:
                return Intent(IntentType.FILE_BY_AUTHOR, term=text, author=author)

        # Longest fragment first so "nicole stirling" wins over "nicole".
        for fragment in sorted(self.known_authors, key=len, reverse=True):
            if fragment in text:
                return Intent(IntentType.FILE_BY_AUTHOR, term=text, author=self.known_authors[fragment])
        return None

    def _match_file_type(self, text: str) -> Optional[Intent]:
        for pattern, extension in FILE_TYPE_PATTERNS:
            if re.search(pattern, text):
                return Intent(IntentType.FILE_BY_TYPE, term=text, file_type=extension)
        return None

    def _match_month(self, text: str) -> Optional[Intent]:
        for name, number in MONTHS.items():
            if re.search(rf"\b{name}\b", text):
                year_match = YEAR_PATTERN.search(text)
                year = int(year_match.group(1)) if year_match else self._today().year
                return Intent(IntentType.FILE_BY_DATE, term=text, month=number, year=year)
        return None

    def _match_recent(self, text: str) -> Optional[Intent]:
        if any(word in text for word in RECENT_KEYWORDS):
            count_match = NUMBER_PATTERN.search(text)
            count = int(count_match.group(1)) if count_match else DEFAULT_RECENT_COUNT
            return Intent(IntentType.RECENT_FILES, term=text, count=count)
        return None

    def _match_folder(self, text: str) -> Optional[Intent]:
        for folder in FOLDER_KEYWORDS:
            if folder in text:
                return Intent(IntentType.FOLDER_CONTENTS, term=text, folder_path=f"{self.folder_root}/{folder}")
        return None

    def _match_statistics(self, text: str) -> Optional[Intent]:
        if any(word in text for word in STATISTICS_KEYWORDS):
            return Intent(IntentType.STATISTICS, term=text)
        return None

    def _match_file_name(self, text: str) -> Optional[Intent]:
        for phrase, name in KNOWN_FILE_NAMES.items():
            if phrase in text:
                return Intent(IntentType.FILE_BY_NAME, term=name)
        return None

