"""Search and filtering over active catalog files."""

import re
from typing import Iterable, List, Mapping, Optional, Pattern, Tuple

from .exceptions import ValidationError
from .models import Category, FileRecord, SearchFilters


WILDCARDS = ("*", "?")


def split_keywords(text: Optional[str]) -> List[str]:
    """Split free text on whitespace into non-empty, lower-cased keywords."""
    if not text:
        return []
    return [keyword for keyword in text.lower().split() if keyword]


def compile_keyword(keyword: str) -> Pattern:
    """
    Compile one search keyword.

    Regex metacharacters are escaped except ``*`` (any run of word
    characters) and ``?`` (exactly one word character). A keyword without
    wildcards matches anywhere as a substring; a keyword with wildcards must
    match a whole word, so ``fo?`` finds "for" and "(for)" but not "fooo".
    Whitespace and punctuation both end a word.
    """
    parts = []
    for char in keyword:
        if char == "*":
            parts.append(r"\w*")
        elif char == "?":
            parts.append(r"\w")
        else:
            parts.append(re.escape(char))
    pattern = "".join(parts)

    if any(wildcard in keyword for wildcard in WILDCARDS):
        pattern = rf"(?<!\w){pattern}(?!\w)"

    return re.compile(pattern, re.IGNORECASE)


def searchable_text(record: FileRecord, categories: Mapping[str, Category]) -> str:
    """Lower-cased text a file is matched against."""
    category = categories.get(record.category)
    return " ".join([
        record.title,
        record.description,
        record.original_name,
        record.background_text,
        record.prompt_text,
        category.name if category else "",
    ]).lower()


def matches_text(text: str, patterns: Iterable[Pattern]) -> bool:
    """True when every pattern matches somewhere in ``text``."""
    return all(pattern.search(text) for pattern in patterns)


class QueryEngine:
    """
    Evaluates SearchFilters against a file collection.

    Dimensions combine with AND. Within ``tags`` a file needs any one of the
    requested ids. Results keep the collection's insertion order.
    """

    def search(self, files: Iterable[FileRecord], categories: Mapping[str, Category],
               filters: Optional[SearchFilters] = None) -> List[FileRecord]:
        page, _ = self.search_page(files, categories, filters)
        return page

    def search_page(self, files: Iterable[FileRecord], categories: Mapping[str, Category],
                    filters: Optional[SearchFilters] = None) -> Tuple[List[FileRecord], int]:
        """Requested page of matches plus the number of matches before paging."""
        filters = filters or SearchFilters()
        self._validate(filters)

        patterns = [compile_keyword(keyword) for keyword in split_keywords(filters.text)]
        wanted_tags = set(self._tag_list(filters.tags))

        results = []
        for record in files:
            if not record.is_active:
                continue
            if filters.category and record.category != filters.category:
                continue
            if filters.model and record.model != filters.model:
                continue
            if wanted_tags and wanted_tags.isdisjoint(record.tags):
                continue
            if patterns and not matches_text(searchable_text(record, categories), patterns):
                continue
            results.append(record)

        start = filters.offset or 0
        if filters.limit is not None:
            return results[start:start + filters.limit], len(results)
        return results[start:], len(results)

    @staticmethod
    def _tag_list(tags) -> List[str]:
        if not tags:
            return []
        if isinstance(tags, str):
            return [tags]
        return [tag for tag in tags if tag]

    @staticmethod
    def _validate(filters: SearchFilters) -> None:
        if filters.limit is not None and filters.limit < 0:
            raise ValidationError("Limit must be non-negative")
        if filters.offset is not None and filters.offset < 0:
            raise ValidationError("Offset must be non-negative")
