"""Turn a raw LLM reply into an ordered list of disease names.

Rules, applied in order:
1. Trimmed reply equal to the "none found" sentinel, or containing the
   "not found" marker -> no diseases.
2. A bracketed list ``[a, b]`` -> split its interior on commas.
3. Otherwise strip an enumeration prefix ("1. ", "1、") and split on any
   ASCII or full-width list delimiter, dropping segments that carry an
   exclusion marker.
"""

import re
from collections.abc import Iterable

NONE_FOUND_SENTINEL = "未识别到病种"
NOT_FOUND_MARKER = "未识别到"
EXCLUDE_MARKERS = ("未识别", "无")
DELIMITERS = (",", "，", "、", ";", "；")

_BRACKETED = re.compile(r"\[(.*)\]", re.DOTALL)
_ENUMERATION_PREFIX = re.compile(r"^\d+[.、]\s*")


class DiseaseParser:
    """Pure, deterministic parser for disease-list replies."""

    def __init__(
        self,
        none_found_sentinel: str = NONE_FOUND_SENTINEL,
        not_found_marker: str = NOT_FOUND_MARKER,
        exclude_markers: Iterable[str] = EXCLUDE_MARKERS,
        delimiters: Iterable[str] = DELIMITERS,
    ):
        self.none_found_sentinel = none_found_sentinel
        self.not_found_marker = not_found_marker
        self.exclude_markers = tuple(exclude_markers)
        self.delimiters = tuple(delimiters)
        self._split = re.compile("|".join(re.escape(d) for d in self.delimiters))

    def parse(self, response_text: str) -> list[str]:
        text = (response_text or "").strip()

        if text == self.none_found_sentinel or (
            self.not_found_marker and self.not_found_marker in text
        ):
            return []

        bracketed = _BRACKETED.search(text)
        if bracketed:
            return [
                item.strip()
                for item in bracketed.group(1).split(",")
                if item.strip()
            ]

        body = _ENUMERATION_PREFIX.sub("", text)
        diseases = []
        for segment in self._split.split(body):
            segment = segment.strip()
            if not segment:
                continue
            if any(marker in segment for marker in self.exclude_markers):
                continue
            diseases.append(segment)
        return diseases


_default_parser = DiseaseParser()


def parse_diseases(response_text: str) -> list[str]:
    """Parse with the default markers and delimiters."""
    return _default_parser.parse(response_text)
