"""
Fair Housing screening for generated marketing copy.
"""

from __future__ import annotations

import re
from typing import Any

# category -> (pattern, message)
VIOLATION_PATTERNS: dict[str, list[tuple[re.Pattern[str], str]]] = {
    "familial_status": [
        (re.compile(r"\bno\s+(children|kids)\b", re.I), "Excludes families with children"),
        (re.compile(r"\badults?[\s-]+only\b", re.I), "Restricts occupancy to adults"),
    ],
    "age": [
        (re.compile(r"\bseniors?[\s-]+only\b", re.I), "Restricts occupancy by age"),
        (re.compile(r"\belderly\b", re.I), "Refers to the age of occupants"),
        (re.compile(r"\byoung\s+professionals?\b", re.I), "Expresses an age preference"),
    ],
    "religion": [
        (re.compile(r"\bnear\s+(a\s+|the\s+)?(church|mosque|synagogue|temple)\b", re.I),
         "References proximity to a religious institution"),
        (re.compile(r"\b(christian|jewish|muslim)\s+community\b", re.I), "Describes a religious community"),
    ],
    "race": [
        (re.compile(r"\b(white|black|asian|hispanic)\s+neighbou?rhood\b", re.I),
         "Describes neighbourhood demographics"),
        (re.compile(r"\bexclusive\s+community\b", re.I), "May imply exclusion of protected groups"),
    ],
    "disability": [
        (re.compile(r"\bmust\s+be\s+able\s+to\b", re.I), "Sets physical ability requirements"),
        (re.compile(r"\bno\s+wheelchairs?\b", re.I), "Excludes people with disabilities"),
    ],
}

# phrase -> suggestion; not violations, but worth a second look
REVIEW_SUGGESTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bwalk(ing)?\s+to\b", re.I),
     "Consider 'close to' or a distance instead of 'walk to', which assumes mobility"),
    (re.compile(r"\bwalking\s+distance\b", re.I),
     "Consider stating the distance rather than 'walking distance'"),
    (re.compile(r"\bclose\s+to\s+schools\b", re.I),
     "Describe the property rather than who it suits; 'close to schools' can imply familial preference"),
    (re.compile(r"\bperfect\s+for\s+families\b", re.I),
     "Avoid describing the ideal occupant; describe the space instead"),
    (re.compile(r"\bbachelor\s+pad\b", re.I),
     "Avoid terms that imply marital status or gender"),
]


class FairHousingComplianceChecker:
    def check(self, text: str | None) -> dict[str, Any]:
        """
        Scan ``text`` for discriminatory phrasing.

        Returns:
            ``{"compliant": bool, "violations": [...], "suggestions": [...]}``;
            each violation has ``category``, ``phrase`` and ``message``.
        """
        if not text or not text.strip():
            return {"compliant": True, "violations": [], "suggestions": []}

        violations = []
        for category, patterns in VIOLATION_PATTERNS.items():
            for pattern, message in patterns:
                for match in pattern.finditer(text):
                    violations.append({"category": category, "phrase": match.group(0), "message": message})

        suggestions = []
        for pattern, suggestion in REVIEW_SUGGESTIONS:
            if pattern.search(text) and suggestion not in suggestions:
                suggestions.append(suggestion)

        return {"compliant": not violations, "violations": violations, "suggestions": suggestions}
