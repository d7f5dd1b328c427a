"""Heuristic complexity scoring of source text.

The score is a keyword and brace count, not a structural metric. Downstream
consumers only rely on it being stable and bounded to [1, 100].
"""

import re
from typing import Optional

MIN_COMPLEXITY = 1
MAX_COMPLEXITY = 100

# Sentinels written by enrichment when content is not scored.
UNREADABLE_COMPLEXITY = 1
DELETED_COMPLEXITY = 0

CONTROL_KEYWORDS = (
    "if",
    "else",
    "while",
    "for",
    "switch",
    "case",
    "try",
    "catch",
    "function",
    "class",
    "return",
)

ECMASCRIPT_LANGUAGES = frozenset({"javascript", "typescript"})

_KEYWORD_PATTERNS = [re.compile(rf"\b{kw}\b", re.ASCII) for kw in CONTROL_KEYWORDS]
_ASYNC_PATTERN = re.compile(r"\basync\b|\bawait\b", re.ASCII)


def calculate_complexity(content: str, language: Optional[str] = None) -> int:
    """Score file content.

    Args:
        content: File text.
        language: Detected language; ECMAScript languages also count
            async/await.

    Returns:
        Integer in [1, 100].
    """
    complexity = MIN_COMPLEXITY

    for pattern in _KEYWORD_PATTERNS:
        complexity += len(pattern.findall(content))

    # Brace imbalance stands in for nesting depth.
    brace_imbalance = content.count("{") - content.count("}")
    complexity += 2 * max(brace_imbalance, 0)

    if language in ECMASCRIPT_LANGUAGES:
        complexity += len(_ASYNC_PATTERN.findall(content))

    return min(complexity, MAX_COMPLEXITY)
