"""Keyword categories and delegation rules used by the agents' classification step."""
import re
from typing import List, Sequence

from quonx.utils.text import contains_any, keyword_score

# Chat agent categories
CHAT_CODE_KEYWORDS = [
    "code", "function", "class", "method", "variable", "algorithm",
    "implement", "debug", "fix", "refactor", "optimize", "write",
    "create", "build", "develop", "program",
]

CHAT_REASONING_KEYWORDS = [
    "explain", "why", "how", "analyze", "compare", "evaluate",
    "pros and cons", "best practice", "recommend", "suggest",
    "architecture", "design pattern", "trade-off",
]

DEEP_ANALYSIS_INDICATORS = [
    "architecture", "design pattern", "best practice", "performance",
    "scalability", "security", "maintainability", "trade-off",
    "pros and cons", "advantages", "disadvantages",
]

# Code agent categories
VALIDATION_KEYWORDS = [
    "test", "validate", "verify", "review", "secure", "correct",
    "edge case", "robust", "safe", "check",
]

CRITICAL_CODE_INDICATORS = [
    "security", "production", "validate", "verify", "edge case",
    "thread-safe", "concurrency", "review",
]

# Reasoning agent categories
IMPLEMENTATION_KEYWORDS = [
    "implement", "code", "write", "build", "create", "program",
    "function", "script", "develop",
]

IMPLEMENTATION_PHRASES = [
    "implement", "write code", "code example", "show me the code", "sample code",
]

# Profile signals
EXPERTISE_SIGNALS = ["optimize", "performance", "architecture", "scalability"]

INTEREST_TERMS = [
    "javascript", "python", "java", "react", "node.js", "docker",
    "kubernetes", "aws", "machine learning", "ai", "database",
]

TOPIC_TERMS = [
    "javascript", "python", "react", "node.js", "database", "api",
    "frontend", "backend", "testing", "deployment", "security",
]

REQUEST_PATTERNS = [
    re.compile(r"write (?:a |an |some )?(.+)", re.IGNORECASE),
    re.compile(r"create (?:a |an |some )?(.+)", re.IGNORECASE),
    re.compile(r"implement (?:a |an |the )?(.+)", re.IGNORECASE),
    re.compile(r"build (?:a |an |the )?(.+)", re.IGNORECASE),
]

TASK_PATTERNS = [
    re.compile(r"need to (.+)", re.IGNORECASE),
    re.compile(r"want to (.+)", re.IGNORECASE),
    re.compile(r"should (.+)", re.IGNORECASE),
    re.compile(r"will (.+)", re.IGNORECASE),
]


class KeywordClassifier:
    """Scores text against keyword categories; a category is needed above the threshold."""

    def __init__(self, threshold: float = 0.3):
        self.threshold = threshold

    def score(self, text: str, keywords: List[str]) -> float:
        return keyword_score(text, keywords)

    def needs(self, text: str, keywords: List[str], indicators: Sequence[str] = ()) -> bool:
        """True when the category score exceeds the threshold or any indicator phrase appears."""
        if self.score(text, keywords) > self.threshold:
            return True
        return bool(indicators) and contains_any(text, indicators)


def derive_request(text: str, label: str, fallback: str) -> str:
    """
    Turn "write/create/implement/build X" into "<label>: X".

    Args:
        text: Source input
        label: Prefix for a pattern match, e.g. "Code request"
        fallback: Prefix used with the whole input when nothing matches
    """
    for pattern in REQUEST_PATTERNS:
        match = pattern.search(text)
        if match:
            return f"{label}: {match.group(1)}"
    return f"{fallback}: {text}"


def extract_tasks(text: str) -> List[str]:
    tasks = []
    for pattern in TASK_PATTERNS:
        tasks.extend(match.group(1).strip() for match in pattern.finditer(text))
    return tasks
