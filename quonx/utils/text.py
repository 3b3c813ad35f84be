"""Text helpers shared by the agents."""
import json
import logging
import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```(\w+)?\n([\s\S]*?)```")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]")


def sanitize_input(value: Any) -> str:
    """Coerce to text and strip null bytes and control characters."""
    if not isinstance(value, str):
        value = "" if value is None else str(value)
    return _CONTROL_CHARS.sub("", value).strip()


def truncate_text(text: str, max_length: int = 4000) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def extract_code_blocks(text: str) -> List[Dict[str, str]]:
    """
    Find fenced code blocks in a response.

    Args:
        text: Model output

    Returns:
        List of {"language", "code"} dictionaries in order of appearance
    """
    return [
        {"language": match.group(1) or "text", "code": match.group(2).strip()}
        for match in CODE_BLOCK_PATTERN.finditer(text)
    ]


def detect_language(code: str) -> str:
    """Guess a fence language from code contents."""
    if "def " in code and ":" in code:
        return "python"
    if "function" in code and "{" in code:
        return "javascript"
    if "class " in code and "public" in code:
        return "java"
    if "#include" in code:
        return "cpp"
    if "SELECT" in code or "FROM" in code:
        return "sql"
    return "text"


def cleanup_response(text: str) -> str:
    """Collapse runs of blank lines and tighten code fences."""
    text = re.sub(r"\n\s*\n\s*\n", "\n\n", text)
    text = re.sub(r"```(\w+)?\n\n", lambda m: f"```{m.group(1) or ''}\n", text)
    text = re.sub(r"\n\n```", "\n```", text)
    text = re.sub(r"([.!?])[ \t]+([A-Z])", r"\1 \2", text)
    return text.strip()


def format_code_blocks(text: str) -> str:
    """Ensure every fence carries a language hint."""
    def _format(match: re.Match) -> str:
        code = match.group(2)
        language = match.group(1) or detect_language(code)
        return f"```{language}\n{code.strip()}\n```"

    return CODE_BLOCK_PATTERN.sub(_format, text)


def strip_json_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_safely(text: str) -> Optional[Any]:
    """Parse JSON, returning None instead of raising."""
    try:
        return json.loads(strip_json_fence(text))
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(f"Failed to parse JSON: {e}")
        return None


def keyword_matches(text: str, keywords: Iterable[str]) -> List[str]:
    """
    Keywords present in text.

    Single words match when they occur inside any whitespace-separated token
    of the lower-cased text; multi-word phrases match as substrings.
    """
    lowered = text.lower()
    words = lowered.split()
    matched = []
    for keyword in keywords:
        if " " in keyword:
            if keyword in lowered:
                matched.append(keyword)
        elif any(keyword in word for word in words):
            matched.append(keyword)
    return matched


def keyword_score(text: str, keywords: List[str]) -> float:
    """Matched-keyword count over total keywords in the category."""
    if not keywords:
        return 0.0
    return len(keyword_matches(text, keywords)) / len(keywords)


def contains_any(text: str, phrases: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in phrases)


def extract_keywords(text: str, max_keywords: int = 10) -> List[str]:
    """Most frequent words longer than three characters."""
    words = [
        word for word in re.sub(r"[^\w\s]", " ", text.lower()).split()
        if len(word) > 3
    ]
    return [word for word, _ in Counter(words).most_common(max_keywords)]
