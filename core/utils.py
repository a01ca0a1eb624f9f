import re
from typing import Any, Dict, Iterable, List


def clean_json_response(content: str) -> str:
    """
    Clean JSON response from LLM by removing markdown code blocks.

    Args:
        content: The raw string response from LLM

    Returns:
        Cleaned string containing just the JSON content
    """
    # Remove markdown code blocks
    pattern = r"```(?:json)?\s*(.*?)\s*```"
    match = re.search(pattern, content, re.DOTALL)
    if match:
        return match.group(1)

    # Also handle case where it might be wrapped in just ```
    return content.strip()


def dedupe_sources(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep the first source seen for every URL, preserving order."""
    seen = set()
    unique = []
    for item in items:
        url = item.get("url")
        if not url or url in seen:
            continue
        seen.add(url)
        unique.append(item)
    return unique
