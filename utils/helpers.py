import json
import re
from typing import Any, Dict, List, Optional

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

def extract_section(content: str, marker: str) -> str:
    """Text after `marker` up to the end of its line, stripped; '' if absent."""
    start = content.find(marker)
    if start == -1:
        return ""
    start += len(marker)
    end = content.find("\n", start)
    if end == -1:
        end = len(content)
    return content[start:end].strip()

def split_key_points(section: str) -> List[str]:
    """Split a 'a|b|c' line, dropping blanks and surrounding brackets."""
    points = [p.strip().strip("[]").strip() for p in section.split("|")]
    return [p for p in points if p]

def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Best-effort parse of a model answer as a JSON object.

    Accepts a bare object or one wrapped in a ``` / ```json fence. Returns None
    for anything else, including valid JSON that is not an object.
    """
    candidate = text.strip()
    match = _FENCE.match(candidate)
    if match:
        candidate = match.group(1)
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None

def truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text
