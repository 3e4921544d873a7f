import re
import json
import logging
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)


def strip_fences(text: str) -> str:
    """Remove Markdown fences and a leading "json" label around a model reply."""
    s = re.sub(r'^\s*```(?:json)?\s*', '', text, flags=re.I)
    s = re.sub(r'\s*```\s*$', '', s)
    s = re.sub(r'^\s*json[:\s]*', '', s, flags=re.I)
    return s


def extract_object_block(text: str) -> str:
    """Return the outermost {...} block of a reply."""
    match = re.search(r'\{.*\}', text, flags=re.S)
    if not match:
        raise ValueError("No JSON object found in reply")
    return match.group(0)


def normalize_js_syntax(text: str) -> str:
    """Turn common JavaScript-isms (comments, trailing commas, single quotes) into JSON."""
    # "//" right after ":" is a URL scheme, not a comment
    s = re.sub(r'(?<!:)//.*?$|/\*.*?\*/', '', text, flags=re.S | re.M)
    s = re.sub(r',\s*(?=[}\]])', '', s)

    # Single-quoted keys
    s = re.sub(r"'\s*([^']+?)\s*'\s*:", r'"\1":', s)

    # Single-quoted string values
    s = re.sub(r":\s*'([^']*?)'(?=\s*[,\}\]])",
               lambda m: ':"' + m.group(1).replace('"', '\\"') + '"',
               s)
    return s


def _escape_raw_newlines(match: "re.Match") -> str:
    return match.group(0).replace('\n', '\\n').replace('\r', '\\r')


def load_json_object(text: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
    """
    Parse a JSON object out of a model reply.

    Tolerates the usual model noise:
        - ```json ... ``` fences and a leading "json" label
        - prose before or after the object
        - // and /* */ comments, trailing commas
        - single-quoted keys/values
        - raw newlines inside string values

    Args:
        text: Raw reply text (a dict is returned unchanged)

    Returns:
        The parsed object

    Raises:
        ValueError: If no JSON object can be recovered, or the top-level value is not an object
    """
    if isinstance(text, dict):
        return text

    s = strip_fences(str(text))
    s = extract_object_block(s)
    s = normalize_js_syntax(s)
    # Drop control characters JSON does not allow (tab, LF and CR stay)
    s = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F]', '', s)
    s = re.sub(r'"(.*?)(?<!\\)"', _escape_raw_newlines, s, flags=re.S)

    try:
        obj = json.loads(s)
    except json.JSONDecodeError as e:
        logger.warning(f"Could not parse model reply as JSON. Raw snippet: {s[:200]!r}")
        raise ValueError(f"Could not parse JSON object: {e}") from e

    if not isinstance(obj, dict):
        raise ValueError(f"Expected a JSON object, got {type(obj).__name__}")
    return obj
