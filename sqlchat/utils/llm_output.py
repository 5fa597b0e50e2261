"""
LLM Output Parsing

Models answer in one of three shapes: bare JSON, JSON wrapped in a Markdown
code fence, or prose. ``parse_json_output`` classifies the text into exactly
one of those variants so callers branch on the type instead of catching
decode errors.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCE_PATTERN = re.compile(r"```[ \t]*(?:([A-Za-z0-9_+-]+)[ \t]*\n)?(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class ParsedJson:
    value: Any


@dataclass(frozen=True)
class MarkdownFencedJson:
    value: Any
    language: str = ""


@dataclass(frozen=True)
class Unparseable:
    text: str
    error: str


LLMOutput = ParsedJson | MarkdownFencedJson | Unparseable


def parse_json_output(text: str) -> LLMOutput:
    """Classify raw model output as bare JSON, fenced JSON, or unparseable."""
    stripped = (text or "").strip()
    if not stripped:
        return Unparseable(text=text or "", error="empty response")

    try:
        return ParsedJson(json.loads(stripped))
    except json.JSONDecodeError as e:
        first_error = str(e)

    for match in _FENCE_PATTERN.finditer(stripped):
        language, body = (match.group(1) or "").lower(), match.group(2).strip()
        if language not in {"", "json"}:
            continue
        try:
            return MarkdownFencedJson(json.loads(body), language=language)
        except json.JSONDecodeError:
            continue

    # Prose around an object, e.g. "Here you go: {...}"
    embedded = _embedded_json(stripped)
    if embedded is not None:
        return ParsedJson(embedded)

    return Unparseable(text=stripped, error=first_error)


def json_value(output: LLMOutput) -> Any | None:
    """Return the decoded value of a JSON variant, ``None`` for Unparseable."""
    if isinstance(output, (ParsedJson, MarkdownFencedJson)):
        return output.value
    return None


def strip_code_fence(text: str) -> str:
    """
    Return the body of the first Markdown code fence, or the trimmed text.

    A language tag (```sql) is dropped only when a newline follows it, so
    one-line fences keep their first word.
    """
    stripped = (text or "").strip()
    match = _FENCE_PATTERN.search(stripped)
    if match:
        return match.group(2).strip()
    if stripped.startswith("```"):
        # Unterminated fence
        body = stripped[3:]
        first_line, _, rest = body.partition("\n")
        if first_line.strip().isalnum():
            body = rest
        return body.strip()
    return stripped


def _embedded_json(text: str) -> Any | None:
    decoder = json.JSONDecoder()
    for opener in ("{", "["):
        start = text.find(opener)
        while start != -1:
            try:
                value, _ = decoder.raw_decode(text, start)
                return value
            except json.JSONDecodeError:
                start = text.find(opener, start + 1)
    return None
