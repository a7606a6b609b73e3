"""
Sentence-bounded text chunking and file-type aware text extraction.
"""

import csv
import io
import json
import re
from pathlib import Path
from typing import Any, List, Tuple

# Sentence ends (". ", "! ", "? ") or a blank line
_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n[ \t]*\n\s*")
_XML_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_MD_LINK = re.compile(r"\[([^\]]+)\]\([^)]+\)")
_MD_SYNTAX = re.compile(r"[#*`_~]")

MAX_JSON_DEPTH = 10


def split_sentences(text: str) -> List[Tuple[int, int]]:
    """Return (start, end) offsets of each non-blank sentence in text."""
    spans = []
    start = 0
    for match in _BOUNDARY.finditer(text):
        _append_span(spans, text, start, match.start())
        start = match.end()
    _append_span(spans, text, start, len(text))
    return spans


def _append_span(spans: List[Tuple[int, int]], text: str, start: int, end: int) -> None:
    segment = text[start:end]
    stripped = segment.strip()
    if not stripped:
        return
    lead = len(segment) - len(segment.lstrip())
    spans.append((start + lead, start + lead + len(stripped)))


def chunk_text(text: str, chunk_size: int) -> List[str]:
    """
    Split text into sentence-aligned chunks of at most chunk_size characters.

    Sentences are accumulated greedily; a chunk is closed when the next
    sentence would push it past chunk_size. A single sentence longer than
    chunk_size becomes a chunk of its own. Chunks are exact slices of text
    (original separators preserved), stripped of surrounding whitespace.

    Args:
        text: Source text
        chunk_size: Maximum chunk length in characters

    Returns:
        Ordered list of chunks; empty for blank input
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1: {chunk_size}")

    stripped = text.strip()
    if not stripped:
        return []
    if len(stripped) <= chunk_size:
        return [stripped]

    chunks = []
    current_start = None
    current_end = None
    for start, end in split_sentences(text):
        if current_start is None:
            current_start, current_end = start, end
        elif end - current_start <= chunk_size:
            current_end = end
        else:
            chunks.append(text[current_start:current_end])
            current_start, current_end = start, end

    if current_start is not None:
        chunks.append(text[current_start:current_end])
    return chunks


def detect_file_type(path: Path) -> str:
    return {
        ".txt": "text",
        ".json": "json",
        ".csv": "csv",
        ".xml": "xml",
        ".md": "markdown",
        ".log": "log",
    }.get(path.suffix.lower(), "text")


def extract_text(path: Path, max_csv_rows: int = 100, max_log_lines: int = 1000) -> Tuple[str, str]:
    """
    Read a file and turn it into indexable plain text.

    Returns:
        (text, file_type)

    Raises:
        OSError: the file cannot be read
        ValueError: the file is not valid for its type (e.g. malformed JSON)
    """
    file_type = detect_file_type(path)
    raw = path.read_text(encoding="utf-8")

    if file_type == "json":
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON format: {e}")
        return _flatten_json(document).strip(), file_type

    if file_type == "csv":
        return _render_csv(raw, max_csv_rows), file_type

    if file_type == "xml":
        text = _XML_TAG.sub(" ", raw)
        return _WHITESPACE.sub(" ", text).strip(), file_type

    if file_type == "markdown":
        text = _MD_LINK.sub(r"\1", raw)
        return _MD_SYNTAX.sub("", text), file_type

    if file_type == "log":
        lines = [line for line in raw.splitlines() if line.strip() and len(line) > 10]
        return "\n".join(lines[:max_log_lines]), file_type

    return raw, file_type


def _flatten_json(element: Any, depth: int = 0) -> str:
    if depth > MAX_JSON_DEPTH:
        return ""
    if isinstance(element, dict):
        return "".join(f"{key}: {_flatten_json(value, depth + 1)}" for key, value in element.items())
    if isinstance(element, list):
        return "".join(_flatten_json(item, depth + 1) for item in element)
    if element is None:
        return ""
    if isinstance(element, bool):
        return f"{str(element).lower()}\n"
    return f"{element}\n"


def _render_csv(raw: str, max_rows: int) -> str:
    rows = list(csv.reader(io.StringIO(raw)))
    if not rows:
        raise ValueError("Empty CSV file")

    headers = [h.strip() for h in rows[0]]
    lines = [f"CSV Data with columns: {', '.join(headers)}"]
    for row in rows[1:max_rows + 1]:
        for header, value in zip(headers, row):
            if value.strip():
                lines.append(f"{header}: {value.strip()}")
        lines.append("")
    return "\n".join(lines).strip()
