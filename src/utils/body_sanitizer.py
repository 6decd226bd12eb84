"""Email body cleanup: HTML to text, unsafe-markup stripping, prompt preparation.

Usage:
    from src.utils.body_sanitizer import html_to_text, prepare_for_prompt

    text = html_to_text(raw_html)
    prompt_body = prepare_for_prompt(text, max_chars=500)
"""

import html
import re
from typing import Callable

from bs4 import BeautifulSoup

# Type alias for body cleanup steps
Cleaner = Callable[[str], str]

_UNSAFE_TAGS = ("script", "iframe", "object", "embed", "link", "style", "meta", "base", "form")


def html_to_text(text: str) -> str:
    """Convert HTML to plain text, preserving block structure as newlines."""
    if not text or not text.strip():
        return ""

    soup = BeautifulSoup(text, "lxml")

    for el in soup(["script", "style", "head", "meta", "link"]):
        el.decompose()

    for br in soup.find_all("br"):
        br.replace_with("\n")
    for tag in soup.find_all(["p", "div", "tr", "li"]):
        tag.insert_before("\n")
        tag.insert_after("\n")
    for tag in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"]):
        tag.insert_before("\n\n")
        tag.insert_after("\n")

    return html.unescape(soup.get_text(separator=" "))


def strip_unsafe_html(text: str) -> str:
    """Remove active content (scripts, frames, handlers, javascript: URLs) from stored HTML."""
    if not text:
        return ""
    soup = BeautifulSoup(text, "lxml")
    for el in soup(list(_UNSAFE_TAGS)):
        el.decompose()
    for tag in soup.find_all(True):
        for attr in list(tag.attrs):
            value = tag.attrs[attr]
            if attr.lower().startswith("on"):
                del tag.attrs[attr]
            elif isinstance(value, str) and value.strip().lower().startswith("javascript:"):
                del tag.attrs[attr]
    body = soup.body
    return body.decode_contents() if body is not None else str(soup)


def decode_special_characters(text: str) -> str:
    """Fix encoding noise: zero-width chars, NBSP, line endings."""
    text = re.sub(r"[\u200b\u200c\u200d\ufeff]", "", text)
    for old, new in (("\u00a0", " "), ("\r\n", "\n"), ("\r", "\n")):
        text = text.replace(old, new)
    return text


_QUOTE_START_PATTERNS = [
    re.compile(r"^On\s+.{5,80}\s+wrote:\s*$", re.I),
    re.compile(r"^Am\s+.{5,80}\s+schrieb\s+.+:\s*$", re.I),
    re.compile(r"^-{3,}\s*(Original\s+Message|Ursprüngliche\s+Nachricht)\s*-{3,}\s*$", re.I),
]


def remove_quoted_replies(text: str) -> str:
    """Drop quoted history (> lines and everything after an 'On X wrote:' marker)."""
    result = []
    for line in text.split("\n"):
        stripped = line.strip()
        if any(p.match(stripped) for p in _QUOTE_START_PATTERNS):
            break
        if stripped.startswith(">"):
            continue
        result.append(line)
    return "\n".join(result)


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace and runs of blank lines."""
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.split("\n")]
    result = []
    blanks = 0
    for line in lines:
        if not line:
            blanks += 1
            if blanks <= 2:
                result.append(line)
        else:
            blanks = 0
            result.append(line)
    return "\n".join(result).strip()


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run (including newlines) into a single space."""
    return re.sub(r"\s+", " ", text or "").strip()


def truncate_smartly(text: str, max_chars: int) -> str:
    """Keep the beginning and the end of long text, marking the cut."""
    if len(text) <= max_chars:
        return text
    half = max(max_chars // 2 - 50, 1)
    return f"{text[:half]}\n\n[... content truncated ...]\n\n{text[-half:]}"


PROMPT_PIPELINE: list[Cleaner] = [
    decode_special_characters,
    remove_quoted_replies,
    normalize_whitespace,
]


def prepare_for_prompt(text: str, max_chars: int | None = None, pipeline: list[Cleaner] | None = None) -> str:
    """Clean a plain-text body for inclusion in an LLM prompt."""
    if not text:
        return ""
    for cleaner in (pipeline or PROMPT_PIPELINE):
        text = cleaner(text)
    if max_chars is not None:
        text = text[:max_chars]
    return text
