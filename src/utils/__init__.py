"""Utility modules."""

from src.utils.logger import bind_context, get_logger, unbind_context
from src.utils.tracing import get_tracer, init_tracing, shutdown_tracing
from src.utils.body_sanitizer import (
    collapse_whitespace,
    html_to_text,
    prepare_for_prompt,
    strip_unsafe_html,
)

__all__ = [
    "bind_context",
    "get_logger",
    "unbind_context",
    "get_tracer",
    "init_tracing",
    "shutdown_tracing",
    "collapse_whitespace",
    "html_to_text",
    "prepare_for_prompt",
    "strip_unsafe_html",
]
