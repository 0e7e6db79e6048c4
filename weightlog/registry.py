"""Ordered, read-only registry of built-in weight import handlers and format detection."""

from __future__ import annotations

import logging
from typing import Optional

from .csv_format import fitbit_weight_csv, generic_weight_csv
from .models import HandlerScore, ImportHandler

logger = logging.getLogger(__name__)

# Registration order is the tie-break: earlier handlers win equal scores.
_HANDLERS: tuple[ImportHandler, ...] = (
    fitbit_weight_csv,
    generic_weight_csv,
)


def get_import_handlers() -> tuple[ImportHandler, ...]:
    return _HANDLERS


def has_builtin_handlers() -> bool:
    return len(_HANDLERS) > 0


def get_handler_by_id(handler_id: str) -> Optional[ImportHandler]:
    for handler in _HANDLERS:
        if handler.id == handler_id:
            return handler
    return None


def _safe_score(handler: ImportHandler, content: str) -> float:
    """Handler's confidence; a handler whose detect() raises scores 0."""
    try:
        return float(handler.detect(content) or 0)
    except Exception:
        logger.warning("Weight importer %r detect() failed", handler.id, exc_info=True)
        return 0.0


def score_handlers(content: str, handlers: tuple[ImportHandler, ...] | None = None) -> list[HandlerScore]:
    """Every handler's confidence for content, in registration order."""
    return [
        HandlerScore(id=h.id, label=h.label, score=_safe_score(h, content))
        for h in (handlers if handlers is not None else _HANDLERS)
    ]


def detect_handler(content: str, handlers: tuple[ImportHandler, ...] | None = None) -> Optional[ImportHandler]:
    """
    Return the handler with the strictly highest positive score, or None.
    Never raises: a broken handler only loses its own vote.
    """
    best: Optional[ImportHandler] = None
    best_score = 0.0
    for handler in handlers if handlers is not None else _HANDLERS:
        score = _safe_score(handler, content)
        if score > best_score:
            best, best_score = handler, score
    if best is not None:
        logger.debug("Detected weight import format %s (score %.2f)", best.id, best_score)
    return best
