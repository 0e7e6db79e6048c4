"""Format detection over the handler registry."""

import logging

from weightlog.models import ImportHandler
from weightlog.registry import (
    detect_handler,
    get_handler_by_id,
    get_import_handlers,
    has_builtin_handlers,
    score_handlers,
)

FITBIT_CSV = """Date,Weight (lbs),Fitbit Steps
2024-01-01,180.4,5000
2024-01-04,179.1,8000
"""


def _handler(handler_id: str, score: float) -> ImportHandler:
    return ImportHandler(id=handler_id, label=handler_id, detect=lambda _c: score, parse=lambda _c: [])


def _broken_detect(_content: str) -> float:
    raise RuntimeError("boom")


def test_registry_order_and_lookup() -> None:
    ids = [h.id for h in get_import_handlers()]
    assert ids == ["fitbit-weight-csv", "generic-weight-csv"]
    assert has_builtin_handlers()
    assert get_handler_by_id("generic-weight-csv") is not None
    assert get_handler_by_id("nope") is None


def test_detects_fitbit_over_generic() -> None:
    handler = detect_handler(FITBIT_CSV)
    assert handler is not None and handler.id == "fitbit-weight-csv"


def test_plain_date_weight_csv_uses_generic_handler() -> None:
    handler = detect_handler("date,weight\n2024-01-01,80\n")
    assert handler is not None and handler.id == "generic-weight-csv"


def test_unknown_format_returns_none() -> None:
    assert detect_handler("Mon 1st: 180 pounds\nTue 2nd: 179.5 pounds\n") is None
    assert detect_handler("") is None


def test_detection_is_idempotent() -> None:
    results = {detect_handler(FITBIT_CSV).id for _ in range(5)}
    assert results == {"fitbit-weight-csv"}


def test_tie_keeps_first_registered() -> None:
    handlers = (_handler("a", 0.7), _handler("b", 0.7), _handler("c", 0.2))
    assert detect_handler("x", handlers).id == "a"


def test_zero_scores_mean_no_match() -> None:
    assert detect_handler("x", (_handler("a", 0), _handler("b", -1))) is None


def test_broken_handler_is_isolated(caplog) -> None:
    broken = ImportHandler(id="broken", label="Broken", detect=_broken_detect, parse=lambda _c: [])
    handlers = (broken, _handler("ok", 0.3))
    with caplog.at_level(logging.WARNING, logger="weightlog.registry"):
        chosen = detect_handler("x", handlers)
    assert chosen is not None and chosen.id == "ok"
    assert any("broken" in r.getMessage() for r in caplog.records)
    scores = score_handlers("x", handlers)
    assert [(s.id, s.score) for s in scores] == [("broken", 0.0), ("ok", 0.3)]
