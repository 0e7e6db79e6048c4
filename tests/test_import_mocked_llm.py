"""End-to-end import: built-in formats, AI fallback with a mocked parser generator, storage gate."""

import tempfile
from pathlib import Path

import pytest

from weightlog.config import AISettings
from weightlog.errors import FallbackParserError, WeightImportError
from weightlog.ingest import (
    can_use_ai_import,
    can_use_weight_import,
    import_weight_log_impl,
    parse_weight_file,
)
from weightlog.llm_parser import set_parser_generator
from weightlog.models import GeneratedParser, ImportOptions, ImportWeightLogInput
from weightlog.storage import Storage

pytestmark = pytest.mark.usefixtures("utc_timezone")

FITBIT_CSV = """Date,Weight (lbs),Fitbit Steps
2024-01-01,180.4,5000
,182,6000
2024-01-03,not-a-number,7000
2024-01-04,179.1,8000
"""

FREEFORM = """Weigh-in diary
Jan 5 2024: 80.4kg
Jan 6 2024: 80.1kg
Jan 7 2024: ???
"""

_FREEFORM_PARSER = '''
import re

def parseWeightLog(file_text):
    out = []
    for line in file_text.splitlines():
        m = re.match(r"^(\\w+ \\d+ \\d{4}): ([\\d.]+)(kg|lb)$", line.strip())
        if m:
            out.append({"day": m.group(1), "value": m.group(2), "unit": m.group(3)})
    return out
'''

# No provider configured: the only way to the AI path is an explicit generator.
NO_AI = AISettings(provider="openai", openai_api_key=None)


def _mock_generator(sample: str) -> GeneratedParser:
    """Return a parser for the 'Mon D YYYY: 80.4kg' diary format."""
    assert "Weigh-in diary" in sample
    return GeneratedParser(parser=_FREEFORM_PARSER, summary="Diary lines 'Mon D YYYY: <weight><unit>'.")


def _failing_generator(sample: str) -> GeneratedParser:
    raise RuntimeError("provider unavailable")


def test_fitbit_file_end_to_end() -> None:
    parsed = parse_weight_file(FITBIT_CSV, settings=NO_AI)
    assert parsed.source == "builtin"
    assert parsed.handler is not None and parsed.handler.id == "fitbit-weight-csv"
    assert [(o.weight, o.unit, o.recorded_at) for o in parsed.observations] == [
        (180.4, "lb", "2024-01-01T09:00:00.000Z"),
        (179.1, "lb", "2024-01-04T09:00:00.000Z"),
    ]


def test_builtin_match_never_calls_generator() -> None:
    def _unexpected(sample: str) -> GeneratedParser:
        raise AssertionError("generator must not be called for a recognized file")

    parsed = parse_weight_file(FITBIT_CSV, parser_generator=_unexpected, settings=NO_AI)
    assert parsed.source == "builtin"


def test_unknown_format_uses_generated_parser() -> None:
    parsed = parse_weight_file(FREEFORM, parser_generator=_mock_generator, settings=NO_AI)
    assert parsed.source == "ai"
    assert parsed.handler is None
    assert parsed.parser_summary
    assert [(o.weight, o.unit, o.recorded_at) for o in parsed.observations] == [
        (80.4, "kg", "2024-01-05T09:00:00.000Z"),
        (80.1, "kg", "2024-01-06T09:00:00.000Z"),
    ]


def test_unknown_format_without_ai_raises() -> None:
    set_parser_generator(None)
    with pytest.raises(WeightImportError, match="AI importer is disabled"):
        parse_weight_file(FREEFORM, settings=NO_AI)


def test_allow_ai_false_skips_generator() -> None:
    with pytest.raises(WeightImportError):
        parse_weight_file(FREEFORM, parser_generator=_mock_generator, settings=NO_AI, allow_ai=False)


def test_generator_failure_is_reported() -> None:
    with pytest.raises(WeightImportError, match="provider unavailable"):
        parse_weight_file(FREEFORM, parser_generator=_failing_generator, settings=NO_AI)


def test_broken_generated_parser_fails_loud() -> None:
    def _no_function(sample: str) -> GeneratedParser:
        return GeneratedParser(parser="x = 1\n")

    with pytest.raises(FallbackParserError, match="parseWeightLog"):
        parse_weight_file(FREEFORM, parser_generator=_no_function, settings=NO_AI)


def test_registered_generator_is_used() -> None:
    set_parser_generator(_mock_generator)
    try:
        assert can_use_ai_import(NO_AI)
        parsed = parse_weight_file(FREEFORM, settings=NO_AI)
        assert parsed.source == "ai"
        assert len(parsed.observations) == 2
    finally:
        set_parser_generator(None)
    assert not can_use_ai_import(NO_AI)
    assert can_use_weight_import(NO_AI)  # built-in handlers are always available


def test_import_impl_stores_batch_when_requested() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        storage = Storage(str(Path(tmp) / "test.db"))
        payload = ImportWeightLogInput(
            profile_id="profile_1",
            content=FITBIT_CSV,
            filename="fitbit.csv",
            options=ImportOptions(store=True),
        )
        result = import_weight_log_impl(payload, storage=storage, settings=NO_AI)
        stored = storage.list_entries("profile_1")
        storage.close()
    assert result.status == "ok"
    assert result.stored == 2
    assert result.handler is not None and result.handler.id == "fitbit-weight-csv"
    assert result.summary.rows_imported == 2
    assert result.summary.first_recorded_at == "2024-01-01T09:00:00.000Z"
    assert result.summary.last_recorded_at == "2024-01-04T09:00:00.000Z"
    assert result.summary.units == ["lb"]
    assert [row["weight"] for row in stored] == [179.1, 180.4]  # newest first


def test_import_impl_does_not_store_without_profile() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        storage = Storage(str(Path(tmp) / "test.db"))
        payload = ImportWeightLogInput(content=FITBIT_CSV, options=ImportOptions(store=True))
        result = import_weight_log_impl(payload, storage=storage, settings=NO_AI)
        storage.close()
    assert result.status == "ok"
    assert result.stored == 0
    assert any(i.type == "not_stored" for i in result.issues)


def test_import_impl_empty_when_no_valid_rows() -> None:
    payload = ImportWeightLogInput(content="Date,Weight\n2024-01-01,abc\n")
    result = import_weight_log_impl(payload, settings=NO_AI)
    assert result.status == "empty"
    assert result.observations == []
    assert any(i.type == "no_entries" for i in result.issues)


def test_import_impl_reports_errors_as_blocking_issue() -> None:
    set_parser_generator(None)
    payload = ImportWeightLogInput(content=FREEFORM, filename="diary.txt")
    result = import_weight_log_impl(payload, settings=NO_AI)
    assert result.status == "error"
    assert result.observations == []
    assert len(result.issues) == 1
    issue = result.issues[0]
    assert issue.severity == "blocking" and issue.type == "import_error"
    assert issue.location == "diary.txt"


def test_import_impl_fallback_error_type() -> None:
    def _oversized(sample: str) -> GeneratedParser:
        return GeneratedParser(parser="#" * 8001)

    payload = ImportWeightLogInput(content=FREEFORM)
    result = import_weight_log_impl(payload, parser_generator=_oversized, settings=NO_AI)
    assert result.status == "error"
    assert result.issues[0].type == "fallback_parser_error"
