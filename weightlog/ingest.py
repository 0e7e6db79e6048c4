"""Import workflow: detect format, parse (built-in handler or AI fallback), normalize. Persists only on request."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .config import AISettings
from .errors import FallbackParserError, WeightImportError
from .fallback import build_sample, run_fallback_parser
from .llm_parser import ParserGeneratorFn, describe_ai_error, get_parser_generator
from .models import (
    HandlerInfo,
    ImportOptions,
    ImportSummary,
    ImportWeightLogInput,
    ImportWeightLogOutput,
    IssueRecord,
    ParsedWeightFile,
    WeightObservation,
)
from .normalize import normalize_entries
from .registry import detect_handler, has_builtin_handlers

if TYPE_CHECKING:
    from .storage import Storage

logger = logging.getLogger(__name__)


def can_use_ai_import(settings: AISettings | None = None, parser_generator: ParserGeneratorFn | None = None) -> bool:
    if parser_generator is not None:
        return True
    return get_parser_generator(settings) is not None


def can_use_weight_import(settings: AISettings | None = None) -> bool:
    return has_builtin_handlers() or can_use_ai_import(settings)


def parse_weight_file(
    content: str,
    parser_generator: ParserGeneratorFn | None = None,
    settings: AISettings | None = None,
    allow_ai: bool = True,
) -> ParsedWeightFile:
    """
    Built-in handler when one recognizes the file, otherwise the AI fallback.
    parser_generator: optional callable(sample) -> GeneratedParser; defaults to the configured provider.
    Raises WeightImportError when nothing can parse the file or the fallback is broken.
    """
    content = content or ""
    handler = detect_handler(content)
    if handler is not None:
        observations = normalize_entries(handler.parse(content))
        logger.info("Parsed %d weight entries with %s", len(observations), handler.id)
        return ParsedWeightFile(
            observations=observations,
            source="builtin",
            handler=HandlerInfo(id=handler.id, label=handler.label),
        )

    generator = None
    if allow_ai:
        generator = parser_generator or get_parser_generator(settings)
    if generator is None:
        raise WeightImportError(
            "No built-in importer matched this file and the AI importer is disabled. "
            "Set WEIGHTLOG_OPENAI_API_KEY (or WEIGHTLOG_AI_PROVIDER=ollama) to enable AI parsing."
        )

    sample = build_sample(content)
    try:
        generated = generator(sample)
    except Exception as e:
        _, message = describe_ai_error(e, "AI parser request failed.")
        logger.error("AI weight parser request failed: %s", message)
        raise WeightImportError(message) from e
    if not generated or not generated.parser:
        raise FallbackParserError("AI response missing parser function.")

    timeout = (settings or AISettings.from_env()).sandbox_timeout
    observations = run_fallback_parser(generated.parser, content, timeout=timeout)
    return ParsedWeightFile(
        observations=observations,
        source="ai",
        parser_summary=generated.summary,
    )


def _summarize(observations: list[WeightObservation]) -> ImportSummary:
    if not observations:
        return ImportSummary()
    stamps = sorted(o.recorded_at for o in observations)
    units = sorted({o.unit for o in observations})
    return ImportSummary(
        rows_imported=len(observations),
        first_recorded_at=stamps[0],
        last_recorded_at=stamps[-1],
        units=units,
    )


def import_weight_log_impl(
    payload: ImportWeightLogInput,
    storage: Optional["Storage"] = None,
    parser_generator: ParserGeneratorFn | None = None,
    settings: AISettings | None = None,
) -> ImportWeightLogOutput:
    """
    Parse payload.content into observations and report status/issues.
    Stored (as one batch) only when status is ok, options.store is set, profile_id is given and storage exists.
    """
    options = payload.options or ImportOptions()
    try:
        parsed = parse_weight_file(
            payload.content,
            parser_generator=parser_generator,
            settings=settings,
            allow_ai=options.allow_ai,
        )
    except WeightImportError as e:
        issue_type = "fallback_parser_error" if isinstance(e, FallbackParserError) else "import_error"
        return ImportWeightLogOutput(
            status="error",
            profile_id=payload.profile_id,
            issues=[IssueRecord(
                severity="blocking",
                type=issue_type,
                location=payload.filename or "content",
                message=str(e),
                raw_excerpt=build_sample(payload.content or "", max_lines=2)[:200] or None,
            )],
        )

    issues: list[IssueRecord] = []
    if not parsed.observations:
        issues.append(IssueRecord(
            severity="warning",
            type="no_entries",
            location=payload.filename or "content",
            message="No valid weight entries were found (rows need a date and a positive weight).",
        ))
    status = "ok" if parsed.observations else "empty"

    stored = 0
    if options.store and status == "ok":
        if not payload.profile_id:
            issues.append(IssueRecord(
                severity="warning",
                type="not_stored",
                location="profile_id",
                message="store=true requires profile_id; entries were not stored.",
            ))
        elif storage is None:
            issues.append(IssueRecord(
                severity="warning",
                type="not_stored",
                location="storage",
                message="No storage configured; entries were not stored.",
            ))
        else:
            stored = storage.store_observations(payload.profile_id, parsed.observations)

    return ImportWeightLogOutput(
        status=status,
        profile_id=payload.profile_id,
        source=parsed.source,
        handler=parsed.handler,
        parser_summary=parsed.parser_summary,
        observations=parsed.observations,
        issues=issues,
        summary=_summarize(parsed.observations),
        stored=stored,
    )
