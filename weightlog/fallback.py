"""AI fallback: sample the file, run the generated parseWeightLog in the sandbox, normalize its rows."""

from __future__ import annotations

import logging

from .config import DEFAULT_SANDBOX_TIMEOUT
from .errors import FallbackParserError
from .models import WeightObservation
from .normalize import normalize_entries
from .sandbox import SandboxError, run_parser_source

logger = logging.getLogger(__name__)

SAMPLE_LINES = 5


def build_sample(content: str, max_lines: int = SAMPLE_LINES) -> str:
    """First max_lines non-empty lines, the only part of the file the model sees."""
    lines = [line for line in content.replace("\r\n", "\n").split("\n") if line.strip()]
    return "\n".join(lines[:max_lines])


def run_fallback_parser(
    parser_source: str,
    file_content: str,
    timeout: float = DEFAULT_SANDBOX_TIMEOUT,
) -> list[WeightObservation]:
    """
    Execute generated parser source against the full file and normalize the result.
    Structural failures (oversized or invalid source, missing parseWeightLog, exception,
    non-list result, timeout) raise FallbackParserError; bad rows are dropped.
    """
    try:
        raw_entries = run_parser_source(parser_source, file_content, timeout=timeout)
    except SandboxError as e:
        logger.warning("Generated weight parser failed: %s", e)
        raise FallbackParserError(str(e)) from e
    observations = normalize_entries(raw_entries)
    logger.info(
        "Generated weight parser returned %d entries, %d valid",
        len(raw_entries),
        len(observations),
    )
    return observations
