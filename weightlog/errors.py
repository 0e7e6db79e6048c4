"""Exceptions surfaced by the weight import pipeline."""


class WeightImportError(Exception):
    """The file could not be imported at all (no importer available, AI request failed, ...)."""


class FallbackParserError(WeightImportError):
    """The AI-generated parser was rejected, failed, or returned something other than a list."""
