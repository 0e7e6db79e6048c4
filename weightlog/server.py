"""MCP server: weightlog.import_file, weightlog.detect_format, weightlog.list_formats, and read-only resources."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from fastmcp import FastMCP

from .config import AISettings
from .ingest import import_weight_log_impl
from .models import DetectFormatInput, DetectFormatOutput, HandlerInfo, ImportWeightLogInput
from .registry import detect_handler, get_import_handlers, score_handlers
from .storage import Storage

logger = logging.getLogger(__name__)

# Default DB next to the package (or use WEIGHTLOG_DB_PATH)
_db_path = os.environ.get("WEIGHTLOG_DB_PATH", str(Path(__file__).parent.parent / "weightlog.db"))
_storage = Storage(_db_path)

mcp = FastMCP(name="weightlog")


@mcp.tool(name="weightlog.import_file")
def weightlog_import_file(payload: dict) -> dict:
    """
    Import a weight log (file text). Built-in formats (Fitbit export, date/weight CSV) are parsed directly;
    anything else goes to the AI fallback when allow_ai is true and a provider is configured.
    Set store=true with a profile_id to persist the entries as one batch.
    """
    inp = ImportWeightLogInput.model_validate(payload)
    result = import_weight_log_impl(inp, storage=_storage, settings=AISettings.from_env())
    return result.model_dump()


@mcp.tool(name="weightlog.detect_format")
def weightlog_detect_format(payload: dict) -> dict:
    """Score every built-in importer against the content and report the chosen one (or null)."""
    inp = DetectFormatInput.model_validate(payload)
    handler = detect_handler(inp.content)
    out = DetectFormatOutput(
        handler=HandlerInfo(id=handler.id, label=handler.label) if handler else None,
        scores=score_handlers(inp.content),
    )
    return out.model_dump()


@mcp.tool(name="weightlog.list_formats")
def weightlog_list_formats() -> list[dict]:
    """Built-in importers in detection priority order."""
    return [HandlerInfo(id=h.id, label=h.label).model_dump() for h in get_import_handlers()]


@mcp.resource("weights://{profile_id}/recent", mime_type="application/json")
def resource_recent_weights(profile_id: str) -> str:
    """Read-only: latest 50 stored weight entries for a profile."""
    return json.dumps(_storage.list_entries(profile_id, limit=50), indent=2)


def run() -> None:
    """Run the MCP server with stdio transport (default). Logs go to stderr."""
    logging.basicConfig(
        level=os.environ.get("WEIGHTLOG_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting weightlog MCP server (db=%s)", _db_path)
    mcp.run()


if __name__ == "__main__":
    run()
