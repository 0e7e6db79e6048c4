"""Pydantic models for weightlog: observations, import handlers, and tool inputs/outputs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, Field

WeightUnit = Literal["lb", "kg"]

# Raw candidate row: loosely typed, pre-normalization (e.g. {"weight": 180.4, "unit": "lb", "recordedAt": "..."})
RawWeightRow = dict[str, Any]


# --- Canonical output ---

class WeightObservation(BaseModel):
    """Single normalized weight reading."""
    weight: float = Field(gt=0)  # rounded to one decimal place
    unit: WeightUnit = "lb"
    recorded_at: str  # ISO-8601, UTC, e.g. 2024-01-01T09:00:00.000Z


# --- Import handlers (capability set; registered once, stateless) ---

@dataclass(frozen=True)
class ImportHandler:
    id: str
    label: str
    detect: Callable[[str], float]  # 0 = not this format
    parse: Callable[[str], list[RawWeightRow]]


class HandlerInfo(BaseModel):
    id: str
    label: str


# --- AI fallback ---

class GeneratedParser(BaseModel):
    """Model response: source defining parseWeightLog(file_text) plus a one-line format summary."""
    parser: str
    summary: Optional[str] = None


class ParsedWeightFile(BaseModel):
    observations: list[WeightObservation] = Field(default_factory=list)
    source: Literal["builtin", "ai"]
    handler: Optional[HandlerInfo] = None  # set when source is builtin
    parser_summary: Optional[str] = None  # set when source is ai


# --- Tool input (import_file) ---

class ImportOptions(BaseModel):
    allow_ai: bool = True
    store: bool = False


class ImportWeightLogInput(BaseModel):
    profile_id: Optional[str] = None
    content: str
    filename: Optional[str] = None
    options: Optional[ImportOptions] = None


# --- Tool output ---

class IssueRecord(BaseModel):
    severity: Literal["warning", "blocking"]
    type: str
    location: str
    message: str
    raw_excerpt: Optional[str] = None


class ImportSummary(BaseModel):
    rows_imported: int = 0
    first_recorded_at: Optional[str] = None
    last_recorded_at: Optional[str] = None
    units: list[WeightUnit] = Field(default_factory=list)


class ImportWeightLogOutput(BaseModel):
    status: Literal["ok", "empty", "error"]
    profile_id: Optional[str] = None
    source: Optional[Literal["builtin", "ai"]] = None
    handler: Optional[HandlerInfo] = None
    parser_summary: Optional[str] = None
    observations: list[WeightObservation] = Field(default_factory=list)
    issues: list[IssueRecord] = Field(default_factory=list)
    summary: ImportSummary = Field(default_factory=ImportSummary)
    stored: int = 0


# --- Detect format tool ---

class DetectFormatInput(BaseModel):
    content: str


class HandlerScore(BaseModel):
    id: str
    label: str
    score: float


class DetectFormatOutput(BaseModel):
    handler: Optional[HandlerInfo] = None
    scores: list[HandlerScore] = Field(default_factory=list)
