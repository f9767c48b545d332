"""
Loading and cleaning of the county-level carrot and tomato workbooks.

Each workbook holds one sheet per year. Every sheet starts with a short
preamble (title and source lines) before the header row. Columns are
normalized into snake_case names, the year is taken from the sheet name,
and all sheets are stacked into one table per commodity.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

import pandas as pd

log = logging.getLogger(__name__)

DATA_DIR = Path("data")
DEFAULT_SOURCES = {
    "Carrot": DATA_DIR / "carrots.xlsx",
    "Tomato": DATA_DIR / "tomatoes.xlsx",
}
SKIP_ROWS = 2
AGGREGATE_LABEL = "Province"
PERIOD_BOUNDARY = 2013
TOP_N = 5
OUTPUT_DIR = Path("output")

YEAR_PATTERN = re.compile(r"\d{4}")


class Col:
    """Column names after normalization."""

    REGION = "counties_and_districts"
    AREA = "harvested_area_acres"
    YIELD = "average_yield_000lbs_acre"
    PRODUCTION = "marketed_production_000_lbs"
    PRICE = "average_price_cents_lb"
    VALUE = "farm_value_000"
    YEAR = "year"

    # Derived tables
    CROP = "crop"
    PERIOD = "period"
    PERIOD_LABEL = "period_label"
    VARIABLE = "variable"
    METRIC_VALUE = "value"
    TOTAL_AREA = "total_area"
    TOTAL_VALUE = "total_value"
    TOTAL_PRODUCTION = "total_production"
    AVG_YIELD = "avg_yield"
    AVG_PRICE = "avg_price"
    AVG_PRICE_DOLLARS = "avg_price_dollars"
    AVG_PRODUCTION = "avg_production"
    AVG_VALUE = "avg_value"


MEASURES = [Col.AREA, Col.YIELD, Col.PRODUCTION, Col.PRICE, Col.VALUE]
REQUIRED_COLUMNS = [Col.REGION] + MEASURES


class PipelineError(Exception):
    """Base class for errors that abort the analysis."""


class LoadError(PipelineError):
    """A workbook or sheet could not be turned into a commodity table."""


class SchemaError(PipelineError):
    """A required column is missing after name normalization."""


@dataclass
class PipelineConfig:
    sources: Dict[str, Path] = field(default_factory=lambda: dict(DEFAULT_SOURCES))
    skip_rows: int = SKIP_ROWS
    aggregate_label: str = AGGREGATE_LABEL
    period_boundary: int = PERIOD_BOUNDARY
    top_n: int = TOP_N
    output_dir: Path = OUTPUT_DIR

    def __post_init__(self) -> None:
        self.sources = {crop: Path(path) for crop, path in self.sources.items()}
        self.output_dir = Path(self.output_dir)
        if not self.sources:
            raise ValueError("At least one commodity workbook is required")
        if self.skip_rows < 0:
            raise ValueError("skip_rows must be >= 0")
        if self.top_n < 1:
            raise ValueError("top_n must be >= 1")


@dataclass
class CleaningStats:
    crop: str
    rows_in: int
    dropped_missing: int
    dropped_aggregate: int

    @property
    def rows_out(self) -> int:
        return self.rows_in - self.dropped_missing - self.dropped_aggregate


def clean_column_name(label: object, position: int = 0) -> str:
    """Lowercase, snake_case a header label; units stay embedded in the name."""
    if label is None or (isinstance(label, float) and pd.isna(label)):
        return f"x{position + 1}"
    text = str(label).strip()
    if not text or text.lower().startswith("unnamed:"):
        return f"x{position + 1}"
    text = text.replace("%", " percent ").replace("#", " number ")
    text = re.sub(r"[^0-9a-zA-Z]+", "_", text.lower()).strip("_")
    if not text:
        return f"x{position + 1}"
    if text[0].isdigit():
        text = "x" + text
    return text


def clean_names(df: pd.DataFrame) -> pd.DataFrame:
    names: List[str] = []
    seen: Dict[str, int] = {}
    for i, label in enumerate(df.columns):
        name = clean_column_name(label, i)
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        names.append(name)
    out = df.copy()
    out.columns = names
    return out


def year_from_sheet(sheet_name: str) -> int:
    match = YEAR_PATTERN.search(str(sheet_name))
    if match is None:
        raise LoadError(f"Sheet name {sheet_name!r} does not contain a 4-digit year")
    return int(match.group(0))


def list_sheets(path: Path) -> List[str]:
    path = Path(path)
    if not path.exists():
        raise LoadError(f"Workbook not found: {path}")
    try:
        with pd.ExcelFile(path) as xls:
            sheets = list(xls.sheet_names)
    except Exception as exc:
        raise LoadError(f"Unreadable workbook {path}: {exc}") from exc
    if not sheets:
        raise LoadError(f"Workbook {path} has no sheets")
    log.info("%s: %d sheets %s", path.name, len(sheets), sheets)
    return sheets


def read_sheet(path: Path, sheet_name: str, skip_rows: int = SKIP_ROWS) -> pd.DataFrame:
    year = year_from_sheet(sheet_name)
    try:
        raw = pd.read_excel(path, sheet_name=sheet_name, skiprows=skip_rows)
    except Exception as exc:
        raise LoadError(f"Unreadable sheet {sheet_name!r} in {path}: {exc}") from exc
    df = clean_names(raw)
    df[Col.YEAR] = year
    return df


def load_workbook(path: Path, skip_rows: int = SKIP_ROWS) -> pd.DataFrame:
    """Read every sheet of a workbook and stack them into one table."""
    path = Path(path)
    frames = []
    expected: List[str] = []
    for sheet in list_sheets(path):
        df = read_sheet(path, sheet, skip_rows)
        columns = list(df.columns)
        if not frames:
            expected = columns
        elif set(columns) != set(expected):
            missing = sorted(set(expected) - set(columns))
            extra = sorted(set(columns) - set(expected))
            raise LoadError(
                f"Sheet {sheet!r} in {path.name} does not match the first sheet's columns "
                f"(missing={missing}, unexpected={extra})"
            )
        frames.append(df[expected])
    combined = pd.concat(frames, ignore_index=True)
    log.info("%s: %d rows across %d sheets", path.name, len(combined), len(frames))
    return combined


def load_all(config: PipelineConfig) -> Dict[str, pd.DataFrame]:
    return {
        crop: load_workbook(path, config.skip_rows) for crop, path in config.sources.items()
    }


def check_schema(df: pd.DataFrame, crop: str = "") -> None:
    missing = [c for c in REQUIRED_COLUMNS + [Col.YEAR] if c not in df.columns]
    if missing:
        raise SchemaError(
            f"{crop or 'table'} is missing required columns {missing}; "
            f"found {list(df.columns)}"
        )


def clean_commodity(
    df: pd.DataFrame, aggregate_label: str = AGGREGATE_LABEL, crop: str = ""
) -> Tuple[pd.DataFrame, CleaningStats]:
    check_schema(df, crop)
    out = df[REQUIRED_COLUMNS + [Col.YEAR]].copy()
    rows_in = len(out)

    # Type conversions; suppressed cells ("x", "-") become missing
    for col in MEASURES:
        out[col] = pd.to_numeric(out[col], errors="coerce")
    out[Col.REGION] = out[Col.REGION].where(out[Col.REGION].isna(), out[Col.REGION].astype(str).str.strip())
    out.loc[out[Col.REGION] == "", Col.REGION] = None

    out = out.dropna(subset=REQUIRED_COLUMNS + [Col.YEAR])
    dropped_missing = rows_in - len(out)

    is_aggregate = out[Col.REGION] == aggregate_label
    dropped_aggregate = int(is_aggregate.sum())
    out = out[~is_aggregate].reset_index(drop=True)
    out[Col.YEAR] = out[Col.YEAR].astype(int)

    stats = CleaningStats(
        crop=crop,
        rows_in=rows_in,
        dropped_missing=dropped_missing,
        dropped_aggregate=dropped_aggregate,
    )
    return out, stats


def clean_all(
    tables: Dict[str, pd.DataFrame], aggregate_label: str = AGGREGATE_LABEL
) -> Tuple[Dict[str, pd.DataFrame], List[CleaningStats]]:
    cleaned: Dict[str, pd.DataFrame] = {}
    stats: List[CleaningStats] = []
    for crop, df in tables.items():
        clean, crop_stats = clean_commodity(df, aggregate_label, crop)
        log.info(
            "%s: kept %d of %d rows (%d with missing values, %d %r aggregate rows dropped)",
            crop,
            crop_stats.rows_out,
            crop_stats.rows_in,
            crop_stats.dropped_missing,
            crop_stats.dropped_aggregate,
            aggregate_label,
        )
        cleaned[crop] = clean
        stats.append(crop_stats)
    return cleaned, stats
