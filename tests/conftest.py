import os

os.environ.setdefault("MPLBACKEND", "Agg")

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd
import pytest
from openpyxl import Workbook

from crop_data import Col

HEADER = [
    "Counties and Districts",
    "Harvested Area (acres)",
    "Average Yield (000lbs/acre)",
    "Marketed Production (000 lbs)",
    "Average Price (cents/lb)",
    "Farm Value ($000)",
]

# region, area, yield, production, price, value
CARROT_SHEETS = {
    "Carrots 2012": [
        ("Simcoe", 3000, 30, 90000, 20, 18000),
        ("Norfolk", 500, 25, 12500, 22, 2750),
        ("Essex", 100, 20, 2000, 30, 600),
        ("Province", 3600, 29, 104500, 20, 21350),
    ],
    "Carrots 2014": [
        ("Simcoe", 3200, 31, 99200, 25, 24800),
        ("Norfolk", 520, 26, None, 24, 3000),
        ("Essex", 110, 21, 2310, 30, 700),
        ("Province", 3830, 30, 101510, 25, 28500),
    ],
}

TOMATO_SHEETS = {
    "2012": [
        ("Chatham-Kent", 8000, 40, 320000, 5, 16000),
        ("Essex", 6000, 38, 228000, 5, 11400),
        ("Lambton", 1000, 35, 35000, 6, 2100),
        ("Province", 15000, 39, 583000, 5, 29500),
    ],
    "2014": [
        ("Chatham-Kent", 8200, 42, 344400, 6, 20664),
        ("Essex", 5800, 40, 232000, 6, 13920),
        ("Province", 14000, 41, 576400, 6, 34584),
    ],
}


def write_workbook(
    path: Path,
    sheets: Dict[str, Iterable[Sequence]],
    header: Optional[List[str]] = None,
    headers: Optional[Dict[str, List[str]]] = None,
) -> Path:
    """One sheet per year: a title line, a source line, then the table."""
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        ws.append([f"Area, production and farm value, {name}"])
        ws.append(["Source: Statistics Canada"])
        ws.append((headers or {}).get(name, header or HEADER))
        for row in rows:
            ws.append(list(row))
    wb.save(path)
    return path


@pytest.fixture
def make_workbook(tmp_path):
    def _make(name: str, sheets, **kwargs) -> Path:
        return write_workbook(tmp_path / name, sheets, **kwargs)

    return _make


@pytest.fixture
def carrot_path(make_workbook) -> Path:
    return make_workbook("carrots.xlsx", CARROT_SHEETS)


@pytest.fixture
def tomato_path(make_workbook) -> Path:
    return make_workbook("tomatoes.xlsx", TOMATO_SHEETS)


def make_clean(rows) -> pd.DataFrame:
    """Cleaned-table rows from (region, year, production, value[, area, yield, price])."""
    records = []
    for row in rows:
        region, year, production, value = row[:4]
        area, yld, price = tuple(row[4:]) + (1, 1, 100)[len(row[4:]):]
        records.append(
            {
                Col.REGION: region,
                Col.AREA: area,
                Col.YIELD: yld,
                Col.PRODUCTION: production,
                Col.PRICE: price,
                Col.VALUE: value,
                Col.YEAR: year,
            }
        )
    return pd.DataFrame(records)


@pytest.fixture
def clean_table():
    return make_clean
