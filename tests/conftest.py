from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Sequence

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

from analysis import DOMESTIC_COLUMNS, INTERNATIONAL_COLUMNS


def serial(day: str) -> int:
    """Spreadsheet day serial for a calendar date."""
    return (pd.Timestamp(day) - pd.Timestamp("1899-12-30")).days


def write_csv(path: Path, header: Sequence[str], rows: Iterable[Sequence[object]]) -> Path:
    lines = [",".join(header)]
    lines.extend(",".join(str(v) for v in row) for row in rows)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def international_rows(months: int = 36) -> List[list]:
    rows = []
    ports = [("Sydney", "Auckland", "New Zealand", 300), ("Melbourne", "Singapore", "Singapore", 200),
             ("Perth", "Denpasar", "Indonesia", 100)]
    for i, month in enumerate(pd.date_range("2014-01-01", periods=months, freq="MS")):
        season = 20 * (month.month in (1, 7, 12))
        for aus, foreign, country, base in ports:
            inbound = base + i + season + (i * 7 + len(aus)) % 13
            outbound = base + 2 * i
            rows.append([serial(month), aus, foreign, country, inbound, outbound, inbound + outbound])
    return rows


def domestic_rows(months: int = 36) -> List[list]:
    rows = []
    routes = [("SYDNEY", "MELBOURNE", 706.0, 700), ("MELBOURNE", "SYDNEY", 706.0, 650),
              ("BRISBANE", "SYDNEY", 752.0, 400), ("ADELAIDE", "PERTH", 2120.0, 90)]
    for i, month in enumerate(pd.date_range("2014-01-01", periods=months, freq="MS")):
        for city1, city2, distance, base in routes:
            trips = base + i
            seats = trips + 100
            rows.append([serial(month), city1, city2, trips, seats, trips * distance, seats * distance, distance])
    return rows


@pytest.fixture
def international_csv(tmp_path):
    return write_csv(tmp_path / "international.csv", list(INTERNATIONAL_COLUMNS), international_rows())


@pytest.fixture
def domestic_csv(tmp_path):
    return write_csv(tmp_path / "domestic.csv", list(DOMESTIC_COLUMNS), domestic_rows())
