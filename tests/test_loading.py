from __future__ import annotations

import pandas as pd
import pytest

from analysis import (
    DOMESTIC_COLUMNS,
    INTERNATIONAL_COLUMNS,
    MalformedRowError,
    MissingColumnsError,
    add_journey,
    journey_label,
    load_domestic,
    load_international,
    spreadsheet_serial_to_month,
    transform_domestic,
    transform_international,
)
from conftest import serial, write_csv

HEADER = list(INTERNATIONAL_COLUMNS)


def test_missing_file_is_fatal(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_international(tmp_path / "absent.csv")


def test_missing_columns_are_named(tmp_path):
    path = write_csv(tmp_path / "short.csv", HEADER[:-1], [[42370, "Sydney", "Auckland", "New Zealand", 1, 2]])
    with pytest.raises(MissingColumnsError, match="Passengers_Total"):
        load_international(path)


def test_extra_fields_are_rejected(tmp_path):
    rows = [
        [42370, "Sydney", "Auckland", "New Zealand", 1, 2, 3],
        [42370, "Perth", "Denpasar", "Indonesia", 1, 2, 3, 99, 100],
    ]
    path = write_csv(tmp_path / "ragged.csv", HEADER, rows)
    with pytest.raises(MalformedRowError):
        load_international(path)


def test_header_whitespace_is_ignored(tmp_path):
    header = [f" {col} " for col in HEADER]
    path = write_csv(tmp_path / "spaced.csv", header, [[42370, "Sydney", "Auckland", "New Zealand", 1, 2, 3]])
    assert list(load_international(path).columns) == HEADER


@pytest.mark.parametrize("bad", ["n/a", "-5", "1.5", ""])
def test_bad_counts_are_rejected(tmp_path, bad):
    rows = [
        [42370, "Sydney", "Auckland", "New Zealand", 10, 20, 30],
        [42370, "Perth", "Denpasar", "Indonesia", bad, 20, 30],
    ]
    raw = load_international(write_csv(tmp_path / "bad.csv", HEADER, rows))
    with pytest.raises(MalformedRowError, match=r"passengers_in.*\[3\]"):
        transform_international(raw)


def test_inconsistent_total_is_rejected(tmp_path):
    rows = [[42370, "Sydney", "Auckland", "New Zealand", 10, 20, 31]]
    raw = load_international(write_csv(tmp_path / "total.csv", HEADER, rows))
    with pytest.raises(MalformedRowError, match="Passengers_Total"):
        transform_international(raw)


def test_non_numeric_month_is_rejected(tmp_path):
    rows = [["Jan-16", "Sydney", "Auckland", "New Zealand", 10, 20, 30]]
    raw = load_international(write_csv(tmp_path / "month.csv", HEADER, rows))
    with pytest.raises(MalformedRowError, match="Month"):
        transform_international(raw)


def test_serial_uses_spreadsheet_epoch_and_month_start():
    months = spreadsheet_serial_to_month(pd.Series(["42370", "42385", "42430", "2"]))
    assert list(months) == [
        pd.Timestamp("2016-01-01"),
        pd.Timestamp("2016-01-01"),
        pd.Timestamp("2016-03-01"),
        pd.Timestamp("1900-01-01"),
    ]


def test_international_transform_types(international_csv):
    df = transform_international(load_international(international_csv))
    assert list(df.columns) == list(INTERNATIONAL_COLUMNS.values())
    assert df["country"].dtype == "category"
    assert df["passengers_in"].dtype == "int64"
    assert (df["passengers_total"] == df["passengers_in"] + df["passengers_out"]).all()
    assert df["month"].dt.day.eq(1).all()


def test_unexpected_locations_become_new_categories(tmp_path):
    rows = [[serial("2016-01-01"), "Sydney", "Atlantis", "Nowhere", 1, 1, 2]]
    df = transform_international(load_international(write_csv(tmp_path / "x.csv", HEADER, rows)))
    assert list(df["country"].cat.categories) == ["Nowhere"]


def test_journey_label_is_directional():
    assert journey_label("SYDNEY", "MELBOURNE") == "SYDNEY — MELBOURNE"
    assert journey_label("SYDNEY", "MELBOURNE") != journey_label("MELBOURNE", "SYDNEY")


def test_domestic_transform_derives_journey(domestic_csv):
    df = transform_domestic(load_domestic(domestic_csv))
    assert "SYDNEY — MELBOURNE" in set(df["journey"].astype(str))
    assert "MELBOURNE — SYDNEY" in set(df["journey"].astype(str))
    assert df["distance_km"].dtype == "float64"
    assert df["passenger_trips"].dtype == "int64"


def test_add_journey_does_not_mutate_input():
    df = pd.DataFrame({"city1": ["A"], "city2": ["B"]})
    out = add_journey(df)
    assert "journey" not in df.columns
    assert out.loc[0, "journey"] == "A — B"


DOMESTIC_HEADER = list(DOMESTIC_COLUMNS)


@pytest.mark.parametrize("column", ["RPKs", "ASKs", "Distance_GC_(km)"])
@pytest.mark.parametrize("bad", ["inf", "-inf", "x", ""])
def test_bad_domestic_measures_are_rejected(tmp_path, column, bad):
    row = dict(zip(DOMESTIC_HEADER, [42370, "A", "B", 10, 20, 100, 200, 700]))
    row[column] = bad
    raw = load_domestic(write_csv(tmp_path / "dom.csv", DOMESTIC_HEADER, [list(row.values())]))
    with pytest.raises(MalformedRowError, match=r"\[2\]"):
        transform_domestic(raw)


def test_infinite_count_is_rejected(tmp_path):
    rows = [[42370, "Sydney", "Auckland", "New Zealand", "inf", 20, 30]]
    raw = load_international(write_csv(tmp_path / "inf.csv", HEADER, rows))
    with pytest.raises(MalformedRowError, match="passengers_in"):
        transform_international(raw)


@pytest.mark.parametrize("month", ["inf", "-inf"])
def test_infinite_month_is_rejected(tmp_path, month):
    rows = [[month, "Sydney", "Auckland", "New Zealand", 10, 20, 30]]
    raw = load_international(write_csv(tmp_path / "inf_month.csv", HEADER, rows))
    with pytest.raises(MalformedRowError, match="Month"):
        transform_international(raw)


def test_month_beyond_timestamp_range_is_rejected():
    with pytest.raises(MalformedRowError, match="Month"):
        spreadsheet_serial_to_month(pd.Series(["1e12"]))
