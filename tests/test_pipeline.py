from __future__ import annotations

import pytest

import analysis
from analysis import PipelineConfig, run_pipeline


@pytest.fixture
def config(international_csv, domestic_csv, tmp_path):
    return PipelineConfig(
        international_path=international_csv,
        domestic_path=domestic_csv,
        output_dir=tmp_path / "figures",
        top_n=3,
        forecast_steps=6,
    )


def test_pipeline_builds_every_table(config):
    result = run_pipeline(config)
    assert len(result.international_monthly) == 36
    assert list(result.countries["country"].astype(str)) == ["New Zealand", "Singapore", "Indonesia"]
    assert len(result.top_journeys) == 3
    assert result.route_stats["total_trips"].is_monotonic_decreasing
    assert result.chord_matrix.shape == (5, 5)
    assert result.regression is not None and result.regression.n == 4
    assert result.forecast is not None and len(result.forecast.forecast) == 6
    assert result.decomposition is not None


def test_pipeline_applies_date_range_and_location(config):
    config.start = "2015-01-01"
    config.end = "2015-12-31"
    config.location = "perth"
    result = run_pipeline(config)
    assert len(result.domestic_monthly) == 12
    assert list(result.top_journeys["journey"].astype(str)) == ["ADELAIDE — PERTH"]
    # 12 months is too short for a seasonal fit
    assert result.forecast is None


def test_pipeline_does_not_mutate_tables(config):
    result = run_pipeline(config)
    before = result.domestic.copy()
    analysis.route_statistics(result.domestic)
    analysis.select_routes(result.domestic, "passenger_trips", 2, location="sydney")
    assert result.domestic.equals(before)


def test_missing_input_aborts(config, tmp_path):
    config.domestic_path = tmp_path / "missing.csv"
    with pytest.raises(FileNotFoundError):
        run_pipeline(config)


def test_main_writes_figures(config):
    analysis.main(config)
    written = {p.name for p in config.output_dir.iterdir()}
    assert {
        "international_trend.png",
        "domestic_trend.png",
        "inbound_outbound.png",
        "top_countries.png",
        "top_foreign_ports.png",
        "top_journeys.png",
        "distance_vs_trips.png",
        "journey_chord.png",
        "country_treemap.html",
        "seasonal_decomposition.png",
        "forecast.png",
    } <= written
