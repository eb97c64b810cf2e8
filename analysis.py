"""Analysis of Australian city-pair air traffic
This script loads the published international and domestic city-pair
traffic datasets, reshapes them into typed tables, computes monthly totals
with a centred moving average, ranks routes and countries, and fits a
seasonal ARIMA forecast. The results can be saved as figures under the
``figures`` directory.

Datasets:
* ``international_city_pairs.csv`` – monthly passengers between an
  Australian port and a foreign port (inbound, outbound, total).
* ``domestic_city_pairs.csv`` – monthly passenger trips, seats, RPKs, ASKs
  and great-circle distance between two Australian cities.

Both files use a spreadsheet serial number (days since 1899-12-30) for the
``Month`` column. Location columns become data-driven ``category`` columns:
any value present in the file is a valid category.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.seasonal import DecomposeResult, seasonal_decompose

import charts
from geocoding import GeocodeCache, geocode_cities, make_geocoder, route_segments

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------
APP_DIR = Path(__file__).resolve().parent
DATA_DIR = APP_DIR / "data"
FIG_DIR = APP_DIR / "figures"

INTERNATIONAL_CSV = DATA_DIR / "international_city_pairs.csv"
DOMESTIC_CSV = DATA_DIR / "domestic_city_pairs.csv"

SPREADSHEET_EPOCH = "1899-12-30"
JOURNEY_SEPARATOR = " — "
MOVING_AVERAGE_WINDOW = 12

# Raw header -> column name used downstream
INTERNATIONAL_COLUMNS: Dict[str, str] = {
    "Month": "month",
    "AustralianPort": "australian_port",
    "ForeignPort": "foreign_port",
    "Country": "country",
    "Passengers_In": "passengers_in",
    "Passengers_Out": "passengers_out",
    "Passengers_Total": "passengers_total",
}

DOMESTIC_COLUMNS: Dict[str, str] = {
    "Month": "month",
    "City1": "city1",
    "City2": "city2",
    "Passenger_Trips": "passenger_trips",
    "Seats": "seats",
    "RPKs": "rpks",
    "ASKs": "asks",
    "Distance_GC_(km)": "distance_km",
}

INTERNATIONAL_COUNTS = ["passengers_in", "passengers_out", "passengers_total"]
DOMESTIC_COUNTS = ["passenger_trips", "seats"]
DOMESTIC_MEASURES = ["rpks", "asks", "distance_km"]

INTERNATIONAL_LOCATIONS = ["australian_port", "foreign_port", "country"]
DOMESTIC_LOCATIONS = ["city1", "city2"]


class MissingColumnsError(ValueError):
    """Raised when a traffic CSV lacks one or more required columns."""


class MalformedRowError(ValueError):
    """Raised when rows cannot be typed without corrupting the aggregates."""


# -----------------------------------------------------------------------------
# Configuration and results
# -----------------------------------------------------------------------------

@dataclass
class PipelineConfig:
    international_path: Path = INTERNATIONAL_CSV
    domestic_path: Path = DOMESTIC_CSV
    output_dir: Path = FIG_DIR
    window: int = MOVING_AVERAGE_WINDOW
    top_n: int = 10
    start: Optional[pd.Timestamp] = None
    end: Optional[pd.Timestamp] = None
    location: Optional[str] = None
    forecast_order: Tuple[int, int, int] = (1, 1, 1)
    seasonal_order: Tuple[int, int, int, int] = (0, 1, 1, 12)
    forecast_steps: int = 24
    alpha: float = 0.05
    chord_cities: int = 8
    geocode: bool = False
    geocode_suffix: str = ", Australia"
    user_agent: str = "air-traffic-analysis"
    log_level: str = "INFO"


@dataclass
class RegressionResult:
    intercept: float
    slope: float
    r_squared: float
    n: int


@dataclass
class ForecastResult:
    """Fitted ARIMA model and its forecast (``mean``, ``lower``, ``upper``)."""

    model: object
    forecast: pd.DataFrame


@dataclass
class PipelineResult:
    international: pd.DataFrame
    domestic: pd.DataFrame
    international_monthly: pd.DataFrame
    domestic_monthly: pd.DataFrame
    load_factor: pd.DataFrame
    countries: pd.DataFrame
    foreign_ports: pd.DataFrame
    australian_ports: pd.DataFrame
    country_ports: pd.DataFrame
    top_journeys: pd.DataFrame
    route_stats: pd.DataFrame
    chord_matrix: pd.DataFrame
    regression: Optional[RegressionResult] = None
    decomposition: Optional[DecomposeResult] = None
    forecast: Optional[ForecastResult] = None


# -----------------------------------------------------------------------------
# Loading
# -----------------------------------------------------------------------------

def load_traffic_csv(path: str | Path, required_columns: Iterable[str]) -> pd.DataFrame:
    """Read a traffic CSV and check that the required columns are present.

    A missing file is fatal: the rest of the pipeline has nothing to work
    on, so the ``FileNotFoundError`` is logged and re-raised.
    """
    path = Path(path)
    if not path.is_file():
        logger.error("Traffic file not found: %s", path)
        raise FileNotFoundError(f"Traffic file not found: {path}")
    try:
        df = pd.read_csv(path, dtype=str, skipinitialspace=True)
    except pd.errors.ParserError as exc:
        raise MalformedRowError(f"{path.name}: cannot parse rows ({exc})") from exc
    df.columns = [str(col).strip() for col in df.columns]
    missing = [col for col in required_columns if col not in df.columns]
    if missing:
        raise MissingColumnsError(f"{path.name}: missing required columns {missing}")
    logger.info("Loaded %d rows from %s", len(df), path)
    return df


def load_international(path: str | Path = INTERNATIONAL_CSV) -> pd.DataFrame:
    """Load the raw international city-pair table."""
    return load_traffic_csv(path, INTERNATIONAL_COLUMNS)


def load_domestic(path: str | Path = DOMESTIC_CSV) -> pd.DataFrame:
    """Load the raw domestic city-pair table."""
    return load_traffic_csv(path, DOMESTIC_COLUMNS)


# -----------------------------------------------------------------------------
# Transformation
# -----------------------------------------------------------------------------

def _csv_lines(df: pd.DataFrame, mask: pd.Series, limit: int = 10) -> List[int]:
    # +2: one for the header row, one for 1-based line numbers
    return [int(i) + 2 for i in df.index[mask][:limit]]


def _numeric(df: pd.DataFrame, column: str, *, integral: bool) -> pd.Series:
    values = pd.to_numeric(df[column], errors="coerce")
    # NaN and inf both fail isfinite
    bad = ~np.isfinite(values.astype("float64")) | (values < 0)
    if integral:
        bad |= values.notna() & (values % 1 != 0)
    if bad.any():
        kind = "non-negative integer" if integral else "non-negative number"
        raise MalformedRowError(
            f"column {column!r} expects a {kind}; bad values at CSV lines {_csv_lines(df, bad)}"
        )
    return values.astype("int64") if integral else values.astype("float64")


def spreadsheet_serial_to_month(values: pd.Series) -> pd.Series:
    """Convert spreadsheet day serials (origin 1899-12-30) to month starts."""
    serials = pd.to_numeric(values, errors="coerce")
    bad = ~np.isfinite(serials.astype("float64"))
    if bad.any():
        raise MalformedRowError(
            f"'Month' expects a spreadsheet day serial; bad values at CSV lines "
            f"{_csv_lines(values.to_frame(), bad)}"
        )
    try:
        dates = pd.to_datetime(serials, unit="D", origin=SPREADSHEET_EPOCH)
    except (pd.errors.OutOfBoundsDatetime, OverflowError) as exc:
        raise MalformedRowError(f"'Month' serial out of the supported date range ({exc})") from exc
    return dates.dt.to_period("M").dt.to_timestamp()


def _locations(df: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    out = df.copy()
    for col in columns:
        text = out[col].str.strip()
        if text.isna().any() or (text == "").any():
            raise MalformedRowError(
                f"column {col!r} is empty at CSV lines {_csv_lines(out, text.isna() | (text == ''))}"
            )
        out[col] = text.astype("category")
    return out


def journey_label(city1: str, city2: str) -> str:
    """Directional route label; ``(a, b)`` and ``(b, a)`` are different journeys."""
    return f"{city1}{JOURNEY_SEPARATOR}{city2}"


def add_journey(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out["journey"] = (
        out["city1"].astype(str) + JOURNEY_SEPARATOR + out["city2"].astype(str)
    ).astype("category")
    return out


def transform_international(raw: pd.DataFrame) -> pd.DataFrame:
    """Type the international table and check that totals add up."""
    # Keep only the columns we use, under their snake_case names
    df = raw[list(INTERNATIONAL_COLUMNS)].rename(columns=INTERNATIONAL_COLUMNS)
    df["month"] = spreadsheet_serial_to_month(df["month"])
    for col in INTERNATIONAL_COUNTS:
        df[col] = _numeric(df, col, integral=True)
    mismatch = df["passengers_total"] != df["passengers_in"] + df["passengers_out"]
    if mismatch.any():
        raise MalformedRowError(
            f"Passengers_Total differs from Passengers_In + Passengers_Out at CSV lines "
            f"{_csv_lines(df, mismatch)}"
        )
    return _locations(df, INTERNATIONAL_LOCATIONS)


def transform_domestic(raw: pd.DataFrame) -> pd.DataFrame:
    """Type the domestic table and derive the journey label."""
    df = raw[list(DOMESTIC_COLUMNS)].rename(columns=DOMESTIC_COLUMNS)
    df["month"] = spreadsheet_serial_to_month(df["month"])
    for col in DOMESTIC_COUNTS:
        df[col] = _numeric(df, col, integral=True)
    for col in DOMESTIC_MEASURES:
        df[col] = _numeric(df, col, integral=False)
    df = add_journey(_locations(df, DOMESTIC_LOCATIONS))
    order = ["month", "city1", "city2", "journey"] + DOMESTIC_COUNTS + DOMESTIC_MEASURES
    return df[order]


# -----------------------------------------------------------------------------
# Aggregation
# -----------------------------------------------------------------------------

def centered_moving_average(series: pd.Series, window: int = MOVING_AVERAGE_WINDOW) -> pd.Series:
    """Centred rolling mean, with the window extended past both ends.

    Label ``i`` averages positions ``i - window // 2`` to ``i + (window - 1) // 2``,
    the same alignment as ``rolling(window, center=True)``. Positions outside
    the series take the nearest boundary value, so the result has no NaN.
    """
    if window < 1:
        raise ValueError(f"window must be positive, got {window}")
    if series.empty:
        return series.astype("float64")
    before, after = window // 2, (window - 1) // 2
    padded = pd.Series(np.pad(series.to_numpy(dtype="float64"), (before, after), mode="edge"))
    smoothed = padded.rolling(window, center=True).mean().iloc[before:before + len(series)]
    return pd.Series(smoothed.to_numpy(), index=series.index, name=series.name)


def monthly_totals(
    df: pd.DataFrame,
    measures: Sequence[str],
    window: int = MOVING_AVERAGE_WINDOW,
) -> pd.DataFrame:
    """Sum each measure per month and add ``<measure>_moving_avg`` columns."""
    totals = df.groupby("month", sort=True)[list(measures)].sum().reset_index()
    for measure in measures:
        totals[f"{measure}_moving_avg"] = centered_moving_average(totals[measure], window)
    return totals


def totals_by(df: pd.DataFrame, key: str, measure: str) -> pd.DataFrame:
    """Sum ``measure`` per ``key``, largest first; ties keep first-appearance order."""
    totals = df.groupby(key, observed=True, sort=False)[measure].sum().reset_index()
    return totals.sort_values(measure, ascending=False, kind="stable").reset_index(drop=True)


def by_country(df: pd.DataFrame, measure: str = "passengers_total") -> pd.DataFrame:
    return totals_by(df, "country", measure)


def by_foreign_port(df: pd.DataFrame, measure: str = "passengers_total") -> pd.DataFrame:
    return totals_by(df, "foreign_port", measure)


def by_australian_port(df: pd.DataFrame, measure: str = "passengers_total") -> pd.DataFrame:
    return totals_by(df, "australian_port", measure)


def by_journey(df: pd.DataFrame, measure: str = "passenger_trips") -> pd.DataFrame:
    return totals_by(df, "journey", measure)


def country_port_totals(df: pd.DataFrame, measure: str = "passengers_total") -> pd.DataFrame:
    """Passenger totals per (country, foreign port), used by the treemap."""
    totals = df.groupby(["country", "foreign_port"], observed=True, sort=False)[measure].sum()
    totals = totals[totals > 0].reset_index()
    return totals.sort_values(measure, ascending=False, kind="stable").reset_index(drop=True)


def route_statistics(df: pd.DataFrame) -> pd.DataFrame:
    """Per-journey totals and means for the domestic table.

    ``mean_trips`` is floored to a whole trip count. ``mean_rpks`` is the
    revenue passenger kilometres flown on the route in an average month.
    """
    grouped = df.groupby("journey", observed=True, sort=False)
    stats = pd.DataFrame({
        "city1": grouped["city1"].first().astype(str),
        "city2": grouped["city2"].first().astype(str),
        "total_trips": grouped["passenger_trips"].sum(),
        "mean_trips": np.floor(grouped["passenger_trips"].mean()).astype("int64"),
        "mean_distance_km": grouped["distance_km"].mean(),
        "mean_rpks": grouped["rpks"].mean(),
        "months": grouped.size(),
    }).reset_index()
    return stats.sort_values("total_trips", ascending=False, kind="stable").reset_index(drop=True)


def monthly_load_factor(df: pd.DataFrame) -> pd.DataFrame:
    """Share of available seat kilometres sold, per month."""
    totals = df.groupby("month", sort=True)[["rpks", "asks"]].sum().reset_index()
    totals["load_factor"] = totals["rpks"] / totals["asks"].where(totals["asks"] > 0)
    return totals


def journey_matrix(
    df: pd.DataFrame,
    cities: Optional[Sequence[str]] = None,
    measure: str = "passenger_trips",
) -> pd.DataFrame:
    """Directional city1 x city2 matrix of ``measure`` for a chord diagram."""
    if cities is not None:
        cities = [str(c) for c in cities]
        mask = df["city1"].astype(str).isin(cities) & df["city2"].astype(str).isin(cities)
        df = df[mask]
    else:
        cities = sorted(set(df["city1"].astype(str)) | set(df["city2"].astype(str)))
    pairs = pd.DataFrame({
        "city1": df["city1"].astype(str),
        "city2": df["city2"].astype(str),
        measure: df[measure],
    })
    matrix = pairs.pivot_table(index="city1", columns="city2", values=measure, aggfunc="sum", fill_value=0)
    return matrix.reindex(index=cities, columns=cities, fill_value=0)


def busiest_cities(df: pd.DataFrame, n: int, measure: str = "passenger_trips") -> List[str]:
    """Cities ranked by the traffic of routes touching them."""
    ends = pd.concat([
        df[["city1", measure]].rename(columns={"city1": "city"}).astype({"city": str}),
        df[["city2", measure]].rename(columns={"city2": "city"}).astype({"city": str}),
    ])
    return totals_by(ends, "city", measure)["city"].head(n).tolist()


# -----------------------------------------------------------------------------
# Filtering and selection
# -----------------------------------------------------------------------------

def filter_date_range(
    df: pd.DataFrame,
    start: Optional[pd.Timestamp] = None,
    end: Optional[pd.Timestamp] = None,
    column: str = "month",
) -> pd.DataFrame:
    """Rows with ``start <= month < end + 1 day``; either bound may be omitted."""
    mask = pd.Series(True, index=df.index)
    if start is not None:
        mask &= df[column] >= pd.Timestamp(start)
    if end is not None:
        mask &= df[column] < pd.Timestamp(end) + pd.Timedelta(days=1)
    return df[mask].copy()


def filter_location(df: pd.DataFrame, text: str, columns: Sequence[str]) -> pd.DataFrame:
    """Rows where any of ``columns`` contains ``text`` (case-insensitive)."""
    mask = pd.Series(False, index=df.index)
    for col in columns:
        mask |= df[col].astype(str).str.contains(text, case=False, regex=False)
    return df[mask].copy()


def top_n(df: pd.DataFrame, measure: str, n: int) -> pd.DataFrame:
    """First ``n`` rows by descending ``measure``; ties keep row order."""
    return df.sort_values(measure, ascending=False, kind="stable").head(n)


def select_routes(
    df: pd.DataFrame,
    measure: str,
    n: int,
    start: Optional[pd.Timestamp] = None,
    end: Optional[pd.Timestamp] = None,
    location: Optional[str] = None,
    columns: Sequence[str] = DOMESTIC_LOCATIONS,
) -> pd.DataFrame:
    """Date range, then location, then top ``n``: the order the charts expect."""
    selected = filter_date_range(df, start, end)
    if location:
        selected = filter_location(selected, location, columns)
    return top_n(selected, measure, n)


# -----------------------------------------------------------------------------
# Statistics
# -----------------------------------------------------------------------------

def fit_distance_regression(route_stats: pd.DataFrame) -> RegressionResult:
    """Ordinary least squares of route total trips on route distance."""
    if len(route_stats) < 2:
        raise ValueError("need at least two routes to fit a regression")
    X = sm.add_constant(route_stats["mean_distance_km"].to_numpy(dtype="float64"))
    y = route_stats["total_trips"].to_numpy(dtype="float64")
    fit = sm.OLS(y, X).fit()
    intercept, slope = fit.params
    return RegressionResult(float(intercept), float(slope), float(fit.rsquared), int(fit.nobs))


def monthly_series(monthly: pd.DataFrame, measure: str) -> pd.Series:
    series = monthly.set_index("month")[measure].astype("float64")
    # months absent from the file carried no traffic
    return series.asfreq("MS", fill_value=0.0)


def decompose_series(series: pd.Series, period: int = 12) -> DecomposeResult:
    """Additive trend/seasonal/residual split of a month-start series."""
    return seasonal_decompose(series, model="additive", period=period)


def forecast_series(
    series: pd.Series,
    order: Tuple[int, int, int] = (1, 1, 1),
    seasonal_order: Tuple[int, int, int, int] = (0, 1, 1, 12),
    steps: int = 24,
    alpha: float = 0.05,
) -> ForecastResult:
    model = ARIMA(series, order=order, seasonal_order=seasonal_order).fit()
    frame = model.get_forecast(steps=steps).summary_frame(alpha=alpha)
    forecast = frame.rename(columns={"mean_ci_lower": "lower", "mean_ci_upper": "upper"})
    return ForecastResult(model=model, forecast=forecast[["mean", "lower", "upper"]])


# -----------------------------------------------------------------------------
# Pipeline
# -----------------------------------------------------------------------------

def run_pipeline(config: Optional[PipelineConfig] = None) -> PipelineResult:
    """Load both datasets and build every table the charts need."""
    config = config or PipelineConfig()

    international = transform_international(load_international(config.international_path))
    domestic = transform_domestic(load_domestic(config.domestic_path))
    international = filter_date_range(international, config.start, config.end)
    domestic = filter_date_range(domestic, config.start, config.end)
    logger.info(
        "Typed %d international and %d domestic rows", len(international), len(domestic)
    )

    international_monthly = monthly_totals(international, INTERNATIONAL_COUNTS, config.window)
    domestic_monthly = monthly_totals(domestic, ["passenger_trips", "seats"], config.window)

    routes = filter_location(domestic, config.location, DOMESTIC_LOCATIONS) if config.location else domestic
    route_stats = route_statistics(routes)
    top_journeys = top_n(by_journey(routes), "passenger_trips", config.top_n).reset_index(drop=True)

    chord_cities = busiest_cities(domestic, config.chord_cities)
    result = PipelineResult(
        international=international,
        domestic=domestic,
        international_monthly=international_monthly,
        domestic_monthly=domestic_monthly,
        load_factor=monthly_load_factor(domestic),
        countries=top_n(by_country(international), "passengers_total", config.top_n).reset_index(drop=True),
        foreign_ports=top_n(by_foreign_port(international), "passengers_total", config.top_n).reset_index(drop=True),
        australian_ports=top_n(by_australian_port(international), "passengers_total", config.top_n).reset_index(drop=True),
        country_ports=country_port_totals(international),
        top_journeys=top_journeys,
        route_stats=route_stats,
        chord_matrix=journey_matrix(domestic, chord_cities),
    )

    if len(route_stats) >= 2:
        result.regression = fit_distance_regression(route_stats)

    series = monthly_series(international_monthly, "passengers_total")
    if len(series) >= 2 * config.seasonal_order[3]:
        logger.info("Fitting ARIMA%s x %s on %d months", config.forecast_order, config.seasonal_order, len(series))
        result.decomposition = decompose_series(series, config.seasonal_order[3])
        result.forecast = forecast_series(
            series, config.forecast_order, config.seasonal_order, config.forecast_steps, config.alpha
        )
    else:
        logger.warning("Only %d months of international data; skipping decomposition and forecast", len(series))
    return result


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(config: Optional[PipelineConfig] = None) -> None:
    """Run the pipeline, print summary tables and save every chart."""
    config = config or PipelineConfig()
    configure_logging(config.log_level)
    outdir = Path(config.output_dir)
    charts.ensure_dir(outdir)

    result = run_pipeline(config)

    print("Top countries by passengers:")
    print(result.countries)
    print(f"\nTop {config.top_n} domestic journeys by passenger trips:")
    print(result.top_journeys)
    if result.regression is not None:
        reg = result.regression
        print(f"\nTrips vs distance: slope={reg.slope:.3f} intercept={reg.intercept:.1f} R²={reg.r_squared:.3f}")

    charts.plot_monthly_trend(
        result.international_monthly, "passengers_total", "International passengers per month", outdir,
        "international_trend.png",
    )
    charts.plot_inbound_outbound(result.international_monthly, outdir)
    charts.plot_monthly_trend(
        result.domestic_monthly, "passenger_trips", "Domestic passenger trips per month", outdir,
        "domestic_trend.png",
    )
    charts.plot_top_entities(result.countries, "country", "passengers_total", "Top countries", outdir, "top_countries.png")
    charts.plot_top_entities(
        result.foreign_ports, "foreign_port", "passengers_total", "Top foreign ports", outdir, "top_foreign_ports.png"
    )
    charts.plot_top_entities(result.top_journeys, "journey", "passenger_trips", "Top journeys", outdir, "top_journeys.png")
    if result.regression is not None:
        charts.plot_distance_vs_trips(result.route_stats, result.regression, outdir)
    charts.plot_journey_chord(result.chord_matrix, outdir)
    charts.treemap_figure(result.country_ports).write_html(outdir / "country_treemap.html")
    if result.decomposition is not None:
        charts.plot_decomposition(result.decomposition, outdir)
        charts.plot_forecast(monthly_series(result.international_monthly, "passengers_total"), result.forecast, outdir)

    if config.geocode:
        cache = GeocodeCache()
        routes = result.route_stats.head(config.top_n)
        cities = pd.unique(routes[["city1", "city2"]].to_numpy().ravel())
        coords, failures = geocode_cities(
            cities, make_geocoder(config.user_agent), cache, suffix=config.geocode_suffix
        )
        for failure in failures:
            print(f"Could not place {failure.city}: {failure.reason}")
        charts.route_map_figure(route_segments(routes, coords)).write_html(outdir / "route_map.html")


if __name__ == "__main__":
    main()
