"""Charts for the city-pair traffic tables.

Every function here takes a table that is already aggregated, sorted and
truncated by :mod:`analysis`; nothing is grouped or ranked again. The
``plot_*`` functions save a PNG under ``outdir`` and return its filename,
the ``*_figure`` functions return plotly figures for the dashboard.
"""

from __future__ import annotations

import math
import os
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import seaborn as sns
from matplotlib.patches import PathPatch
from matplotlib.path import Path as MplPath

PLOTLY_TEMPLATE = "plotly_white"


def ensure_dir(path: str | Path) -> None:
    """Ensure that a directory exists."""
    Path(path).mkdir(parents=True, exist_ok=True)


def _save(fig, outdir: str | Path, name: str) -> str:
    filename = os.path.join(outdir, name)
    plt.tight_layout()
    fig.savefig(filename)
    plt.close(fig)
    return filename


# -----------------------------------------------------------------------------
# Static charts (matplotlib / seaborn)
# -----------------------------------------------------------------------------

def plot_monthly_trend(monthly: pd.DataFrame, measure: str, title: str, outdir: str | Path, name: str) -> str:
    """Monthly totals with their 12-month centred moving average."""
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(monthly["month"], monthly[measure], color="lightsteelblue", label="Monthly")
    ax.plot(monthly["month"], monthly[f"{measure}_moving_avg"], color="navy", label="Moving average")
    ax.set_title(title)
    ax.set_xlabel("Month")
    ax.set_ylabel(measure.replace("_", " ").capitalize())
    ax.legend()
    ax.grid(True, which="both", linestyle="--", linewidth=0.5)
    return _save(fig, outdir, name)


def plot_inbound_outbound(monthly: pd.DataFrame, outdir: str | Path) -> str:
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(monthly["month"], monthly["passengers_in_moving_avg"], label="Inbound")
    ax.plot(monthly["month"], monthly["passengers_out_moving_avg"], label="Outbound")
    ax.set_title("International passengers, inbound vs outbound (moving average)")
    ax.set_xlabel("Month")
    ax.set_ylabel("Passengers")
    ax.legend()
    ax.grid(True, linestyle="--", linewidth=0.5)
    return _save(fig, outdir, "inbound_outbound.png")


def plot_top_entities(
    table: pd.DataFrame, key: str, measure: str, title: str, outdir: str | Path, name: str
) -> str:
    """Horizontal bar chart of a ranked table, largest at the top."""
    fig, ax = plt.subplots(figsize=(8, 5))
    data = table.assign(**{key: table[key].astype(str)})
    sns.barplot(x=measure, y=key, data=data, color="steelblue", ax=ax)
    ax.set_title(title)
    ax.set_xlabel(measure.replace("_", " ").capitalize())
    ax.set_ylabel("")
    return _save(fig, outdir, name)


def plot_distance_vs_trips(route_stats: pd.DataFrame, regression, outdir: str | Path) -> str:
    """Route length against total trips, with the fitted OLS line."""
    fig, ax = plt.subplots(figsize=(8, 5))
    sns.scatterplot(x="mean_distance_km", y="total_trips", data=route_stats, ax=ax, alpha=0.7)
    xs = np.linspace(route_stats["mean_distance_km"].min(), route_stats["mean_distance_km"].max(), 50)
    ax.plot(xs, regression.intercept + regression.slope * xs, color="firebrick",
            label=f"OLS fit (R² = {regression.r_squared:.2f})")
    ax.set_title("Passenger trips by route distance")
    ax.set_xlabel("Great-circle distance (km)")
    ax.set_ylabel("Total passenger trips")
    ax.legend()
    return _save(fig, outdir, "distance_vs_trips.png")


def plot_journey_chord(matrix: pd.DataFrame, outdir: str | Path) -> str:
    """Chord diagram of a square origin x destination matrix.

    Cities sit on a circle; each non-zero cell is drawn as a curve through
    the centre whose width grows with the cell's share of the largest flow.
    """
    cities = list(matrix.index)
    fig, ax = plt.subplots(figsize=(8, 8))
    ax.set_aspect("equal")
    ax.axis("off")
    if not cities:
        return _save(fig, outdir, "journey_chord.png")

    angles = {city: 2 * math.pi * i / len(cities) for i, city in enumerate(cities)}
    points = {city: (math.cos(a), math.sin(a)) for city, a in angles.items()}
    colours = dict(zip(cities, sns.color_palette("tab10", len(cities))))
    peak = float(matrix.to_numpy().max()) or 1.0

    for origin in cities:
        for dest in cities:
            value = float(matrix.loc[origin, dest])
            if value <= 0 or origin == dest:
                continue
            path = MplPath([points[origin], (0.0, 0.0), points[dest]],
                           [MplPath.MOVETO, MplPath.CURVE3, MplPath.CURVE3])
            ax.add_patch(PathPatch(path, facecolor="none", edgecolor=colours[origin],
                                   linewidth=0.5 + 8 * value / peak, alpha=0.6))

    for city, (x, y) in points.items():
        ax.scatter([x], [y], s=120, color=colours[city], zorder=3)
        angle = math.degrees(angles[city])
        ax.text(1.12 * x, 1.12 * y, city, ha="left" if x >= 0 else "right", va="center",
                rotation=angle if x >= 0 else angle - 180, rotation_mode="anchor", fontsize=9)
    ax.set_xlim(-1.6, 1.6)
    ax.set_ylim(-1.6, 1.6)
    ax.set_title("Passenger trips between the busiest cities")
    return _save(fig, outdir, "journey_chord.png")


def plot_decomposition(decomposition, outdir: str | Path) -> str:
    fig = decomposition.plot()
    fig.set_size_inches(10, 8)
    fig.suptitle("Seasonal decomposition of international passengers")
    return _save(fig, outdir, "seasonal_decomposition.png")


def plot_forecast(series: pd.Series, forecast, outdir: str | Path) -> str:
    """Observed series followed by the forecast mean and its confidence band."""
    frame = forecast.forecast
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.plot(series.index, series.values, label="Observed")
    ax.plot(frame.index, frame["mean"], color="darkorange", label="Forecast")
    ax.fill_between(frame.index, frame["lower"], frame["upper"], color="darkorange", alpha=0.2,
                    label="Confidence interval")
    ax.set_title("International passengers: ARIMA forecast")
    ax.set_xlabel("Month")
    ax.set_ylabel("Passengers")
    ax.legend()
    ax.grid(True, linestyle="--", linewidth=0.5)
    return _save(fig, outdir, "forecast.png")


# -----------------------------------------------------------------------------
# Interactive figures (plotly)
# -----------------------------------------------------------------------------

def _style(fig: go.Figure) -> go.Figure:
    fig.update_layout(template=PLOTLY_TEMPLATE, margin=dict(t=60, r=30, b=40, l=40))
    return fig


def monthly_trend_figure(monthly: pd.DataFrame, measure: str, title: str) -> go.Figure:
    fig = px.line(
        monthly,
        x="month",
        y=[measure, f"{measure}_moving_avg"],
        labels={"month": "Month", "value": "Passengers", "variable": "Series"},
        title=title,
    )
    return _style(fig)


def top_entities_figure(table: pd.DataFrame, key: str, measure: str, title: str) -> go.Figure:
    data = table.assign(**{key: table[key].astype(str)})
    fig = px.bar(
        data.iloc[::-1],
        x=measure,
        y=key,
        orientation="h",
        labels={measure: measure.replace("_", " ").capitalize(), key: ""},
        title=title,
    )
    return _style(fig)


def distance_scatter_figure(route_stats: pd.DataFrame) -> go.Figure:
    fig = px.scatter(
        route_stats,
        x="mean_distance_km",
        y="total_trips",
        hover_name="journey",
        trendline="ols",
        labels={"mean_distance_km": "Distance (km)", "total_trips": "Passenger trips"},
        title="Passenger trips by route distance",
    )
    return _style(fig)


def treemap_figure(country_ports: pd.DataFrame, measure: str = "passengers_total") -> go.Figure:
    data = country_ports.astype({"country": str, "foreign_port": str})
    fig = px.treemap(
        data,
        path=[px.Constant("All countries"), "country", "foreign_port"],
        values=measure,
        title="International passengers by country and port",
    )
    return _style(fig)


def route_map_figure(segments: pd.DataFrame, measure: str = "total_trips") -> go.Figure:
    """Routes drawn as lines between geocoded endpoints."""
    fig = go.Figure()
    peak = float(segments[measure].max()) if not segments.empty else 1.0
    for row in segments.itertuples(index=False):
        fig.add_trace(go.Scattergeo(
            lon=[row.city1_longitude, row.city2_longitude],
            lat=[row.city1_latitude, row.city2_latitude],
            mode="lines",
            line=dict(width=1 + 6 * getattr(row, measure) / peak, color="royalblue"),
            opacity=0.7,
            hoverinfo="text",
            text=row.journey,
            showlegend=False,
        ))
    cities = pd.concat([
        segments[["city1", "city1_longitude", "city1_latitude"]].set_axis(["city", "lon", "lat"], axis=1),
        segments[["city2", "city2_longitude", "city2_latitude"]].set_axis(["city", "lon", "lat"], axis=1),
    ]).drop_duplicates("city")
    fig.add_trace(go.Scattergeo(
        lon=cities["lon"], lat=cities["lat"], text=cities["city"], mode="markers+text",
        textposition="top center", marker=dict(size=6, color="crimson"), showlegend=False,
    ))
    fig.update_geos(fitbounds="locations", showcountries=True, showland=True, landcolor="whitesmoke")
    fig.update_layout(title="Busiest domestic routes")
    return _style(fig)
