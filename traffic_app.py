from __future__ import annotations

import pandas as pd
import plotly.express as px
import streamlit as st

import charts
from analysis import (
    PipelineConfig,
    PipelineResult,
    filter_date_range,
    filter_location,
    monthly_series,
    route_statistics,
    run_pipeline,
    top_n,
)
from geocoding import GeocodeCache, geocode_cities, make_geocoder, route_segments

# ---------------------------------------------
# Data loading (cached)
# ---------------------------------------------
@st.cache_data(show_spinner=False)
def load_data() -> PipelineResult:
    """Run the full pipeline once per session."""
    return run_pipeline(PipelineConfig())


def geocode_cache() -> GeocodeCache:
    # One cache per browser session, so lookups survive reruns
    if "geocode_cache" not in st.session_state:
        st.session_state["geocode_cache"] = GeocodeCache()
    return st.session_state["geocode_cache"]


# ---------------------------------------------
# UI
# ---------------------------------------------
def main():
    st.set_page_config(
        page_title="Australian air traffic",
        page_icon="✈️",
        layout="wide",
    )

    st.markdown(
        """
        <style>
            .block-container {padding-top: 1.2rem; padding-bottom: 2rem;}
            h1, h2, h3 {letter-spacing: 0.2px;}
            div[data-testid="stMetricValue"] {font-size: 1.6rem;}
        </style>
        """,
        unsafe_allow_html=True,
    )

    st.title("Australian city-pair air traffic")
    st.markdown(
        """
        Monthly international and domestic city-pair statistics: passenger
        trends, the busiest countries and routes, a seasonal forecast and a
        map of the main domestic journeys.
        """
    )

    data = load_data()

    # ---------------- KPIs ----------------
    monthly = data.international_monthly
    latest = monthly.iloc[-1]
    prev_year = monthly[monthly["month"] == latest["month"] - pd.DateOffset(years=1)]
    delta_pct = None
    if not prev_year.empty and prev_year["passengers_total"].iloc[0]:
        prev = prev_year["passengers_total"].iloc[0]
        delta_pct = (latest["passengers_total"] - prev) / prev * 100

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric(
            f"International passengers ({latest['month']:%b %Y})",
            f"{latest['passengers_total']/1e6:.2f} M",
            None if delta_pct is None else f"{delta_pct:.1f}% vs previous year",
        )
    with col2:
        st.metric("Domestic journeys", f"{data.domestic['journey'].nunique()}")
    with col3:
        lf = data.load_factor["load_factor"].iloc[-1]
        st.metric("Domestic load factor (latest month)", f"{lf*100:.1f}%")

    st.divider()

    tab_int, tab_dom, tab_fc, tab_map = st.tabs([
        "International",
        "Domestic",
        "Forecast",
        "Map",
    ])

    with tab_int:
        st.plotly_chart(
            charts.monthly_trend_figure(monthly, "passengers_total", "International passengers per month"),
            use_container_width=True,
        )
        st.plotly_chart(
            charts.top_entities_figure(data.countries, "country", "passengers_total", "Top countries"),
            use_container_width=True,
        )
        c1, c2 = st.columns(2)
        with c1:
            st.plotly_chart(
                charts.top_entities_figure(data.foreign_ports, "foreign_port", "passengers_total", "Top foreign ports"),
                use_container_width=True,
            )
        with c2:
            st.plotly_chart(
                charts.top_entities_figure(
                    data.australian_ports, "australian_port", "passengers_total", "Top Australian ports"
                ),
                use_container_width=True,
            )
        st.plotly_chart(charts.treemap_figure(data.country_ports), use_container_width=True)

    with tab_dom:
        st.plotly_chart(
            charts.monthly_trend_figure(data.domestic_monthly, "passenger_trips", "Domestic passenger trips per month"),
            use_container_width=True,
        )
        first, last = data.domestic["month"].min().date(), data.domestic["month"].max().date()
        c1, c2, c3 = st.columns(3)
        with c1:
            start = st.date_input("From", first, min_value=first, max_value=last)
        with c2:
            end = st.date_input("To", last, min_value=first, max_value=last)
        with c3:
            city = st.text_input("Routes touching city", "")
        routes = data.domestic
        if city:
            routes = filter_location(routes, city, ["city1", "city2"])
        stats = route_statistics(filter_date_range(routes, start, end))
        top = top_n(stats, "total_trips", 10)
        if top.empty:
            st.info("No routes match the selection.")
        else:
            st.plotly_chart(
                charts.top_entities_figure(top, "journey", "total_trips", "Top journeys"),
                use_container_width=True,
            )
            st.dataframe(top, use_container_width=True)
        if len(stats) >= 2:
            st.plotly_chart(charts.distance_scatter_figure(stats), use_container_width=True)

    with tab_fc:
        if data.forecast is None:
            st.info("Not enough months of data for a seasonal forecast.")
        else:
            series = monthly_series(monthly, "passengers_total")
            frame = data.forecast.forecast.reset_index(names="month")
            history = series.rename("passengers").reset_index()
            fig_fc = px.line(history, x="month", y="passengers", title="International passengers: ARIMA forecast")
            fig_fc.add_scatter(x=frame["month"], y=frame["mean"], mode="lines", name="Forecast")
            fig_fc.add_scatter(x=frame["month"], y=frame["upper"], mode="lines", line=dict(width=0), showlegend=False)
            fig_fc.add_scatter(x=frame["month"], y=frame["lower"], mode="lines", line=dict(width=0),
                               fill="tonexty", name="Confidence interval")
            fig_fc.update_layout(template=charts.PLOTLY_TEMPLATE)
            st.plotly_chart(fig_fc, use_container_width=True)

    with tab_map:
        st.caption("City positions come from OpenStreetMap Nominatim and are cached for this session.")
        if st.button("Draw route map"):
            top = data.route_stats.head(15)
            names = pd.unique(top[["city1", "city2"]].to_numpy().ravel())
            with st.spinner("Geocoding cities..."):
                coords, failures = geocode_cities(
                    names, make_geocoder("air-traffic-dashboard"), geocode_cache(), suffix=", Australia"
                )
            for failure in failures:
                st.warning(f"{failure.city}: {failure.reason}")
            st.plotly_chart(charts.route_map_figure(route_segments(top, coords)), use_container_width=True)


if __name__ == "__main__":
    main()
