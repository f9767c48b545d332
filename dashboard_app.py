"""
Streamlit dashboard: Ontario Carrot & Tomato Production (county level)

Interactive companion to analysis.py covering:
- Yearly trends of area, production and farm value, per crop and side by side.
- Top-producing counties and their yearly series.
- County stability ranked by coefficient of variation.
- Average yield vs. price, and the early vs. late period comparison.

Run with:
  pip install -e .
  streamlit run dashboard_app.py
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

import crop_metrics as cm
from analysis import CROP_COLORS, LABELS, AnalysisResult, run_pipeline
from crop_data import (
    AGGREGATE_LABEL,
    DEFAULT_SOURCES,
    PERIOD_BOUNDARY,
    SKIP_ROWS,
    TOP_N,
    Col,
    PipelineConfig,
    PipelineError,
)

REGION_LABEL = "County/district"


def shorten_label(value: str, max_len: int = 22) -> str:
    if pd.isna(value):
        return value
    text = str(value)
    return text if len(text) <= max_len else text[: max_len - 1] + "…"


def style_fig(fig: go.Figure, title: Optional[str] = None) -> go.Figure:
    fig.update_layout(
        template="plotly_white",
        legend=dict(x=1.02),
    )
    if title:
        fig.update_layout(title=title)
    return fig


def label_facets(fig: go.Figure) -> go.Figure:
    # facet titles arrive as "variable=total_area"
    fig.for_each_annotation(lambda a: a.update(text=LABELS.get(a.text.split("=")[-1], a.text)))
    fig.update_yaxes(matches=None, showticklabels=True)
    return fig


@st.cache_data(show_spinner=False)
def load_results(
    carrot: str,
    tomato: str,
    period_boundary: int,
    top_n: int,
    skip_rows: int = SKIP_ROWS,
    aggregate_label: str = AGGREGATE_LABEL,
) -> AnalysisResult:
    config = PipelineConfig(
        sources={"Carrot": Path(carrot), "Tomato": Path(tomato)},
        skip_rows=skip_rows,
        aggregate_label=aggregate_label,
        period_boundary=period_boundary,
        top_n=top_n,
    )
    return run_pipeline(config)


@dataclass
class HeroMetrics:
    crop: str
    counties: int
    years: str
    top_value_county: str
    most_stable_county: str
    most_stable_cv: float

    @property
    def cv_delta(self) -> Optional[str]:
        if pd.isna(self.most_stable_cv):
            return None
        return f"CV {self.most_stable_cv:.2f}"


def compute_hero_metrics(result: AnalysisResult) -> List[HeroMetrics]:
    metrics = []
    for summary in result.summaries:
        res = result.crops[summary.crop]
        ranked = cm.rank_by_cv(res.variability, "production")
        top_value = res.ranking.value_regions
        metrics.append(
            HeroMetrics(
                crop=summary.crop,
                counties=summary.regions,
                years=summary.year_range,
                top_value_county=top_value[0] if top_value else "n/a",
                most_stable_county=str(ranked.iloc[0][Col.REGION]) if not ranked.empty else "n/a",
                most_stable_cv=float(ranked.iloc[0]["cv_production"]) if not ranked.empty else float("nan"),
            )
        )
    return metrics


def yearly_trend_fig(long: pd.DataFrame, title: str) -> go.Figure:
    fig = px.line(
        long,
        x=Col.YEAR,
        y=Col.METRIC_VALUE,
        color=Col.CROP if Col.CROP in long.columns else None,
        facet_col=Col.VARIABLE,
        category_orders={Col.VARIABLE: cm.YEARLY_METRICS},
        color_discrete_map=CROP_COLORS,
        markers=True,
        labels={Col.YEAR: "Year", Col.METRIC_VALUE: "Value", Col.CROP: "Crop"},
    )
    return style_fig(label_facets(fig), title)


def top_region_fig(trends: pd.DataFrame, metric: str, crop: str) -> go.Figure:
    measure = "Farm value" if metric == Col.TOTAL_VALUE else "Production"
    fig = px.line(
        trends,
        x=Col.YEAR,
        y=metric,
        color=Col.REGION,
        markers=True,
        labels={Col.YEAR: "Year", metric: LABELS[metric], Col.REGION: REGION_LABEL},
    )
    fig.update_layout(hovermode="x unified")
    return style_fig(fig, f"{measure} of {crop.lower()}s per year (top counties)")


def cv_bar_fig(table: pd.DataFrame, metric: str, crop: str) -> go.Figure:
    ranked = cm.rank_by_cv(table, metric)
    col = f"cv_{metric}"
    ranked = ranked.assign(region_label=ranked[Col.REGION].apply(shorten_label))
    fig = px.bar(
        ranked,
        x=col,
        y="region_label",
        orientation="h",
        color_discrete_sequence=[CROP_COLORS.get(crop, "gray")],
        labels={col: "Coefficient of variation", "region_label": REGION_LABEL},
        hover_data={Col.REGION: True, "n_years": True},
    )
    # most stable county on top
    fig.update_yaxes(autorange="reversed")
    return style_fig(fig, f"Variability in {crop.lower()} {metric} by county")


def yield_price_fig(long: pd.DataFrame) -> go.Figure:
    fig = px.line(
        long,
        x=Col.YEAR,
        y=Col.METRIC_VALUE,
        color=Col.CROP,
        facet_col=Col.VARIABLE,
        category_orders={Col.VARIABLE: cm.YIELD_PRICE_METRICS},
        color_discrete_map=CROP_COLORS,
        markers=True,
        labels={Col.YEAR: "Year", Col.METRIC_VALUE: "Value", Col.CROP: "Crop"},
    )
    return style_fig(label_facets(fig), "Average yield and price by crop")


def period_fig(periods: pd.DataFrame, metric: str) -> go.Figure:
    fig = px.bar(
        periods,
        x=Col.PERIOD_LABEL,
        y=metric,
        color=Col.CROP,
        barmode="group",
        color_discrete_map=CROP_COLORS,
        labels={Col.PERIOD_LABEL: "Period", metric: LABELS[metric], Col.CROP: "Crop"},
    )
    return style_fig(fig, f"{LABELS[metric]} by crop and period")


def narrative_block(title: str, bullet_points: List[str]) -> None:
    st.markdown(f"**{title}**")
    for b in bullet_points:
        st.write(f"- {b}")


def main() -> None:
    st.set_page_config(
        page_title="Carrot & Tomato Production Dashboard",
        layout="wide",
        initial_sidebar_state="expanded",
    )
    st.title("Ontario Carrot & Tomato Production")
    st.caption("County/district-level area, production, farm value, yield and price")

    st.sidebar.header("Data")
    carrot = st.sidebar.text_input("Carrot workbook", str(DEFAULT_SOURCES["Carrot"]))
    tomato = st.sidebar.text_input("Tomato workbook", str(DEFAULT_SOURCES["Tomato"]))
    boundary = int(
        st.sidebar.number_input("Last year of early period", value=PERIOD_BOUNDARY, step=1)
    )
    top_n = int(st.sidebar.number_input("Top counties", min_value=1, max_value=15, value=TOP_N))

    try:
        result = load_results(carrot, tomato, boundary, top_n)
    except PipelineError as exc:
        st.error(f"Could not load the workbooks: {exc}")
        st.stop()

    st.sidebar.header("Navigation")
    sections = [
        "Overview",
        "Yearly Trends",
        "Top Producers",
        "Variability",
        "Yield vs Price",
        "Period Comparison",
    ]
    selected = st.sidebar.radio("Jump to section", sections)
    crops = list(result.crops)

    if selected == "Overview":
        st.header("Overview")
        cols = st.columns(len(crops))
        for col, hero in zip(cols, compute_hero_metrics(result)):
            with col:
                st.subheader(hero.crop)
                st.metric("Counties/districts", f"{hero.counties}")
                st.metric("Years covered", hero.years)
                st.metric("Top county by farm value", hero.top_value_county)
                st.metric("Most stable production", hero.most_stable_county, delta=hero.cv_delta)
        stats = pd.DataFrame([vars(s) for s in result.cleaning])
        st.dataframe(stats, use_container_width=True)
        st.caption(f"Rows labelled '{result.config.aggregate_label}' are province totals and are excluded.")

    if selected == "Yearly Trends":
        st.header("Yearly Trends")
        for crop in crops:
            long = result.crops[crop].yearly_long.assign(**{Col.CROP: crop})
            st.plotly_chart(
                yearly_trend_fig(long, f"Trends in {crop.lower()} production, area, and value"),
                use_container_width=True,
            )
        st.plotly_chart(
            yearly_trend_fig(result.combined_yearly, "Carrot and tomato trends compared"),
            use_container_width=True,
        )

    if selected == "Top Producers":
        st.header("Top Producers")
        crop = st.selectbox("Crop", crops)
        ranking = result.crops[crop].ranking
        c1, c2 = st.columns(2)
        with c1:
            st.dataframe(ranking.by_value, use_container_width=True)
            st.plotly_chart(
                top_region_fig(ranking.value_trends, Col.TOTAL_VALUE, crop),
                use_container_width=True,
            )
        with c2:
            st.dataframe(ranking.by_production, use_container_width=True)
            st.plotly_chart(
                top_region_fig(ranking.production_trends, Col.TOTAL_PRODUCTION, crop),
                use_container_width=True,
            )
        narrative_block("In both top lists", ranking.overlap or ["none"])

    if selected == "Variability":
        st.header("Variability & Resilience")
        crop = st.selectbox("Crop", crops)
        table = result.crops[crop].variability
        c1, c2 = st.columns(2)
        with c1:
            st.plotly_chart(cv_bar_fig(table, "production", crop), use_container_width=True)
        with c2:
            st.plotly_chart(cv_bar_fig(table, "value", crop), use_container_width=True)
        undefined = cm.undefined_cv_regions(table)
        if undefined:
            st.warning(
                "CV undefined (one year of data or zero mean), not charted: " + ", ".join(undefined)
            )
        st.caption("CV is the sample standard deviation divided by the mean; lower is more stable.")
        st.dataframe(table, use_container_width=True)

    if selected == "Yield vs Price":
        st.header("Yield vs Price")
        st.plotly_chart(yield_price_fig(result.yield_price_long), use_container_width=True)
        st.caption("Prices are shown in $/lb (source cents/lb divided by 100).")

    if selected == "Period Comparison":
        st.header("Period Comparison")
        c1, c2 = st.columns(2)
        with c1:
            st.plotly_chart(period_fig(result.periods, Col.AVG_PRODUCTION), use_container_width=True)
        with c2:
            st.plotly_chart(period_fig(result.periods, Col.AVG_VALUE), use_container_width=True)
        st.dataframe(result.periods, use_container_width=True)


if __name__ == "__main__":
    main()
