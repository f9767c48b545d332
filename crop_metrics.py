"""
Derived tables computed from the cleaned commodity tables.

All functions are pure: they take cleaned frames (see crop_data.clean_commodity)
and return new frames without touching their inputs.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

import numpy as np
import pandas as pd

from crop_data import Col

EARLY = "early"
LATE = "late"

# Facet order for yearly trend charts
YEARLY_METRICS = [Col.TOTAL_AREA, Col.TOTAL_VALUE, Col.TOTAL_PRODUCTION]
YIELD_PRICE_METRICS = [Col.AVG_YIELD, Col.AVG_PRICE_DOLLARS]
RANKING_SOURCES = {Col.TOTAL_VALUE: Col.VALUE, Col.TOTAL_PRODUCTION: Col.PRODUCTION}
CV_SOURCES = {"production": Col.PRODUCTION, "value": Col.VALUE}


def yearly_summary(clean: pd.DataFrame) -> pd.DataFrame:
    return (
        clean.groupby(Col.YEAR)
        .agg(
            total_area=(Col.AREA, "sum"),
            total_value=(Col.VALUE, "sum"),
            total_production=(Col.PRODUCTION, "sum"),
        )
        .sort_index()
        .reset_index()
    )


def yearly_long(summary: pd.DataFrame) -> pd.DataFrame:
    """One row per (year, metric); metrics in area, value, production order."""
    return summary.melt(
        id_vars=Col.YEAR,
        value_vars=YEARLY_METRICS,
        var_name=Col.VARIABLE,
        value_name=Col.METRIC_VALUE,
    ).reset_index(drop=True)


def combined_yearly_long(clean_by_crop: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
    frames = [
        yearly_long(yearly_summary(clean)).assign(**{Col.CROP: crop})
        for crop, clean in clean_by_crop.items()
    ]
    return pd.concat(frames, ignore_index=True)


@dataclass
class ProducerRanking:
    totals: pd.DataFrame
    by_value: pd.DataFrame
    by_production: pd.DataFrame
    overlap: List[str]
    value_trends: pd.DataFrame
    production_trends: pd.DataFrame

    @property
    def value_regions(self) -> List[str]:
        return self.by_value[Col.REGION].tolist()

    @property
    def production_regions(self) -> List[str]:
        return self.by_production[Col.REGION].tolist()


def region_totals(clean: pd.DataFrame) -> pd.DataFrame:
    """Lifetime value and production per region (all years summed)."""
    return (
        clean.groupby(Col.REGION)
        .agg(
            total_value=(Col.VALUE, "sum"),
            total_production=(Col.PRODUCTION, "sum"),
        )
        .reset_index()
    )


def top_regions(totals: pd.DataFrame, metric: str, n: int = 5) -> pd.DataFrame:
    """Largest n regions by metric; equal totals fall back to alphabetical order."""
    ranked = totals.sort_values(
        [metric, Col.REGION], ascending=[False, True], kind="mergesort"
    )
    return ranked.head(n).reset_index(drop=True)


def ranking_overlap(by_value: pd.DataFrame, by_production: pd.DataFrame) -> List[str]:
    production = set(by_production[Col.REGION])
    return [region for region in by_value[Col.REGION] if region in production]


def region_trends(clean: pd.DataFrame, regions: Iterable[str], metric: str) -> pd.DataFrame:
    source = RANKING_SOURCES[metric]
    subset = clean[clean[Col.REGION].isin(list(regions))]
    return (
        subset.groupby([Col.YEAR, Col.REGION])[source]
        .sum()
        .reset_index(name=metric)
    )


def rank_producers(clean: pd.DataFrame, n: int = 5) -> ProducerRanking:
    totals = region_totals(clean)
    by_value = top_regions(totals, Col.TOTAL_VALUE, n)
    by_production = top_regions(totals, Col.TOTAL_PRODUCTION, n)
    return ProducerRanking(
        totals=totals,
        by_value=by_value,
        by_production=by_production,
        overlap=ranking_overlap(by_value, by_production),
        value_trends=region_trends(clean, by_value[Col.REGION], Col.TOTAL_VALUE),
        production_trends=region_trends(
            clean, by_production[Col.REGION], Col.TOTAL_PRODUCTION
        ),
    )


def variability(clean: pd.DataFrame) -> pd.DataFrame:
    """
    Mean, sample standard deviation and coefficient of variation per region.

    A region observed in a single year has no sample standard deviation, so
    its sd and CV are NaN. A zero mean also leaves the CV undefined (NaN).
    Rows are ordered by ascending production CV with undefined values last.
    """
    table = (
        clean.groupby(Col.REGION)
        .agg(
            n_years=(Col.YEAR, "count"),
            mean_production=(Col.PRODUCTION, "mean"),
            sd_production=(Col.PRODUCTION, "std"),
            mean_value=(Col.VALUE, "mean"),
            sd_value=(Col.VALUE, "std"),
        )
        .reset_index()
    )
    for metric in CV_SOURCES:
        cv = table[f"sd_{metric}"] / table[f"mean_{metric}"]
        table[f"cv_{metric}"] = cv.replace([np.inf, -np.inf], np.nan)
    table = table[
        [
            Col.REGION,
            "n_years",
            "mean_production",
            "sd_production",
            "cv_production",
            "mean_value",
            "sd_value",
            "cv_value",
        ]
    ]
    return table.sort_values(
        ["cv_production", Col.REGION], na_position="last", kind="mergesort"
    ).reset_index(drop=True)


def rank_by_cv(table: pd.DataFrame, metric: str = "production") -> pd.DataFrame:
    col = f"cv_{metric}"
    return (
        table.dropna(subset=[col])
        .sort_values([col, Col.REGION], kind="mergesort")
        .reset_index(drop=True)
    )


def undefined_cv_regions(table: pd.DataFrame) -> List[str]:
    mask = table["cv_production"].isna() | table["cv_value"].isna()
    return sorted(table.loc[mask, Col.REGION].tolist())


def cents_to_dollars(cents):
    return cents / 100


def yield_price_summary(clean: pd.DataFrame) -> pd.DataFrame:
    summary = (
        clean.groupby(Col.YEAR)
        .agg(
            avg_yield=(Col.YIELD, "mean"),
            avg_price=(Col.PRICE, "mean"),
        )
        .sort_index()
        .reset_index()
    )
    summary[Col.AVG_PRICE_DOLLARS] = cents_to_dollars(summary[Col.AVG_PRICE])
    return summary


def combined_yield_price_long(clean_by_crop: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
    frames = [
        yield_price_summary(clean).assign(**{Col.CROP: crop})
        for crop, clean in clean_by_crop.items()
    ]
    combined = pd.concat(frames, ignore_index=True)[
        [Col.CROP, Col.YEAR] + YIELD_PRICE_METRICS
    ]
    return combined.melt(
        id_vars=[Col.CROP, Col.YEAR],
        value_vars=YIELD_PRICE_METRICS,
        var_name=Col.VARIABLE,
        value_name=Col.METRIC_VALUE,
    )


def assign_period(years: pd.Series, boundary: int) -> pd.Series:
    """'early' for years up to and including boundary, 'late' after it."""
    return pd.Series(
        np.where(years <= boundary, EARLY, LATE), index=years.index, name=Col.PERIOD
    )


def period_labels(years: pd.Series, boundary: int) -> Dict[str, str]:
    labels = {}
    for period, band in ((EARLY, years[years <= boundary]), (LATE, years[years > boundary])):
        if not band.empty:
            labels[period] = f"{int(band.min())}–{int(band.max())}"
    return labels


def period_summary(clean_by_crop: Mapping[str, pd.DataFrame], boundary: int) -> pd.DataFrame:
    frames = [
        clean[[Col.YEAR, Col.PRODUCTION, Col.VALUE]].assign(**{Col.CROP: crop})
        for crop, clean in clean_by_crop.items()
    ]
    combined = pd.concat(frames, ignore_index=True)
    combined[Col.PERIOD] = assign_period(combined[Col.YEAR], boundary)
    summary = (
        combined.groupby([Col.PERIOD, Col.CROP])
        .agg(
            avg_production=(Col.PRODUCTION, "mean"),
            avg_value=(Col.VALUE, "mean"),
        )
        .reset_index()
    )
    labels = period_labels(combined[Col.YEAR], boundary)
    summary[Col.PERIOD_LABEL] = summary[Col.PERIOD].map(labels)
    return summary
