"""
Ontario carrot and tomato production analysis, end to end.

Steps covered:
- Workbook ingestion (one sheet per year) and cleaning.
- Yearly totals of harvested area, production and farm value, per crop and combined.
- Top-5 counties by lifetime farm value and production with their yearly series.
- Variability (coefficient of variation) of production and value per county.
- Average yield vs. average price over time for both crops.
- Early vs. late period comparison of production and value.
- CSV export of every derived table and a markdown report with saved figures.

Run with:
  python analysis.py --carrot data/carrots.xlsx --tomato data/tomatoes.xlsx
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

import crop_metrics as cm
from crop_data import (
    Col,
    CleaningStats,
    PipelineConfig,
    PipelineError,
    clean_all,
    load_all,
)
from crop_metrics import ProducerRanking

log = logging.getLogger(__name__)

# Global styling
sns.set_theme(style="whitegrid", palette="muted")
CROP_COLORS = {"Carrot": "red", "Tomato": "steelblue"}
DEFAULT_COLOR = "gray"
LABELS = {
    Col.TOTAL_AREA: "Harvested Area (acres)",
    Col.TOTAL_VALUE: "Farm Value ($000)",
    Col.TOTAL_PRODUCTION: "Marketed Production (000 lbs)",
    Col.AVG_YIELD: "Average Yield (000 lbs/acre)",
    Col.AVG_PRICE_DOLLARS: "Average Price ($/lb)",
    Col.AVG_PRODUCTION: "Average Production (000 lbs)",
    Col.AVG_VALUE: "Average Farm Value ($000)",
}


@dataclass
class DatasetSummary:
    crop: str
    rows: int
    regions: int
    year_min: Optional[int]
    year_max: Optional[int]

    @property
    def year_range(self) -> str:
        if self.year_min is None:
            return "no data"
        return f"{self.year_min}–{self.year_max}"


@dataclass
class CropResult:
    crop: str
    clean: pd.DataFrame
    yearly: pd.DataFrame
    yearly_long: pd.DataFrame
    ranking: ProducerRanking
    variability: pd.DataFrame
    yield_price: pd.DataFrame


@dataclass
class AnalysisResult:
    config: PipelineConfig
    crops: Dict[str, CropResult]
    cleaning: List[CleaningStats]
    combined_yearly: pd.DataFrame
    yield_price_long: pd.DataFrame
    periods: pd.DataFrame
    summaries: List[DatasetSummary] = field(default_factory=list)


def describe_dataset(crop: str, df: pd.DataFrame) -> DatasetSummary:
    return DatasetSummary(
        crop=crop,
        rows=len(df),
        regions=df[Col.REGION].nunique(),
        year_min=int(df[Col.YEAR].min()) if len(df) else None,
        year_max=int(df[Col.YEAR].max()) if len(df) else None,
    )


def analyse_crop(crop: str, clean: pd.DataFrame, top_n: int) -> CropResult:
    yearly = cm.yearly_summary(clean)
    table = cm.variability(clean)
    undefined = cm.undefined_cv_regions(table)
    if undefined:
        log.warning("%s: CV undefined for %d region(s): %s", crop, len(undefined), undefined)
    ranking = cm.rank_producers(clean, top_n)
    log.info(
        "%s: top by value %s, top by production %s, overlap %s",
        crop,
        ranking.value_regions,
        ranking.production_regions,
        ranking.overlap,
    )
    return CropResult(
        crop=crop,
        clean=clean,
        yearly=yearly,
        yearly_long=cm.yearly_long(yearly),
        ranking=ranking,
        variability=table,
        yield_price=cm.yield_price_summary(clean),
    )


def run_pipeline(config: PipelineConfig) -> AnalysisResult:
    """Load, clean and aggregate both workbooks; raises PipelineError on bad input."""
    raw = load_all(config)
    cleaned, stats = clean_all(raw, config.aggregate_label)
    crops = {crop: analyse_crop(crop, clean, config.top_n) for crop, clean in cleaned.items()}
    return AnalysisResult(
        config=config,
        crops=crops,
        cleaning=stats,
        combined_yearly=cm.combined_yearly_long(cleaned),
        yield_price_long=cm.combined_yield_price_long(cleaned),
        periods=cm.period_summary(cleaned, config.period_boundary),
        summaries=[describe_dataset(crop, clean) for crop, clean in cleaned.items()],
    )


def ensure_output_dirs(output_dir: Path) -> Dict[str, Path]:
    dirs = {
        "figures": output_dir / "figures",
        "tables": output_dir / "tables",
    }
    for path in dirs.values():
        path.mkdir(parents=True, exist_ok=True)
    return dirs


def slug(text: str) -> str:
    return text.lower().replace(" ", "_")


def export_tables(result: AnalysisResult, table_dir: Path) -> List[str]:
    tables: Dict[str, pd.DataFrame] = {}
    for crop, res in result.crops.items():
        prefix = slug(crop)
        tables[f"{prefix}_clean"] = res.clean
        tables[f"{prefix}_yearly_summary"] = res.yearly
        tables[f"{prefix}_yearly_long"] = res.yearly_long
        tables[f"{prefix}_region_totals"] = res.ranking.totals
        tables[f"{prefix}_top_value"] = res.ranking.by_value
        tables[f"{prefix}_top_production"] = res.ranking.by_production
        tables[f"{prefix}_top_value_trends"] = res.ranking.value_trends
        tables[f"{prefix}_top_production_trends"] = res.ranking.production_trends
        tables[f"{prefix}_variability"] = res.variability
        tables[f"{prefix}_yield_price"] = res.yield_price
    tables["combined_yearly_long"] = result.combined_yearly
    tables["yield_price_long"] = result.yield_price_long
    tables["period_summary"] = result.periods

    paths = []
    for name, df in tables.items():
        fname = table_dir / f"{name}.csv"
        df.to_csv(fname, index=False)
        paths.append(str(fname))
    log.info("Wrote %d tables to %s", len(paths), table_dir)
    return paths


def crop_palette(crops: pd.Series) -> Dict[str, str]:
    return {crop: CROP_COLORS.get(crop, DEFAULT_COLOR) for crop in crops.unique()}


def save_figure(fig: plt.Figure, fname: Path, dpi: int = 200) -> List[str]:
    fig.tight_layout()
    fig.savefig(fname, dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    return [str(fname)]


def plot_yearly_trends(long: pd.DataFrame, crop: str, fig_dir: Path) -> List[str]:
    if long.empty:
        return []
    color = CROP_COLORS.get(crop, DEFAULT_COLOR)
    fig, axes = plt.subplots(1, len(cm.YEARLY_METRICS), figsize=(15, 4.5))
    for ax, metric in zip(axes, cm.YEARLY_METRICS):
        data = long[long[Col.VARIABLE] == metric]
        ax.plot(data[Col.YEAR], data[Col.METRIC_VALUE], color=color, marker="o")
        ax.set_title(LABELS[metric])
        ax.set_xlabel("Year")
        ax.set_ylabel("Value")
    fig.suptitle(f"Trends in {crop} Production, Area, and Value Over Time")
    return save_figure(fig, fig_dir / f"{slug(crop)}_yearly_trends.png")


def plot_crop_comparison(combined: pd.DataFrame, fig_dir: Path) -> List[str]:
    if combined.empty:
        return []
    fig, axes = plt.subplots(1, len(cm.YEARLY_METRICS), figsize=(15, 4.5))
    for ax, metric in zip(axes, cm.YEARLY_METRICS):
        sns.lineplot(
            data=combined[combined[Col.VARIABLE] == metric],
            x=Col.YEAR,
            y=Col.METRIC_VALUE,
            hue=Col.CROP,
            palette=crop_palette(combined[Col.CROP]),
            marker="o",
            ax=ax,
        )
        ax.set_title(LABELS[metric])
        ax.set_xlabel("Year")
        ax.set_ylabel("Value")
    fig.suptitle("Comparison of Carrot and Tomato Trends Over Time")
    return save_figure(fig, fig_dir / "crop_comparison.png")


def plot_region_trends(
    trends: pd.DataFrame, metric: str, crop: str, fig_dir: Path
) -> List[str]:
    if trends.empty:
        return []
    measure = "Farm Value" if metric == Col.TOTAL_VALUE else "Production"
    fig, ax = plt.subplots(figsize=(11, 6))
    sns.lineplot(data=trends, x=Col.YEAR, y=metric, hue=Col.REGION, marker="o", ax=ax)
    ax.set_title(f"{measure} of {crop}s per Year (Top {trends[Col.REGION].nunique()} Counties)")
    ax.set_xlabel("Year")
    ax.set_ylabel(LABELS[metric])
    ax.legend(title="County/district", bbox_to_anchor=(1.02, 1), loc="upper left")
    return save_figure(fig, fig_dir / f"{slug(crop)}_top_{metric}_trends.png")


def plot_cv_ranking(table: pd.DataFrame, metric: str, crop: str, fig_dir: Path) -> List[str]:
    """Horizontal bars of CV, most stable county first; undefined CVs are left out."""
    ranked = cm.rank_by_cv(table, metric)
    if ranked.empty:
        return []
    col = f"cv_{metric}"
    fig, ax = plt.subplots(figsize=(9, max(4, 0.3 * len(ranked))))
    sns.barplot(
        data=ranked,
        x=col,
        y=Col.REGION,
        orient="h",
        color=CROP_COLORS.get(crop, DEFAULT_COLOR),
        ax=ax,
    )
    ax.set_title(f"Variability in {crop} {metric.title()} by County")
    ax.set_xlabel("Coefficient of Variation")
    ax.set_ylabel("County/District")
    return save_figure(fig, fig_dir / f"{slug(crop)}_cv_{metric}.png")


def plot_yield_price(long: pd.DataFrame, fig_dir: Path) -> List[str]:
    if long.empty:
        return []
    fig, axes = plt.subplots(1, len(cm.YIELD_PRICE_METRICS), figsize=(12, 4.5))
    for ax, metric in zip(axes, cm.YIELD_PRICE_METRICS):
        sns.lineplot(
            data=long[long[Col.VARIABLE] == metric],
            x=Col.YEAR,
            y=Col.METRIC_VALUE,
            hue=Col.CROP,
            palette=crop_palette(long[Col.CROP]),
            marker="o",
            ax=ax,
        )
        ax.set_title(LABELS[metric])
        ax.set_xlabel("Year")
        ax.set_ylabel("Value")
    years = long[Col.YEAR]
    fig.suptitle(f"Average Yield and Price by Crop ({years.min()}–{years.max()})")
    return save_figure(fig, fig_dir / "yield_vs_price.png")


def plot_period_comparison(periods: pd.DataFrame, metric: str, fig_dir: Path) -> List[str]:
    if periods.empty:
        return []
    fig, ax = plt.subplots(figsize=(8, 5))
    sns.barplot(
        data=periods,
        x=Col.PERIOD_LABEL,
        y=metric,
        hue=Col.CROP,
        palette=crop_palette(periods[Col.CROP]),
        ax=ax,
    )
    labels = " vs. ".join(periods[Col.PERIOD_LABEL].drop_duplicates())
    ax.set_title(f"{LABELS[metric]} by Crop ({labels})")
    ax.set_xlabel("Period")
    ax.set_ylabel(LABELS[metric])
    ax.legend(title="Crop")
    return save_figure(fig, fig_dir / f"period_{metric}.png")


def render_figures(result: AnalysisResult, fig_dir: Path) -> Dict[str, List[str]]:
    figures: Dict[str, List[str]] = {
        "yearly": [],
        "top_value": [],
        "top_production": [],
        "variability": [],
    }
    for crop, res in result.crops.items():
        figures["yearly"] += plot_yearly_trends(res.yearly_long, crop, fig_dir)
        figures["top_value"] += plot_region_trends(
            res.ranking.value_trends, Col.TOTAL_VALUE, crop, fig_dir
        )
        figures["top_production"] += plot_region_trends(
            res.ranking.production_trends, Col.TOTAL_PRODUCTION, crop, fig_dir
        )
        for metric in cm.CV_SOURCES:
            figures["variability"] += plot_cv_ranking(res.variability, metric, crop, fig_dir)
    figures["comparison"] = plot_crop_comparison(result.combined_yearly, fig_dir)
    figures["yield_price"] = plot_yield_price(result.yield_price_long, fig_dir)
    figures["periods"] = plot_period_comparison(
        result.periods, Col.AVG_PRODUCTION, fig_dir
    ) + plot_period_comparison(result.periods, Col.AVG_VALUE, fig_dir)
    log.info("Saved %d figures to %s", sum(len(v) for v in figures.values()), fig_dir)
    return figures


def render_report(
    result: AnalysisResult, figures: Dict[str, List[str]], path: Path
) -> None:
    """Write a markdown report next to the figures and tables."""
    config = result.config
    md_lines = [
        "# Carrot & Tomato Production Analysis",
        "",
        "County/district-level production, farm value, yield and price, "
        f"excluding '{config.aggregate_label}' total rows.",
        "",
        "## Dataset",
    ]
    for summary in result.summaries:
        md_lines.append(
            f"- {summary.crop}: {summary.rows:,} rows | {summary.regions} counties/districts | "
            f"{summary.year_range}"
        )
    for stats in result.cleaning:
        md_lines.append(
            f"- {stats.crop} cleaning: {stats.rows_in:,} rows read, "
            f"{stats.dropped_missing} dropped for missing values, "
            f"{stats.dropped_aggregate} aggregate rows removed"
        )
    md_lines.append("")

    def add_section(title: str, bullet_points: List[str], images: Optional[List[str]] = None) -> None:
        md_lines.append(f"## {title}")
        md_lines.extend([f"- {b}" for b in bullet_points if b])
        if images:
            for img in images:
                md_lines.append(f"![{title}]({Path(img).relative_to(path.parent).as_posix()})")
        md_lines.append("")

    def table(df: pd.DataFrame) -> str:
        return df.to_markdown(index=False, floatfmt=",.2f")

    trend_points = []
    for crop, res in result.crops.items():
        if res.yearly.empty:
            continue
        peak = res.yearly.loc[res.yearly[Col.TOTAL_VALUE].idxmax()]
        trend_points.append(
            f"{crop} farm value peaked in {int(peak[Col.YEAR])} at ${peak[Col.TOTAL_VALUE]:,.0f}k."
        )
    add_section("Yearly Trends", trend_points, figures.get("yearly", []) + figures.get("comparison", []))

    md_lines.append("## Top Producers")
    for crop, res in result.crops.items():
        md_lines.append(f"### {crop}")
        md_lines.append("By lifetime farm value:")
        md_lines.append(table(res.ranking.by_value))
        md_lines.append("")
        md_lines.append("By lifetime marketed production:")
        md_lines.append(table(res.ranking.by_production))
        md_lines.append("")
        overlap = ", ".join(res.ranking.overlap) or "none"
        md_lines.append(f"- In both lists: {overlap}")
        md_lines.append("")
    for img in figures.get("top_value", []) + figures.get("top_production", []):
        md_lines.append(f"![Top producers]({Path(img).relative_to(path.parent).as_posix()})")
    md_lines.append("")

    stability = []
    for crop, res in result.crops.items():
        ranked = cm.rank_by_cv(res.variability, "production")
        if not ranked.empty:
            first = ranked.iloc[0]
            last = ranked.iloc[-1]
            stability.append(
                f"{crop}: most stable production in {first[Col.REGION]} (CV={first['cv_production']:.2f}), "
                f"least stable in {last[Col.REGION]} (CV={last['cv_production']:.2f})."
            )
        undefined = cm.undefined_cv_regions(res.variability)
        if undefined:
            stability.append(
                f"{crop}: CV undefined (single year of data or zero mean) for {', '.join(undefined)}; "
                "these counties are left out of the CV charts."
            )
    add_section("Variability", stability, figures.get("variability"))

    add_section(
        "Yield vs. Price",
        ["Average prices are converted from cents/lb to $/lb for charting."],
        figures.get("yield_price"),
    )

    md_lines.append("## Period Comparison")
    md_lines.append(
        f"Early period: years up to {config.period_boundary}; late period: years after it."
    )
    md_lines.append("")
    if not result.periods.empty:
        md_lines.append(table(result.periods))
        md_lines.append("")
    for img in figures.get("periods", []):
        md_lines.append(f"![Period comparison]({Path(img).relative_to(path.parent).as_posix()})")
    md_lines.append("")

    path.write_text("\n".join(md_lines), encoding="utf-8")
    log.info("Report written to %s", path)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    defaults = PipelineConfig()
    parser = argparse.ArgumentParser(description="Carrot and tomato production analysis")
    parser.add_argument("--carrot", type=Path, default=defaults.sources["Carrot"], help="Carrot workbook")
    parser.add_argument("--tomato", type=Path, default=defaults.sources["Tomato"], help="Tomato workbook")
    parser.add_argument("--skip-rows", type=int, default=defaults.skip_rows, help="Preamble rows above the header")
    parser.add_argument(
        "--aggregate-label",
        default=defaults.aggregate_label,
        help="Region label of province-wide total rows to exclude",
    )
    parser.add_argument(
        "--period-boundary",
        type=int,
        default=defaults.period_boundary,
        help="Last year of the early period",
    )
    parser.add_argument("--top-n", type=int, default=defaults.top_n, help="Size of top-producer lists")
    parser.add_argument("--output-dir", type=Path, default=defaults.output_dir)
    parser.add_argument("--no-figures", action="store_true", help="Only export tables and the report")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )
    try:
        config = PipelineConfig(
            sources={"Carrot": args.carrot, "Tomato": args.tomato},
            skip_rows=args.skip_rows,
            aggregate_label=args.aggregate_label,
            period_boundary=args.period_boundary,
            top_n=args.top_n,
            output_dir=args.output_dir,
        )
        result = run_pipeline(config)
    except (PipelineError, ValueError) as exc:
        log.error("Analysis aborted: %s", exc)
        return 1

    dirs = ensure_output_dirs(config.output_dir)
    export_tables(result, dirs["tables"])
    figures = {} if args.no_figures else render_figures(result, dirs["figures"])
    render_report(result, figures, config.output_dir / "report.md")
    log.info("Analysis complete. Outputs in %s", config.output_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
