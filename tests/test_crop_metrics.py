import math
import statistics

import pandas as pd
import pytest

import crop_metrics as cm
from crop_data import Col


class TestYearly:
    def test_sums_per_year(self, clean_table):
        clean = clean_table(
            [
                ("A", 2020, 100, 50, 10),
                ("B", 2020, 40, 20, 5),
                ("A", 2021, 200, 150, 12),
            ]
        )
        summary = cm.yearly_summary(clean).set_index(Col.YEAR)
        assert summary.loc[2020, Col.TOTAL_PRODUCTION] == 140
        assert summary.loc[2020, Col.TOTAL_VALUE] == 70
        assert summary.loc[2020, Col.TOTAL_AREA] == 15
        assert summary.loc[2021, Col.TOTAL_PRODUCTION] == 200

    def test_row_order_does_not_change_totals(self, clean_table):
        clean = clean_table(
            [
                ("A", 2021, 200, 150),
                ("B", 2020, 40, 20),
                ("C", 2021, 7, 3),
                ("A", 2020, 100, 50),
            ]
        )
        shuffled = clean.sample(frac=1, random_state=3).reset_index(drop=True)
        pd.testing.assert_frame_equal(cm.yearly_summary(clean), cm.yearly_summary(shuffled))

    def test_long_form_order(self, clean_table):
        clean = clean_table([("A", 2021, 2, 2), ("A", 2020, 1, 1)])
        long = cm.yearly_long(cm.yearly_summary(clean))
        assert long[Col.VARIABLE].drop_duplicates().tolist() == cm.YEARLY_METRICS
        assert long[Col.YEAR].tolist() == [2020, 2021] * 3
        assert len(long) == 6

    def test_combined_long_is_tagged_by_crop(self, clean_table):
        carrots = clean_table([("A", 2020, 1, 1)])
        tomatoes = clean_table([("B", 2020, 5, 5), ("B", 2021, 6, 6)])
        combined = cm.combined_yearly_long({"Carrot": carrots, "Tomato": tomatoes})
        assert combined.groupby(Col.CROP).size().to_dict() == {"Carrot": 3, "Tomato": 6}


class TestTopProducers:
    @pytest.fixture
    def seven_regions(self, clean_table):
        values = {"A": 100, "B": 300, "C": 300, "D": 400, "E": 500, "F": 600, "G": 700}
        rows = []
        for region, value in values.items():
            rows.append((region, 2020, 1000 - value, value / 2))
            rows.append((region, 2021, 0, value / 2))
        return clean_table(rows)

    def test_top_five_by_value_with_alphabetical_ties(self, seven_regions):
        totals = cm.region_totals(seven_regions)
        top = cm.top_regions(totals, Col.TOTAL_VALUE, 5)
        assert top[Col.REGION].tolist() == ["G", "F", "E", "D", "B"]
        assert top[Col.TOTAL_VALUE].is_monotonic_decreasing

    def test_lists_are_ranked_independently(self, seven_regions):
        ranking = cm.rank_producers(seven_regions, 5)
        assert ranking.production_regions == ["A", "B", "C", "D", "E"]
        assert ranking.value_regions == ["G", "F", "E", "D", "B"]
        assert ranking.overlap == ["E", "D", "B"]
        for regions in (ranking.value_regions, ranking.production_regions):
            assert len(set(regions)) == 5

    def test_fewer_regions_than_n(self, clean_table):
        clean = clean_table([("A", 2020, 1, 1), ("B", 2020, 2, 2)])
        ranking = cm.rank_producers(clean, 5)
        assert ranking.value_regions == ["B", "A"]

    def test_trends_only_cover_top_regions(self, seven_regions):
        ranking = cm.rank_producers(seven_regions, 2)
        trends = ranking.value_trends
        assert set(trends[Col.REGION]) == {"G", "F"}
        assert list(trends.columns) == [Col.YEAR, Col.REGION, Col.TOTAL_VALUE]
        g = trends[trends[Col.REGION] == "G"].set_index(Col.YEAR)[Col.TOTAL_VALUE]
        assert g.to_dict() == {2020: 350, 2021: 350}
        assert Col.TOTAL_PRODUCTION in ranking.production_trends.columns


class TestVariability:
    def test_cv_is_sd_over_mean(self, clean_table):
        clean = clean_table(
            [
                ("A", 2020, 100, 50),
                ("A", 2021, 200, 150),
                ("A", 2022, 150, 100),
            ]
        )
        row = cm.variability(clean).iloc[0]
        sd = statistics.stdev([100, 200, 150])
        assert row["n_years"] == 3
        assert row["mean_production"] == pytest.approx(150)
        assert row["sd_production"] == pytest.approx(sd)
        assert row["cv_production"] == pytest.approx(sd / 150)
        assert row["cv_value"] == pytest.approx(statistics.stdev([50, 150, 100]) / 100)

    def test_single_year_region_is_undefined_and_last(self, clean_table):
        clean = clean_table(
            [
                ("Solo", 2020, 100, 10),
                ("Steady", 2020, 100, 10),
                ("Steady", 2021, 110, 11),
                ("Swingy", 2020, 10, 10),
                ("Swingy", 2021, 200, 30),
            ]
        )
        table = cm.variability(clean)
        assert table[Col.REGION].tolist() == ["Steady", "Swingy", "Solo"]
        solo = table.iloc[-1]
        assert math.isnan(solo["sd_production"])
        assert math.isnan(solo["cv_production"])
        assert math.isnan(solo["cv_value"])
        assert cm.undefined_cv_regions(table) == ["Solo"]

    def test_zero_mean_gives_undefined_cv(self, clean_table):
        clean = clean_table([("Z", 2020, 0, 5), ("Z", 2021, 0, 6)])
        row = cm.variability(clean).iloc[0]
        assert math.isnan(row["cv_production"])
        assert not math.isinf(row["cv_value"])

    def test_rank_by_cv_excludes_undefined(self, clean_table):
        clean = clean_table(
            [
                ("B", 2020, 10, 1),
                ("B", 2021, 30, 1),
                ("A", 2020, 10, 1),
                ("A", 2021, 11, 5),
                ("C", 2020, 5, 5),
            ]
        )
        table = cm.variability(clean)
        assert cm.rank_by_cv(table, "production")[Col.REGION].tolist() == ["A", "B"]
        assert cm.rank_by_cv(table, "value")[Col.REGION].tolist() == ["B", "A"]


class TestYieldPrice:
    def test_price_conversion_is_exact(self):
        cents = pd.Series([0, 1, 25, 199.5])
        assert cm.cents_to_dollars(cents).tolist() == [0, 0.01, 0.25, 1.995]

    def test_yearly_means(self, clean_table):
        clean = clean_table(
            [
                ("A", 2020, 1, 1, 1, 30, 20),
                ("B", 2020, 1, 1, 1, 40, 40),
                ("A", 2021, 1, 1, 1, 35, 50),
            ]
        )
        summary = cm.yield_price_summary(clean).set_index(Col.YEAR)
        assert summary.loc[2020, Col.AVG_YIELD] == pytest.approx(35)
        assert summary.loc[2020, Col.AVG_PRICE] == pytest.approx(30)
        assert summary.loc[2020, Col.AVG_PRICE_DOLLARS] == pytest.approx(0.30)
        assert summary.loc[2021, Col.AVG_PRICE_DOLLARS] == pytest.approx(0.50)

    def test_combined_long(self, clean_table):
        carrots = clean_table([("A", 2020, 1, 1, 1, 30, 20)])
        tomatoes = clean_table([("B", 2020, 1, 1, 1, 40, 6)])
        long = cm.combined_yield_price_long({"Carrot": carrots, "Tomato": tomatoes})
        assert list(long.columns) == [Col.CROP, Col.YEAR, Col.VARIABLE, Col.METRIC_VALUE]
        assert set(long[Col.VARIABLE]) == set(cm.YIELD_PRICE_METRICS)
        tomato_price = long[(long[Col.CROP] == "Tomato") & (long[Col.VARIABLE] == Col.AVG_PRICE_DOLLARS)]
        assert tomato_price[Col.METRIC_VALUE].tolist() == pytest.approx([0.06])


class TestPeriods:
    def test_partition_is_total_and_disjoint(self):
        years = pd.Series(range(2005, 2024))
        periods = cm.assign_period(years, 2013)
        assert set(periods) == {cm.EARLY, cm.LATE}
        assert ((periods == cm.EARLY) == (years <= 2013)).all()
        assert ((periods == cm.LATE) == (years >= 2014)).all()

    def test_labels_follow_data_range(self):
        labels = cm.period_labels(pd.Series([2005, 2010, 2013, 2014, 2023]), 2013)
        assert labels == {cm.EARLY: "2005–2013", cm.LATE: "2014–2023"}

    def test_summary_means(self, clean_table):
        carrots = clean_table(
            [("A", 2012, 100, 10), ("A", 2013, 300, 30), ("A", 2014, 50, 5)]
        )
        tomatoes = clean_table([("B", 2012, 10, 1), ("B", 2020, 20, 2)])
        summary = cm.period_summary({"Carrot": carrots, "Tomato": tomatoes}, 2013)
        assert summary[[Col.PERIOD, Col.CROP]].values.tolist() == [
            [cm.EARLY, "Carrot"],
            [cm.EARLY, "Tomato"],
            [cm.LATE, "Carrot"],
            [cm.LATE, "Tomato"],
        ]
        early_carrot = summary.iloc[0]
        assert early_carrot[Col.AVG_PRODUCTION] == pytest.approx(200)
        assert early_carrot[Col.AVG_VALUE] == pytest.approx(20)
        assert early_carrot[Col.PERIOD_LABEL] == "2012–2013"
        assert summary.iloc[3][Col.PERIOD_LABEL] == "2014–2020"

    def test_early_only_crop_has_no_late_row(self, clean_table):
        carrots = clean_table([("A", 2010, 100, 10)])
        tomatoes = clean_table([("B", 2010, 10, 1), ("B", 2015, 20, 2)])
        summary = cm.period_summary({"Carrot": carrots, "Tomato": tomatoes}, 2013)
        late = summary[summary[Col.PERIOD] == cm.LATE]
        assert late[Col.CROP].tolist() == ["Tomato"]

    def test_early_only_region_stays_out_of_late_means(self, clean_table):
        carrots = clean_table(
            [("A", 2010, 100, 10), ("X", 2010, 900, 90), ("A", 2015, 50, 5)]
        )
        summary = cm.period_summary({"Carrot": carrots}, 2013).set_index(Col.PERIOD)
        assert summary.loc[cm.LATE, Col.AVG_PRODUCTION] == pytest.approx(50)
        assert summary.loc[cm.LATE, Col.AVG_VALUE] == pytest.approx(5)
        assert summary.loc[cm.EARLY, Col.AVG_PRODUCTION] == pytest.approx(500)
        assert summary.loc[cm.EARLY, Col.AVG_VALUE] == pytest.approx(50)

    def test_boundary_is_a_parameter(self, clean_table):
        clean = clean_table([("A", 2012, 100, 10), ("A", 2013, 300, 30)])
        summary = cm.period_summary({"Carrot": clean}, 2012)
        assert summary[Col.PERIOD].tolist() == [cm.EARLY, cm.LATE]
