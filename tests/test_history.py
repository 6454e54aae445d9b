import importlib

import pytest


contracts = importlib.import_module("src.ndi.contracts")
history = importlib.import_module("src.ndi.history")
periods = importlib.import_module("src.ndi.periods")
MetricPoint = contracts.MetricPoint
Source = contracts.Source


def aggregated(period, value, group_a, group_b=None, group_c=None, **kwargs):
    return MetricPoint(
        period=period,
        metric="NDI",
        value=value,
        source=Source.AGGREGATED,
        group_a=group_a,
        group_b=group_b,
        group_c=group_c,
        **kwargs,
    )


def test_breakdown_with_history_matches_rows_by_group_key():
    points = [
        aggregated("2024Q2", 66.0, "Trygghet", "Index"),
        aggregated("2024Q2", 55.0, "Information", "Index", weight=120.0),
        aggregated("2024Q1", 60.0, "Trygghet", "Index"),
        aggregated("2023 Q2", 50.0, "Trygghet", "Index"),
        aggregated("2024Q1", 0.0, "Information", "Index"),
    ]

    rows = history.build_breakdown_with_history(points, periods.CanonicalPeriod(2024, 2))

    assert [row["groupA"] for row in rows] == ["Information", "Trygghet"]
    information, trygghet = rows
    assert trygghet == {
        "period": "2024Q2",
        "groupA": "Trygghet",
        "groupB": "Index",
        "value": 66.0,
        "qoqChange": pytest.approx(10.0),
        "prevQuarterValue": 60.0,
        "yoyChange": pytest.approx(32.0),
        "prevYearValue": 50.0,
    }
    assert information["weight"] == 120.0
    assert information["qoqChange"] == 0.0
    assert "yoyChange" not in information


def test_breakdown_with_history_ignores_breakdown_and_superseded_rows():
    points = [
        aggregated("2024Q2", 66.0, "Trygghet", "Index", superseded=True),
        MetricPoint(
            period="2024Q2",
            metric="NDI",
            value=70.0,
            source=Source.BREAKDOWN,
            group_b="Kön",
            group_c="Man",
        ),
    ]

    assert history.build_breakdown_with_history(points, periods.CanonicalPeriod(2024, 2)) == []


def test_breakdown_with_history_does_not_match_different_groups():
    points = [
        aggregated("2024Q2", 66.0, "Trygghet", "Index"),
        aggregated("2024Q1", 60.0, "Trygghet", "Index", "Extra"),
    ]

    rows = history.build_breakdown_with_history(points, periods.CanonicalPeriod(2024, 2))

    assert "qoqChange" not in rows[0]
    assert "prevQuarterValue" not in rows[0]
