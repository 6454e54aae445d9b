import importlib


contracts = importlib.import_module("src.ndi.contracts")
periods = importlib.import_module("src.ndi.periods")
repository = importlib.import_module("src.ingestion.repository")
MetricPoint = contracts.MetricPoint
Source = contracts.Source
CanonicalPeriod = periods.CanonicalPeriod


def point(period="2024Q2", value=62.0, weight=None, metric="NDI", **kwargs):
    return MetricPoint(
        period=period, metric=metric, value=value, source=Source.AGGREGATED, weight=weight, **kwargs
    )


def test_upsert_is_idempotent_for_same_value():
    repo = repository.InMemoryMetricPointRepository()

    first = repo.upsert(point())
    second = repo.upsert(point(period="2024 Q2"))

    assert first.status == "inserted"
    assert second.status == "noop"
    assert second.revision_number == 1
    assert len(repo.points) == 1


def test_upsert_revises_changed_value_without_duplicating():
    repo = repository.InMemoryMetricPointRepository()
    repo.upsert(point(value=62.0))

    result = repo.upsert(point(value=63.5))

    assert result.status == "revision"
    assert result.revision_number == 2
    assert [p.value for p in repo.read_metric_points("NDI")] == [63.5]


def test_upsert_distinguishes_group_keys():
    repo = repository.InMemoryMetricPointRepository()

    repo.upsert_metric_points([point(group_a="Index"), point(group_a="Trygghet")])

    assert len(repo.read_metric_points("NDI")) == 2


def test_supersede_period_hides_rows_and_allows_reload():
    repo = repository.InMemoryMetricPointRepository([point(), point(period="2024Q1")])

    assert repo.supersede_period(CanonicalPeriod(2024, 2), "NDI") == 1
    assert [p.period for p in repo.read_metric_points("NDI")] == ["2024Q1"]

    reloaded = repo.upsert(point(value=64.0))
    assert (reloaded.status, reloaded.revision_number) == ("inserted", 1)
    assert repo.upsert(point(value=65.0)).revision_number == 2
    assert repo.snapshot_counts() == {"metric_points": 2, "superseded_points": 1}


def test_read_metric_points_filters_metric_and_window():
    repo = repository.InMemoryMetricPointRepository(
        [
            point(period="2023Q4"),
            point(period="2024Q1"),
            point(period="2024Q2"),
            point(period="2024Q2", metric="CSI"),
            point(period="Q2"),
        ]
    )

    windowed = repo.read_metric_points("NDI", CanonicalPeriod(2024, 1), CanonicalPeriod(2024, 2))

    assert [p.period for p in windowed] == ["2024Q1", "2024Q2"]
    assert len(repo.read_metric_points("NDI")) == 4
