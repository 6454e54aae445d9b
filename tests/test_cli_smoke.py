import importlib
import json

import pytest


cli = importlib.import_module("src.ndi.cli")
contracts = importlib.import_module("src.ndi.contracts")
repository = importlib.import_module("src.ingestion.repository")
MetricPoint = contracts.MetricPoint
Source = contracts.Source


class FakeRepository:
    instances = []

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self.store = repository.InMemoryMetricPointRepository(
            [
                MetricPoint(period="2024Q1", metric="NDI", value=60.0, source=Source.AGGREGATED),
                MetricPoint(period="2024Q2", metric="NDI", value=63.0, source=Source.AGGREGATED),
            ]
        )
        self.schema_ready = False
        FakeRepository.instances.append(self)

    def ensure_schema(self):
        self.schema_ready = True

    def read_metric_points(self, metric, period_from=None, period_to=None):
        return self.store.read_metric_points(metric, period_from, period_to)

    def upsert_metric_points(self, points):
        return self.store.upsert_metric_points(points)

    def supersede_period(self, period, metric):
        return self.store.supersede_period(period, metric)


@pytest.fixture
def fake_database(monkeypatch):
    FakeRepository.instances = []
    monkeypatch.delenv("SUPABASE_DB_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgres://example")
    monkeypatch.delenv("NDI_METRIC", raising=False)
    monkeypatch.setattr(cli, "PostgresRepository", FakeRepository)


def test_cli_exposes_summary_command():
    args = cli.build_parser().parse_args(["summary", "--period", "2024Q2"])

    assert args.command == "summary"
    assert args.period == "2024Q2"


def test_cli_series_range_is_optional():
    args = cli.build_parser().parse_args(["series", "--from", "2023Q1"])

    assert args.period_from == "2023Q1"
    assert args.period_to is None


def test_commands_require_database_url(monkeypatch):
    monkeypatch.delenv("SUPABASE_DB_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(ValueError):
        cli.latest_period_command()


def test_invalid_period_is_rejected(fake_database):
    with pytest.raises(ValueError, match="--period must look like 2024Q1"):
        cli.main(["summary", "--period", "last quarter"])


def test_summary_command_prints_json(fake_database, capsys):
    assert cli.main(["summary", "--period", "2024 Q2"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["period"] == "2024Q2"
    assert payload["total"] == 63.0
    assert payload["prevQuarterValue"] == 60.0
    assert FakeRepository.instances[0].dsn == "postgres://example"


def test_series_command_prints_dated_rows(fake_database, capsys):
    assert cli.main(["series", "--to", "2024Q1"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload == [{"period": "2024Q1", "date": "2024-03-31", "value": 60.0, "r4": 60.0}]


def test_latest_period_command(fake_database):
    assert cli.latest_period_command() == {"period": "2024Q2"}


def test_load_points_command_upserts_file_rows(fake_database, tmp_path):
    source = tmp_path / "points.json"
    source.write_text(
        json.dumps(
            [
                {"period": "2024Q2", "metric": "NDI", "value": 63.0, "source": "AGGREGATED"},
                {"period": "2024Q3", "metric": "NDI", "value": 64.0, "source": "aggregated"},
                {
                    "period": "2024Q3",
                    "metric": "NDI",
                    "value": 70,
                    "weight": 12,
                    "source": "BREAKDOWN",
                    "groupB": "Kön",
                    "groupC": "Man",
                },
            ]
        ),
        encoding="utf-8",
    )

    summary = cli.load_points_command(str(source))

    assert summary["points"] == 3
    assert summary["inserted"] == 2
    assert summary["noop"] == 1
    assert FakeRepository.instances[0].schema_ready is True


def test_load_points_command_rejects_non_array(fake_database, tmp_path):
    source = tmp_path / "points.json"
    source.write_text('{"period": "2024Q2"}', encoding="utf-8")

    with pytest.raises(ValueError):
        cli.load_points_command(str(source))


def test_clear_period_command_supersedes_rows(fake_database):
    result = cli.clear_period_command("2024Q2")

    assert result == {"period": "2024Q2", "metric": "NDI", "superseded": 1}


def test_clear_period_command_names_the_bad_period(fake_database):
    with pytest.raises(ValueError, match="--period must look like 2024Q1: 'soon'"):
        cli.clear_period_command("soon")


def test_series_bounds_report_which_flag_is_invalid(fake_database):
    with pytest.raises(ValueError, match="--to must look like 2024Q1"):
        cli.main(["series", "--from", "2024Q1", "--to", "later"])
