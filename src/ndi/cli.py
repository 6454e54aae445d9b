import argparse
import json
import logging
from pathlib import Path
from typing import Optional

from src.ingestion.postgres_repository import PostgresRepository
from src.ndi.config import Settings, database_url, load_settings
from src.ndi.contracts import MetricPoint
from src.ndi.periods import CanonicalPeriod
from src.ndi.service import NdiService


LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ndi")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name in ("summary", "breakdown", "demographics", "calculation", "clear-period"):
        command = subparsers.add_parser(name)
        _ = command.add_argument("--period", required=True)

    series = subparsers.add_parser("series")
    _ = series.add_argument("--from", dest="period_from")
    _ = series.add_argument("--to", dest="period_to")

    _ = subparsers.add_parser("latest-period")

    load_points = subparsers.add_parser("load-points")
    _ = load_points.add_argument("--file", required=True)

    return parser


def _parse_period(raw: Optional[str], field_name: str) -> Optional[CanonicalPeriod]:
    if raw is None:
        return None
    try:
        return CanonicalPeriod.parse(raw)
    except ValueError as exc:
        raise ValueError(f"{field_name} must look like 2024Q1: {raw!r}") from exc


def _require_period(raw: str, field_name: str = "--period") -> CanonicalPeriod:
    try:
        return CanonicalPeriod.parse(raw)
    except ValueError as exc:
        raise ValueError(f"{field_name} must look like 2024Q1: {raw!r}") from exc


def _repository() -> PostgresRepository:
    dsn = database_url()
    if not dsn:
        raise ValueError("DATABASE_URL (or SUPABASE_DB_URL) is required")
    return PostgresRepository(dsn=dsn)


def _service(settings: Optional[Settings] = None) -> NdiService:
    return NdiService(repository=_repository(), settings=settings or load_settings())


def read_points_file(path: str) -> list[MetricPoint]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} must be valid JSON: {exc.msg}") from exc
    if not isinstance(payload, list):
        raise ValueError(f"{path} must hold a JSON array of metric points")

    points: list[MetricPoint] = []
    for position, row in enumerate(payload):
        if not isinstance(row, dict):
            raise ValueError(f"{path}[{position}] must be a JSON object")
        points.append(MetricPoint.from_mapping(row))
    return points


def load_points_command(path: str) -> dict[str, object]:
    points = read_points_file(path)
    repository = _repository()
    repository.ensure_schema()
    results = repository.upsert_metric_points(points)

    statuses = {"inserted": 0, "noop": 0, "revision": 0}
    for result in results:
        statuses[result.status] = statuses.get(result.status, 0) + 1
    LOGGER.info("loaded %d metric point(s) from %s: %s", len(points), path, statuses)
    return {"file": path, "points": len(points), **statuses}


def clear_period_command(raw_period: str) -> dict[str, object]:
    period = _require_period(raw_period)
    settings = load_settings()
    superseded = _repository().supersede_period(period, settings.metric)
    return {"period": str(period), "metric": settings.metric, "superseded": superseded}


def latest_period_command() -> dict[str, object]:
    period = _service().latest_period()
    return {"period": str(period) if period is not None else None}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "summary":
        print(json.dumps(_service().summary(_require_period(args.period))))
        return 0

    if args.command == "series":
        rows = _service().series(
            _parse_period(args.period_from, "--from"),
            _parse_period(args.period_to, "--to"),
        )
        print(json.dumps(rows))
        return 0

    if args.command == "breakdown":
        print(json.dumps(_service().breakdown(_require_period(args.period))))
        return 0

    if args.command == "demographics":
        print(json.dumps(_service().demographics(_require_period(args.period))))
        return 0

    if args.command == "calculation":
        print(json.dumps(_service().calculation(_require_period(args.period))))
        return 0

    if args.command == "latest-period":
        print(json.dumps(latest_period_command()))
        return 0

    if args.command == "load-points":
        print(json.dumps(load_points_command(args.file)))
        return 0

    if args.command == "clear-period":
        print(json.dumps(clear_period_command(args.period)))
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
