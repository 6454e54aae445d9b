from collections.abc import Callable, Iterable
from typing import Optional, Protocol, cast

import psycopg2

from src.ingestion.repository import UpsertResult
from src.ndi.contracts import MetricPoint, Source
from src.ndi.periods import CanonicalPeriod, in_range, normalize_period


SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS metric_points (
        id BIGSERIAL PRIMARY KEY,
        period TEXT NOT NULL,
        metric TEXT NOT NULL,
        value DOUBLE PRECISION NOT NULL,
        source TEXT NOT NULL CHECK (source IN ('AGGREGATED', 'BREAKDOWN')),
        weight DOUBLE PRECISION,
        group_a TEXT,
        group_b TEXT,
        group_c TEXT,
        superseded BOOLEAN NOT NULL DEFAULT FALSE,
        revision INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS metric_points_identity_active
    ON metric_points (
        period,
        metric,
        source,
        COALESCE(group_a, ''),
        COALESCE(group_b, ''),
        COALESCE(group_c, '')
    )
    WHERE superseded = FALSE
    """,
    """
    CREATE INDEX IF NOT EXISTS metric_points_metric_period
    ON metric_points (metric, period)
    """,
)

_SELECT_COLUMNS = "period, metric, value, source, weight, group_a, group_b, group_c, superseded"


class CursorProtocol(Protocol):
    description: list[tuple[str]]

    def execute(self, sql: str, params: tuple[object, ...]) -> None: ...

    def fetchall(self) -> list[tuple[object, ...]]: ...

    def fetchone(self) -> Optional[tuple[object, ...]]: ...

    def close(self) -> None: ...


class ConnectionProtocol(Protocol):
    def cursor(self) -> CursorProtocol: ...

    def commit(self) -> None: ...

    def close(self) -> None: ...


def _stored_period(point: MetricPoint) -> str:
    canonical = normalize_period(point.period)
    return str(canonical) if canonical is not None else point.period


def _row_to_point(row: dict[str, object]) -> MetricPoint:
    weight = row.get("weight")
    return MetricPoint(
        period=str(row["period"]),
        metric=str(row["metric"]),
        value=float(cast(float, row["value"])),
        source=Source(str(row["source"])),
        weight=None if weight is None else float(cast(float, weight)),
        group_a=cast(Optional[str], row.get("group_a")),
        group_b=cast(Optional[str], row.get("group_b")),
        group_c=cast(Optional[str], row.get("group_c")),
        superseded=bool(row.get("superseded", False)),
    )


class PostgresRepository:
    def __init__(
        self,
        dsn: str = "",
        connection_factory: Optional[Callable[[], ConnectionProtocol]] = None,
    ) -> None:
        self._dsn: str = dsn
        self._connection_factory: Optional[Callable[[], ConnectionProtocol]] = (
            connection_factory
        )

    def _connect(self) -> ConnectionProtocol:
        if self._connection_factory is not None:
            return self._connection_factory()
        if not self._dsn:
            raise ValueError("dsn is required when no connection_factory is provided")
        return cast(
            ConnectionProtocol,
            cast(object, psycopg2.connect(self._dsn)),
        )

    def ensure_schema(self) -> None:
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        for statement in SCHEMA_STATEMENTS:
            cursor.execute(statement, ())
        conn.commit()
        cursor.close()
        conn.close()

    def upsert_metric_points(self, points: Iterable[MetricPoint]) -> list[UpsertResult]:
        """Insert or revise points by identity key; unchanged value and weight is a noop."""
        batch = list(points)
        if not batch:
            return []

        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        results: list[UpsertResult] = []

        for point in batch:
            identity = (
                _stored_period(point),
                point.metric,
                point.source.value,
                point.group_a,
                point.group_b,
                point.group_c,
            )
            cursor.execute(
                """
                INSERT INTO metric_points(
                    period,
                    metric,
                    source,
                    group_a,
                    group_b,
                    group_c,
                    value,
                    weight
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (
                    period,
                    metric,
                    source,
                    COALESCE(group_a, ''),
                    COALESCE(group_b, ''),
                    COALESCE(group_c, '')
                ) WHERE superseded = FALSE
                DO UPDATE SET
                    value = EXCLUDED.value,
                    weight = EXCLUDED.weight,
                    revision = metric_points.revision + 1,
                    updated_at = now()
                WHERE metric_points.value IS DISTINCT FROM EXCLUDED.value
                   OR metric_points.weight IS DISTINCT FROM EXCLUDED.weight
                RETURNING revision
                """,
                identity + (point.value, point.weight),
            )
            row = cursor.fetchone()
            if row is not None:
                revision = int(cast(int, row[0]))
                status = "inserted" if revision == 1 else "revision"
                results.append(UpsertResult(status=status, revision_number=revision))
                continue

            cursor.execute(
                """
                SELECT revision
                FROM metric_points
                WHERE period = %s
                  AND metric = %s
                  AND source = %s
                  AND COALESCE(group_a, '') = COALESCE(%s, '')
                  AND COALESCE(group_b, '') = COALESCE(%s, '')
                  AND COALESCE(group_c, '') = COALESCE(%s, '')
                  AND superseded = FALSE
                """,
                identity,
            )
            existing = cursor.fetchone() or (0,)
            results.append(UpsertResult(status="noop", revision_number=int(cast(int, existing[0]))))

        conn.commit()
        cursor.close()
        conn.close()
        return results

    def supersede_period(self, period: CanonicalPeriod, metric: str) -> int:
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        cursor.execute(
            """
            UPDATE metric_points
            SET superseded = TRUE, updated_at = now()
            WHERE period = %s AND metric = %s AND superseded = FALSE
            RETURNING id
            """,
            (str(period), metric),
        )
        rows = cursor.fetchall()
        conn.commit()
        cursor.close()
        conn.close()
        return len(rows)

    def read_metric_points(
        self,
        metric: str,
        period_from: Optional[CanonicalPeriod] = None,
        period_to: Optional[CanonicalPeriod] = None,
    ) -> list[MetricPoint]:
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        cursor.execute(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM metric_points
            WHERE metric = %s AND superseded = FALSE
            ORDER BY period ASC, source ASC, group_a, group_b, group_c
            """,
            (metric,),
        )
        rows = cursor.fetchall()
        columns = [desc[0] for desc in cursor.description]
        cursor.close()
        conn.close()

        points = [_row_to_point(dict(zip(columns, row))) for row in rows]
        if period_from is None and period_to is None:
            return points
        windowed: list[MetricPoint] = []
        for point in points:
            period = normalize_period(point.period)
            if period is not None and in_range(period, period_from, period_to):
                windowed.append(point)
        return windowed

    def snapshot_counts(self) -> dict[str, int]:
        conn: ConnectionProtocol = self._connect()
        cursor: CursorProtocol = conn.cursor()
        cursor.execute(
            """
            SELECT
                COUNT(*) FILTER (WHERE superseded = FALSE) AS metric_points,
                COUNT(*) FILTER (WHERE superseded = TRUE) AS superseded_points
            FROM metric_points
            """,
            (),
        )
        row = cursor.fetchone() or (0, 0)
        cursor.close()
        conn.close()
        return {
            "metric_points": int(cast(int, row[0] or 0)),
            "superseded_points": int(cast(int, row[1] or 0)),
        }
