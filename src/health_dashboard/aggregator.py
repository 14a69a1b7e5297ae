"""Daily aggregation of steps, distance and heart rate."""

import asyncio
import time
from datetime import datetime, timedelta, tzinfo

import structlog
from opentelemetry import trace

from .metrics import FETCH_DURATION, FETCHES, RECORDS_PRODUCED, SUBQUERIES_DEGRADED
from .models import ONE_DAY, AggregationMode, DateWindow, HealthRecord, MetricType, Statistic
from .source import (
    AuthorizationDeniedError,
    FetchFailedError,
    HealthDataError,
    HealthDataSource,
    HealthDataUnavailableError,
    HealthQueryError,
)
from .tracing import window_attributes

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

READ_TYPES = frozenset(
    {
        MetricType.STEP_COUNT,
        MetricType.DISTANCE_WALKING_RUNNING,
        MetricType.HEART_RATE,
    }
)


class DailyAggregator:
    """Builds one HealthRecord per day bucket from a HealthDataSource.

    For each fetch the step query runs first; for every bucket it returns,
    the heart-rate average and distance sum are queried concurrently and
    joined into a record. A failed heart-rate or distance query degrades
    to 0 for that metric only and is never raised.
    """

    def __init__(
        self,
        source: HealthDataSource,
        tz: tzinfo,
        bucket: timedelta = ONE_DAY,
    ) -> None:
        """Initialize the aggregator.

        Args:
            source: Health data store to query.
            tz: Timezone whose midnights delimit the default window.
            bucket: Bucket width for the step query.
        """
        self._source = source
        self._tz = tz
        self._bucket = bucket

    async def fetch(self, window: DateWindow | None = None) -> list[HealthRecord]:
        """Fetch aggregated records for ``window`` (default: today so far).

        Returns:
            Records sorted by date ascending; empty when there is no data.

        Raises:
            AuthorizationDeniedError: Read access was refused. No query ran.
            FetchFailedError: The store is unavailable or the step query failed.
        """
        if window is None:
            window = DateWindow.today(self._tz)

        started = time.perf_counter()
        with tracer.start_as_current_span(
            "health.fetch", attributes=window_attributes(window)
        ) as span:
            try:
                records = await self._fetch(window)
            except HealthDataError as e:
                FETCHES.labels(status=type(e).__name__).inc()
                span.record_exception(e)
                logger.warning(
                    "health_fetch_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            finally:
                FETCH_DURATION.observe(time.perf_counter() - started)
            span.set_attribute("health.records", len(records))

        FETCHES.labels(status="success").inc()
        RECORDS_PRODUCED.inc(len(records))
        logger.info(
            "health_fetch_complete",
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            records=len(records),
        )
        return records

    async def _fetch(self, window: DateWindow) -> list[HealthRecord]:
        if not self._source.is_available():
            raise HealthDataUnavailableError()

        auth = await self._source.request_authorization(READ_TYPES)
        if not auth.granted:
            raise AuthorizationDeniedError(auth.reason)

        try:
            buckets = await self._source.query_statistics(
                MetricType.STEP_COUNT,
                AggregationMode.CUMULATIVE_SUM,
                window.start,
                window.end,
                bucket=self._bucket,
            )
        except HealthQueryError as e:
            raise FetchFailedError(str(e) or None) from e
        if buckets is None:
            raise FetchFailedError()

        # Buckets without step samples yield no record
        step_buckets = [b for b in buckets if b.value is not None]
        logger.debug("step_buckets_received", total=len(buckets), with_steps=len(step_buckets))

        records = await asyncio.gather(*(self._build_record(b) for b in step_buckets))
        return sorted(records, key=lambda r: r.date)

    async def _build_record(self, steps: Statistic) -> HealthRecord:
        heart_rate, distance = await asyncio.gather(
            self._sub_query(
                MetricType.HEART_RATE,
                AggregationMode.DISCRETE_AVERAGE,
                steps.start,
                steps.end,
            ),
            self._sub_query(
                MetricType.DISTANCE_WALKING_RUNNING,
                AggregationMode.CUMULATIVE_SUM,
                steps.start,
                steps.end,
            ),
        )
        return HealthRecord(
            date=steps.start,
            steps=int(steps.value or 0),
            distance=distance,
            heart_rate=heart_rate,
        )

    async def _sub_query(
        self,
        metric: MetricType,
        mode: AggregationMode,
        start: datetime,
        end: datetime,
    ) -> float:
        """Single value for one bucket, 0 when missing or failed."""
        try:
            stats = await self._source.query_statistics(metric, mode, start, end)
        except HealthQueryError as e:
            SUBQUERIES_DEGRADED.labels(metric=metric.value).inc()
            logger.warning(
                "subquery_degraded",
                metric=metric.value,
                bucket_start=start.isoformat(),
                error=str(e),
            )
            return 0.0

        if not stats or stats[0].value is None:
            return 0.0
        return float(stats[0].value)
