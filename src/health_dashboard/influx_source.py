"""Health data source backed by the InfluxDB bucket the ingestion side fills."""

import asyncio
from datetime import UTC, datetime, timedelta

import structlog
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync
from influxdb_client.rest import ApiException

from .config import InfluxDBSettings
from .models import AggregationMode, MetricType, Statistic
from .source import AuthorizationResult, HealthQueryError

logger = structlog.get_logger(__name__)

# Metric type -> (measurement, field)
METRIC_FIELDS: dict[MetricType, tuple[str, str]] = {
    MetricType.STEP_COUNT: ("activity", "steps"),
    MetricType.DISTANCE_WALKING_RUNNING: ("activity", "distance_m"),
    MetricType.HEART_RATE: ("heart", "bpm"),
}

AGGREGATE_FUNCTIONS: dict[AggregationMode, str] = {
    AggregationMode.CUMULATIVE_SUM: "sum",
    AggregationMode.DISCRETE_AVERAGE: "mean",
}

SECONDS_PER_DAY = 86400


def _flux_time(value: datetime) -> str:
    return value.astimezone(UTC).isoformat()


def _flux_duration(value: timedelta) -> str:
    seconds = int(value.total_seconds())
    if seconds and seconds % SECONDS_PER_DAY == 0:
        # Calendar days, so a DST day is 23h or 25h long in the window location
        return f"{seconds // SECONDS_PER_DAY}d"
    return f"{seconds}s"


def flux_location(start: datetime) -> str:
    """Flux location whose local midnights delimit day windows.

    Named zones (``ZoneInfo``) follow their DST rules; fixed-offset
    timezones map to ``timezone.fixed``.
    """
    name = getattr(start.tzinfo, "key", None)
    if name:
        return f'timezone.location(name: "{name}")'
    offset = start.utcoffset() or timedelta(0)
    return f"timezone.fixed(offset: {int(offset.total_seconds())}s)"


def build_statistics_query(
    bucket: str,
    metric: MetricType,
    mode: AggregationMode,
    start: datetime,
    stop: datetime,
    every: timedelta | None = None,
) -> str:
    """Build the Flux query answering one statistics request."""
    measurement, field = METRIC_FIELDS[metric]
    fn = AGGREGATE_FUNCTIONS[mode]

    parts = [] if every is None else ['import "timezone"', ""]
    parts += [
        f'from(bucket: "{bucket}")',
        f"  |> range(start: {_flux_time(start)}, stop: {_flux_time(stop)})",
        f'  |> filter(fn: (r) => r._measurement == "{measurement}")',
        f'  |> filter(fn: (r) => r._field == "{field}")',
        "  |> group()",
    ]

    if every is None:
        parts.append(f"  |> {fn}()")
    else:
        parts.append(
            f"  |> aggregateWindow(every: {_flux_duration(every)},"
            f" location: {flux_location(start)},"
            f' fn: {fn}, timeSrc: "_start", createEmpty: false)'
        )

    return "\n".join(parts)


class InfluxHealthSource:
    """HealthDataSource answering statistics queries with Flux."""

    def __init__(self, settings: InfluxDBSettings) -> None:
        self._settings = settings
        self._client: InfluxDBClientAsync | None = None

    async def connect(self) -> None:
        """Connect to InfluxDB."""
        logger.info(
            "influxdb_connecting",
            url=self._settings.url,
            org=self._settings.org,
            bucket=self._settings.bucket,
        )
        self._client = InfluxDBClientAsync(
            url=self._settings.url,
            token=self._settings.token,
            org=self._settings.org,
        )

    async def disconnect(self) -> None:
        """Disconnect from InfluxDB."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("influxdb_disconnected")

    def is_available(self) -> bool:
        return self._client is not None

    async def request_authorization(
        self, read_types: frozenset[MetricType]
    ) -> AuthorizationResult:
        """Check the token can read the bucket holding ``read_types``."""
        unsupported = sorted(t.value for t in read_types if t not in METRIC_FIELDS)
        if unsupported:
            return AuthorizationResult(
                granted=False, reason=f"Unsupported metric types: {', '.join(unsupported)}"
            )
        if not self._client:
            return AuthorizationResult(granted=False, reason="Not connected to InfluxDB")

        timeout = self._settings.query_timeout_seconds
        try:
            ready = await asyncio.wait_for(self._client.ping(), timeout=timeout)
        except Exception as e:
            logger.warning("influxdb_ping_failed", error=str(e))
            return AuthorizationResult(granted=False, reason=f"InfluxDB ping failed: {e}")
        if not ready:
            return AuthorizationResult(granted=False, reason="InfluxDB is not ready")

        probe = (
            f'from(bucket: "{self._settings.bucket}")'
            " |> range(start: -1m) |> limit(n: 1)"
        )
        try:
            await asyncio.wait_for(self._client.query_api().query(probe), timeout=timeout)
        except ApiException as e:
            logger.warning("influxdb_probe_denied", status=e.status, reason=e.reason)
            if e.status in (401, 403):
                reason = f"Not authorized to read bucket '{self._settings.bucket}'"
            elif e.status == 404:
                reason = f"Bucket '{self._settings.bucket}' not found"
            else:
                reason = f"InfluxDB rejected the probe query: {e.reason}"
            return AuthorizationResult(granted=False, reason=reason)
        except Exception as e:
            logger.warning("influxdb_probe_failed", error=str(e))
            return AuthorizationResult(granted=False, reason=str(e) or type(e).__name__)

        logger.debug("influxdb_read_authorized", read_types=sorted(t.value for t in read_types))
        return AuthorizationResult(granted=True)

    async def query_statistics(
        self,
        metric: MetricType,
        mode: AggregationMode,
        start: datetime,
        end: datetime,
        bucket: timedelta | None = None,
    ) -> list[Statistic]:
        """Run one aggregate query, raising HealthQueryError on failure."""
        if not self._client:
            raise HealthQueryError("Not connected to InfluxDB")

        flux = build_statistics_query(self._settings.bucket, metric, mode, start, end, bucket)
        try:
            tables = await asyncio.wait_for(
                self._client.query_api().query(flux),
                timeout=self._settings.query_timeout_seconds,
            )
        except TimeoutError as e:
            raise HealthQueryError(f"{metric.value} query timed out") from e
        except Exception as e:
            raise HealthQueryError(f"{metric.value} query failed: {e}") from e

        stats: list[Statistic] = []
        for table in tables:
            for record in table.records:
                value = record.get_value()
                value = float(value) if value is not None else None
                if bucket is None:
                    stats.append(Statistic(start=start, end=end, value=value))
                    continue
                ts = record.get_time()
                if ts is None:
                    continue
                # Wall-clock addition keeps day windows on local midnights across DST
                window_start = ts.astimezone(start.tzinfo)
                stats.append(
                    Statistic(
                        start=max(window_start, start),
                        end=min(window_start + bucket, end),
                        value=value,
                    )
                )

        stats.sort(key=lambda s: s.start)
        logger.debug(
            "statistics_query_complete",
            metric=metric.value,
            mode=mode.value,
            buckets=len(stats),
        )
        return stats

