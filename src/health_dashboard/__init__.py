"""Daily health dashboard with Sign in with Apple.

Reads step count, distance and heart-rate statistics from a health data
store, joins them into one record per day, and keeps the signed-in user's
identity across sessions.

Modules:
    config: Configuration management using pydantic-settings
    aggregator: Daily aggregation of steps, distance and heart rate
    summary: Totals and averages across records
    influx_source: InfluxDB-backed health data source
    auth: Sign-in session and error mapping
    apple_id: Sign in with Apple provider
    identity: Persistence of the signed-in identity

Example:
    Show today's numbers::

        $ uv run health-fetch

    Show the last week as JSON::

        $ uv run health-fetch --days 7 --format json
"""

__version__ = "0.1.0"

from .config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
