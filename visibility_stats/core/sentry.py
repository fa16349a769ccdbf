"""Sentry error tracking for the stats API.

Enabled only when SENTRY_DSN is set. Engine errors are grouped by the phase
that failed; rollup outages are recovered by reconstruction and are not
reported.
"""

import logging

from visibility_stats.core.config import settings
from visibility_stats.core.exceptions import RollupUnavailableError, StatsQueryError

logger = logging.getLogger(__name__)


def before_send(event: dict, hint: dict) -> dict | None:
    exc_info = hint.get("exc_info")
    exc = exc_info[1] if exc_info else None

    if isinstance(exc, RollupUnavailableError):
        return None
    if isinstance(exc, StatsQueryError):
        event.setdefault("tags", {})["stats.phase"] = exc.phase
        event["fingerprint"] = ["stats-query-error", exc.phase]
    return event


def init_sentry() -> None:
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping")
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        release=f"visibility-stats@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
        before_send=before_send,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
    )
    sentry_sdk.set_tag("stats.timezone", settings.stats_timezone)
    logger.info("Sentry initialized (env=%s)", settings.app_env)
