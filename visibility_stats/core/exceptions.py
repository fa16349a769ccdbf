"""Application errors.

HTTP-facing errors are `HTTPException` subclasses so FastAPI renders them
directly. Stats engine errors carry the phase that failed so callers and logs
can tell a rollup outage from a raw-table outage.
"""

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str = "Internal error"):
        super().__init__(status_code=self.status_code, detail=detail)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class StatsQueryError(AppError):
    """A storage read inside the stats engine failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    phase = "stats"

    def __init__(self, detail: str = "Stats query failed"):
        super().__init__(detail=f"[{self.phase}] {detail}")


class RollupUnavailableError(StatsQueryError):
    """The pre-aggregated daily_brand_stats table could not be read.

    Recovered by full real-time reconstruction; never reaches the caller.
    """

    phase = "rollup"


class ReconstructionError(StatsQueryError):
    """Raw mention/citation tables could not be read (fallback or supplement)."""

    phase = "reconstruction"


class SentimentQueryError(StatsQueryError):
    """brand_evaluations could not be read."""

    phase = "sentiment"
