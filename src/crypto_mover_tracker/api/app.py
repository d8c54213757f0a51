"""Read-only HTTP API over stored movers, research and statistics."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from crypto_mover_tracker.predictor.evaluator import compute_accuracy
from crypto_mover_tracker.predictor.models import PredictionStatus
from crypto_mover_tracker.storage.database import DatabaseManager
from crypto_mover_tracker.storage.repos import (
    DailyStatsRepository,
    MoverEventRepository,
    PredictionRepository,
    ResearchReportRepository,
)

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def create_app(db: DatabaseManager) -> FastAPI:
    """Build the FastAPI application bound to `db`.

    Example:
        ```python
        app = create_app(DatabaseManager(settings.database.url))
        uvicorn.run(app, port=settings.api_port)
        ```
    """
    app = FastAPI(
        title="Crypto Mover Tracker API",
        description="Recent movers, research reports and prediction accuracy",
        version="0.1.0",
    )

    @app.get("/health")
    async def health() -> JSONResponse:
        healthy = await db.health_check()
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "ok" if healthy else "unavailable", "timestamp": _now_iso()},
        )

    @app.get("/movers")
    async def list_movers(
        hours: int = Query(default=24, ge=1, le=24 * 30),
        direction: Literal["both", "up", "down"] = Query(default="both"),
        limit: int = Query(default=20, ge=1, le=200),
    ) -> dict[str, Any]:
        since = datetime.now(UTC) - timedelta(hours=hours)
        async with db.get_async_session() as session:
            movers = await MoverEventRepository(session).list_recent(
                since=since, direction=direction, limit=limit
            )
        return {
            "movers": [m.to_dict() for m in movers],
            "total": len(movers),
            "params": {"hours": hours, "direction": direction, "limit": limit},
            "timestamp": _now_iso(),
        }

    @app.get("/research/{event_id}", response_model=None)
    async def get_research(event_id: int) -> dict[str, Any] | JSONResponse:
        async with db.get_async_session() as session:
            report = await ResearchReportRepository(session).get_by_event(event_id)
        if report is None:
            return JSONResponse(status_code=404, content={"error": "Research report not found"})
        return {"report": report.to_dict()}

    @app.get("/stats")
    async def get_stats(days: int = Query(default=7, ge=1, le=365)) -> dict[str, Any]:
        since = datetime.now(UTC) - timedelta(days=days)
        async with db.get_async_session() as session:
            total_movers = await MoverEventRepository(session).count_since(since)
            research_reports = await ResearchReportRepository(session).count_since(since)
            counts = await PredictionRepository(session).status_counts(since=since)
            daily = await DailyStatsRepository(session).list_since(since.date())

        correct = counts.get(PredictionStatus.CORRECT.value, 0)
        incorrect = counts.get(PredictionStatus.INCORRECT.value, 0)
        partial = counts.get(PredictionStatus.PARTIAL.value, 0)
        total = correct + incorrect + partial
        accuracy = compute_accuracy(correct, partial, total)

        return {
            "period": {"days": days, "since": since.isoformat()},
            "summary": {
                "total_movers": total_movers,
                "research_reports": research_reports,
                "prediction_accuracy": round(accuracy, 4) if accuracy is not None else None,
            },
            "predictions": {
                "total": total,
                "correct": correct,
                "incorrect": incorrect,
                "partial": partial,
            },
            "daily_stats": [d.to_dict() for d in daily],
            "timestamp": _now_iso(),
        }

    return app
