"""Storage layer - Database schemas and repositories."""

from crypto_mover_tracker.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from crypto_mover_tracker.storage.models import (
    Base,
    CoinModel,
    DailyStatsModel,
    MoverEventModel,
    PredictionModel,
    PriceSnapshotModel,
    ResearchReportModel,
)
from crypto_mover_tracker.storage.repos import (
    CoinRepository,
    DailyStatsDTO,
    DailyStatsRepository,
    MoverEventDTO,
    MoverEventRepository,
    PredictionDTO,
    PredictionRepository,
    PriceSnapshotRepository,
    ResearchReportDTO,
    ResearchReportRepository,
)

__all__ = [
    "Base",
    "CoinModel",
    "CoinRepository",
    "DailyStatsDTO",
    "DailyStatsModel",
    "DailyStatsRepository",
    "DatabaseManager",
    "MoverEventDTO",
    "MoverEventModel",
    "MoverEventRepository",
    "PredictionDTO",
    "PredictionModel",
    "PredictionRepository",
    "PriceSnapshotModel",
    "PriceSnapshotRepository",
    "ResearchReportDTO",
    "ResearchReportModel",
    "ResearchReportRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
