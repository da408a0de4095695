"""Data access layer for the team movements schema."""

from team_movements.repositories.base_repository import BaseRepository
from team_movements.repositories.contract_repository import ContractRepository
from team_movements.repositories.history_repository import HistoryEventRepository, TagRepository
from team_movements.repositories.lookup_repository import CostCentreRepository, LookupRepository
from team_movements.repositories.movement_repository import (
    JobInfoRepository,
    MovementRepository,
    ParticipantRepository,
)
from team_movements.repositories.stats_repository import StatsRepository

__all__ = [
    "BaseRepository",
    "ContractRepository",
    "CostCentreRepository",
    "HistoryEventRepository",
    "JobInfoRepository",
    "LookupRepository",
    "MovementRepository",
    "ParticipantRepository",
    "StatsRepository",
    "TagRepository",
]
