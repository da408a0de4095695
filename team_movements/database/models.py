"""SQLAlchemy models for the team movements schema.

Lookup tables carry a surrogate ``SERIAL`` id plus a unique natural key.
Fact tables hang off ``movements`` and cascade on delete.
"""

from datetime import datetime, time
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from team_movements.core.database import Base

WEEKDAY_CODES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------


class MovementType(Base):
    __tablename__ = "movement_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class Status(Base):
    __tablename__ = "statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class EmployeeGroup(Base):
    __tablename__ = "employee_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class EmployeeSubgroup(Base):
    __tablename__ = "employee_subgroups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subgroup_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class Banner(Base):
    __tablename__ = "banners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    banner_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class Brand(Base):
    __tablename__ = "brands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    brand_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    brand_display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class BusinessGroup(Base):
    __tablename__ = "business_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    group_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    department_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    department_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class CostCentre(Base):
    """Cost centre with optional geo enrichment.

    ``formatted_address``, ``latitude`` and ``longitude`` only ever move from
    NULL to a value; see ``CostCentreRepository.enrich``.
    """

    __tablename__ = "cost_centres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cost_centre_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    cost_centre_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    formatted_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    longitude: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class ParticipantRole(Base):
    __tablename__ = "participant_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class JobRole(Base):
    __tablename__ = "job_roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class MutualFlag(Base):
    __tablename__ = "mutual_flags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    flag_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class BreakType(Base):
    __tablename__ = "break_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    break_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class HistoryEventType(Base):
    __tablename__ = "history_event_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Fact tables
# ---------------------------------------------------------------------------


class Movement(Base):
    """One row per distinct business ``movement_id``."""

    __tablename__ = "movements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movement_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    movement_type_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.movement_types.id"), nullable=True, index=True
    )
    status_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.statuses.id"), nullable=True, index=True
    )
    start_date: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, index=True
    )
    end_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    workflow_definition_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    workflow_version: Mapped[int | None] = mapped_column(Integer, nullable=True)
    workflow_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movement_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    position_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    position_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    banner_id: Mapped[int | None] = mapped_column(ForeignKey("team_movements.banners.id"), nullable=True)
    brand_id: Mapped[int | None] = mapped_column(ForeignKey("team_movements.brands.id"), nullable=True)
    department_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.departments.id"), nullable=True
    )
    cost_centre_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.cost_centres.id"), nullable=True
    )
    role_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.participant_roles.id"), nullable=True, index=True
    )
    photo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class JobInfo(Base):
    """A job snapshot; ``is_current`` separates the current and new slots."""

    __tablename__ = "job_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movement_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    working_days_per_week: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    base_hours: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    employee_group_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.employee_groups.id"), nullable=True
    )
    position_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    position_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    banner_id: Mapped[int | None] = mapped_column(ForeignKey("team_movements.banners.id"), nullable=True)
    brand_id: Mapped[int | None] = mapped_column(ForeignKey("team_movements.brands.id"), nullable=True)
    business_group_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.business_groups.id"), nullable=True
    )
    cost_centre_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.cost_centres.id"), nullable=True
    )
    employee_subgroup_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.employee_subgroups.id"), nullable=True
    )
    job_role_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.job_roles.id"), nullable=True
    )
    department_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.departments.id"), nullable=True
    )
    salary_amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    salary_min: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    salary_max: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    salary_benchmark: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    discretionary_allowance: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    sti_target: Mapped[int | None] = mapped_column(Integer, nullable=True)
    manager_employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    manager_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    manager_position_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    manager_position_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    employee_movement_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sti_scheme: Mapped[str | None] = mapped_column(String(100), nullable=True)
    pay_scale_group: Mapped[str | None] = mapped_column(String(50), nullable=True)
    pay_scale_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    leave_entitlement: Mapped[str | None] = mapped_column(String(50), nullable=True)
    leave_entitlement_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    car_eligibility: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class Contract(Base):
    __tablename__ = "contracts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movement_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class ContractMutualFlag(Base):
    __tablename__ = "contract_mutual_flags"
    __table_args__ = (UniqueConstraint("contract_id", "flag_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    flag_id: Mapped[int] = mapped_column(ForeignKey("team_movements.mutual_flags.id"), nullable=False)


class ContractWeek(Base):
    __tablename__ = "contract_weeks"
    __table_args__ = (UniqueConstraint("contract_id", "week_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.contracts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    week_index: Mapped[int] = mapped_column(Integer, nullable=False)


class DailySchedule(Base):
    """One shift on one weekday of a contract week."""

    __tablename__ = "daily_schedules"
    __table_args__ = (
        CheckConstraint(
            "day_of_week IN ('mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun')",
            name="ck_daily_schedules_day_of_week",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_week_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.contract_weeks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day_of_week: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)


class ScheduleBreak(Base):
    __tablename__ = "schedule_breaks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    daily_schedule_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.daily_schedules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    break_type_id: Mapped[int] = mapped_column(ForeignKey("team_movements.break_types.id"), nullable=False)


class HistoryEvent(Base):
    """An ordered history entry; ``event_data`` keeps the raw payload."""

    __tablename__ = "history_events"
    __table_args__ = (UniqueConstraint("movement_id", "event_index"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movement_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.history_event_types.id"), nullable=False, index=True
    )
    event_index: Mapped[int] = mapped_column(Integer, nullable=False)
    created_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    participant_employee_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    participant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    participant_position_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    participant_position_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    participant_role_id: Mapped[int | None] = mapped_column(
        ForeignKey("team_movements.participant_roles.id"), nullable=True
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("movement_id", "tag_value"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movement_id: Mapped[int] = mapped_column(
        ForeignKey("team_movements.movements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_value: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
