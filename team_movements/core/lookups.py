"""Lookup categories and the tables that back them."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Type

from team_movements.core.database import Base
from team_movements.database.models import (
    Banner,
    Brand,
    BreakType,
    BusinessGroup,
    CostCentre,
    Department,
    EmployeeGroup,
    EmployeeSubgroup,
    HistoryEventType,
    JobRole,
    MovementType,
    MutualFlag,
    ParticipantRole,
    Status,
)

UNKNOWN = "Unknown"


class LookupCategory(str, Enum):
    """Every bounded vocabulary referenced by a movement document."""

    MOVEMENT_TYPE = "movement_type"
    STATUS = "status"
    EMPLOYEE_GROUP = "employee_group"
    EMPLOYEE_SUBGROUP = "employee_subgroup"
    BANNER = "banner"
    BRAND = "brand"
    BUSINESS_GROUP = "business_group"
    DEPARTMENT = "department"
    COST_CENTRE = "cost_centre"
    PARTICIPANT_ROLE = "participant_role"
    JOB_ROLE = "job_role"
    MUTUAL_FLAG = "mutual_flag"
    BREAK_TYPE = "break_type"
    HISTORY_EVENT_TYPE = "history_event_type"


@dataclass(frozen=True)
class LookupTable:
    """Binds a category to its ORM model and natural key column.

    ``name_column`` is set for compound lookups (code plus display name).
    ``extra_unknown`` holds additional column values for the Unknown row, and
    the ``unknown_row`` property builds that row as seeded for every category.
    """

    model: Type[Base]
    key_column: str
    name_column: str | None = None
    extra_unknown: Dict[str, Any] = field(default_factory=dict)

    @property
    def table_name(self) -> str:
        return self.model.__tablename__

    @property
    def is_compound(self) -> bool:
        return self.name_column is not None

    @property
    def unknown_row(self) -> Dict[str, Any]:
        row = {self.key_column: UNKNOWN}
        if self.name_column:
            row[self.name_column] = UNKNOWN
        row.update(self.extra_unknown)
        return row

    @property
    def key(self):
        return getattr(self.model, self.key_column)


LOOKUP_TABLES: Dict[LookupCategory, LookupTable] = {
    LookupCategory.MOVEMENT_TYPE: LookupTable(MovementType, "type_name"),
    LookupCategory.STATUS: LookupTable(Status, "status_name"),
    LookupCategory.EMPLOYEE_GROUP: LookupTable(EmployeeGroup, "group_name"),
    LookupCategory.EMPLOYEE_SUBGROUP: LookupTable(EmployeeSubgroup, "subgroup_name"),
    LookupCategory.BANNER: LookupTable(Banner, "banner_name"),
    LookupCategory.BRAND: LookupTable(
        Brand, "brand_code", "brand_name", extra_unknown={"brand_display_name": UNKNOWN}
    ),
    LookupCategory.BUSINESS_GROUP: LookupTable(BusinessGroup, "group_code", "group_name"),
    LookupCategory.DEPARTMENT: LookupTable(Department, "department_code", "department_name"),
    LookupCategory.COST_CENTRE: LookupTable(CostCentre, "cost_centre_code", "cost_centre_name"),
    LookupCategory.PARTICIPANT_ROLE: LookupTable(ParticipantRole, "role_name"),
    LookupCategory.JOB_ROLE: LookupTable(JobRole, "role_name"),
    LookupCategory.MUTUAL_FLAG: LookupTable(MutualFlag, "flag_name"),
    LookupCategory.BREAK_TYPE: LookupTable(BreakType, "break_name"),
    LookupCategory.HISTORY_EVENT_TYPE: LookupTable(HistoryEventType, "event_type_name"),
}

COMPOUND_CATEGORIES = frozenset(
    category for category, table in LOOKUP_TABLES.items() if table.is_compound
)


def normalize_lookup_text(value: Any) -> str:
    """Trim a raw lookup value; empty or missing text becomes ``Unknown``."""
    if value is None:
        return UNKNOWN
    text = str(value).strip()
    return text or UNKNOWN


def is_unknown(value: str) -> bool:
    return value.strip().lower() == UNKNOWN.lower()
