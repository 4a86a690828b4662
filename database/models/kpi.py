"""Database models for the KPI catalogue, KPI data points and deals"""
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, String, Text, UniqueConstraint
from sqlmodel import SQLModel, Field, Column


class KpiPeriodType(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class KpiDataType(str, Enum):
    ACTUAL = "actual"
    FORECAST = "forecast"
    BUDGET = "budget"


class KpiSource(str, Enum):
    MANUAL = "manual"
    SPREADSHEET = "spreadsheet"


class KpiFormat(str, Enum):
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    NUMBER = "number"
    RATIO = "ratio"


CUSTOM_KPI_CATEGORY = "custom"

# Placeholder deal id for fund-level data points (no owning deal)
FUND_LEVEL_DEAL_PREFIX = "fund:"


def fund_level_deal_id(fund_id: str) -> str:
    return f"{FUND_LEVEL_DEAL_PREFIX}{fund_id}"


class Deal(SQLModel, table=True):
    """
    Owning sub-entity of a fund. Only the fields the sync engine reads or
    mirrors headline KPIs onto are modelled here.
    """
    __tablename__ = "deals"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    fund_id: str = Field(index=True, max_length=255)
    name: str = Field(max_length=500)

    current_value: Optional[float] = Field(default=None)
    # Headline KPIs for fast display, e.g. {"noi": 200000.0, "physical_occupancy": 0.94}
    kpis: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class KpiDefinition(SQLModel, table=True):
    """Master list of KPIs a mapping entry can target"""
    __tablename__ = "kpi_definitions"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    code: str = Field(max_length=100, sa_column_kwargs={"unique": True}, index=True)
    name: str = Field(max_length=255)
    category: str = Field(max_length=50, index=True)
    description: Optional[str] = Field(default=None, sa_column=Column(Text))
    format: KpiFormat = Field(default=KpiFormat.NUMBER, sa_column=Column(String(20)))
    sort_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class KpiDataPoint(SQLModel, table=True):
    """
    One KPI value for a deal and period.
    (deal_id, kpi_id, period_type, period_date, data_type) is unique, so a
    second sync for the same period overwrites instead of duplicating.
    """
    __tablename__ = "kpi_data"
    __table_args__ = (
        UniqueConstraint(
            "deal_id", "kpi_id", "period_type", "period_date", "data_type",
            name="uq_kpi_data_period",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    deal_id: str = Field(index=True, max_length=255)  # Deal id or fund-level placeholder
    kpi_id: str = Field(foreign_key="kpi_definitions.id", index=True)

    period_type: KpiPeriodType = Field(default=KpiPeriodType.MONTHLY, sa_column=Column(String(20)))
    period_date: date
    data_type: KpiDataType = Field(default=KpiDataType.ACTUAL, sa_column=Column(String(20)))
    value: float

    # Provenance
    source: KpiSource = Field(default=KpiSource.MANUAL, sa_column=Column(String(20)))
    source_ref: Optional[str] = Field(default=None, max_length=255)  # Connection id for synced points
    imported_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
