"""
KPI catalogue and KPI data point persistence.
"""
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlmodel import Session, select

from database.models.kpi import (
    Deal,
    KpiDefinition,
    KpiDataPoint,
    KpiDataType,
    KpiFormat,
    KpiPeriodType,
    KpiSource,
    CUSTOM_KPI_CATEGORY,
)
from services.sheets.mapping_resolver import KpiCatalogueEntry
from utils.logger import get_logger

logger = get_logger(__name__)

# KPI codes mirrored onto deals.kpis for fast display
HEADLINE_KPI_CODES = (
    "noi",
    "physical_occupancy",
    "cap_rate",
    "irr",
    "equity_multiple",
    "dscr",
)
# KPI code mirrored onto deals.current_value
CURRENT_VALUE_KPI_CODE = "property_value"


def period_start(now: datetime, period_type: KpiPeriodType = KpiPeriodType.MONTHLY) -> date:
    """First day of the period containing `now`"""
    if period_type == KpiPeriodType.YEARLY:
        return date(now.year, 1, 1)
    if period_type == KpiPeriodType.QUARTERLY:
        return date(now.year, 3 * ((now.month - 1) // 3) + 1, 1)
    return date(now.year, now.month, 1)


class KpiService:
    """
    Reads the KPI catalogue and writes KPI data points.
    Data point writes are keyed on (deal, kpi, period type, period date,
    data type), so repeating a write overwrites the earlier value.
    """

    def __init__(self, session: Session):
        self.session = session

    def list_definitions(self) -> List[KpiCatalogueEntry]:
        definitions = self.session.exec(
            select(KpiDefinition).order_by(KpiDefinition.category, KpiDefinition.sort_order)
        ).all()
        return [KpiCatalogueEntry(code=d.code, name=d.name) for d in definitions]

    def get_definition(self, code: str) -> Optional[KpiDefinition]:
        return self.session.exec(
            select(KpiDefinition).where(KpiDefinition.code == code)
        ).first()

    def get_or_create_definition(self, code: str, custom_name: Optional[str] = None) -> Optional[KpiDefinition]:
        """
        Look up a KPI by code. A missing code is created as a custom KPI when
        a custom name is given, otherwise None is returned.
        """
        definition = self.get_definition(code)
        if definition or not custom_name:
            return definition

        definition = KpiDefinition(
            code=code,
            name=custom_name,
            category=CUSTOM_KPI_CATEGORY,
            format=KpiFormat.NUMBER.value,
            description="Custom metric created from a spreadsheet mapping",
        )
        self.session.add(definition)
        self.session.commit()
        self.session.refresh(definition)
        logger.info(f"[KpiService] Created custom KPI definition: {code}")
        return definition

    def upsert_data_point(
        self,
        deal_id: str,
        kpi_id: str,
        period_date: date,
        value: float,
        data_type: str = KpiDataType.ACTUAL.value,
        period_type: str = KpiPeriodType.MONTHLY.value,
        source_ref: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> KpiDataPoint:
        """Insert or overwrite one KPI value. Commits; the caller handles rollback."""
        now = now or datetime.utcnow()
        existing = self.session.exec(
            select(KpiDataPoint)
            .where(KpiDataPoint.deal_id == deal_id)
            .where(KpiDataPoint.kpi_id == kpi_id)
            .where(KpiDataPoint.period_type == period_type)
            .where(KpiDataPoint.period_date == period_date)
            .where(KpiDataPoint.data_type == data_type)
        ).first()

        if existing:
            existing.value = value
            existing.source = KpiSource.SPREADSHEET.value
            existing.source_ref = source_ref
            existing.imported_at = now
            existing.updated_at = now
            point = existing
        else:
            point = KpiDataPoint(
                deal_id=deal_id,
                kpi_id=kpi_id,
                period_type=period_type,
                period_date=period_date,
                data_type=data_type,
                value=value,
                source=KpiSource.SPREADSHEET.value,
                source_ref=source_ref,
                imported_at=now,
                created_at=now,
                updated_at=now,
            )

        self.session.add(point)
        self.session.commit()
        self.session.refresh(point)
        return point

    def update_deal_headlines(self, deal_id: str, values: Dict[str, float], now: Optional[datetime] = None) -> bool:
        """
        Mirror headline KPI values onto the deal record.

        Returns:
            True if the deal was updated
        """
        deal = self.session.get(Deal, deal_id)
        if not deal:
            logger.warning(f"[KpiService] Deal not found for headline update: {deal_id}")
            return False

        headlines = {code: values[code] for code in HEADLINE_KPI_CODES if code in values}
        has_value = CURRENT_VALUE_KPI_CODE in values
        if not headlines and not has_value:
            return False

        if headlines:
            # Reassign so the JSON column is flagged dirty
            deal.kpis = {**(deal.kpis or {}), **headlines}
        if has_value:
            deal.current_value = values[CURRENT_VALUE_KPI_CODE]
        deal.updated_at = now or datetime.utcnow()

        self.session.add(deal)
        self.session.commit()
        logger.info(f"[KpiService] Updated headline KPIs for deal {deal_id}: {sorted(headlines)}")
        return True


def get_kpi_service(session: Session) -> KpiService:
    """Factory function to get KPI service instance"""
    return KpiService(session)
