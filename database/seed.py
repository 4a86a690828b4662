"""
Database seeding script for the KPI catalogue.
Run this after database tables are created.
"""
from typing import Optional

from sqlmodel import Session, select
from database.connection import engine
from database.models import KpiDefinition, KpiFormat
from utils.logger import get_logger

logger = get_logger(__name__)


# (code, name, category, format, description)
KPI_DEFINITIONS = [
    # Rent & revenue
    ("gpr", "Gross Potential Rent", "rent_revenue", KpiFormat.CURRENCY, "Total rent if all units were leased at market rates"),
    ("egi", "Effective Gross Income", "rent_revenue", KpiFormat.CURRENCY, "Gross potential rent minus vacancy and concessions, plus other income"),
    ("total_revenue", "Total Revenue", "rent_revenue", KpiFormat.CURRENCY, "All income from the property"),
    ("revenue_per_unit", "Revenue Per Unit", "rent_revenue", KpiFormat.CURRENCY, "Average monthly revenue per unit"),
    ("rent_growth", "Rent Growth", "rent_revenue", KpiFormat.PERCENTAGE, "Year-over-year rent increase percentage"),
    ("concessions", "Concessions", "rent_revenue", KpiFormat.CURRENCY, "Total concessions and discounts given"),
    # Occupancy
    ("physical_occupancy", "Physical Occupancy Rate", "occupancy", KpiFormat.PERCENTAGE, "Percentage of units that are physically occupied"),
    ("economic_occupancy", "Economic Occupancy Rate", "occupancy", KpiFormat.PERCENTAGE, "Actual rent collected as percentage of potential rent"),
    ("vacancy_rate", "Vacancy Rate", "occupancy", KpiFormat.PERCENTAGE, "Percentage of units that are vacant"),
    ("lease_renewal_rate", "Lease Renewal Rate", "occupancy", KpiFormat.PERCENTAGE, "Percentage of tenants who renew their lease"),
    ("move_ins", "Move-Ins", "occupancy", KpiFormat.NUMBER, "Number of new move-ins in the period"),
    ("move_outs", "Move-Outs", "occupancy", KpiFormat.NUMBER, "Number of move-outs in the period"),
    # Property performance
    ("noi", "Net Operating Income", "property_performance", KpiFormat.CURRENCY, "Revenue minus operating expenses (before debt service)"),
    ("noi_margin", "NOI Margin", "property_performance", KpiFormat.PERCENTAGE, "NOI as a percentage of total revenue"),
    ("operating_expense_ratio", "Operating Expense Ratio", "property_performance", KpiFormat.PERCENTAGE, "Operating expenses as percentage of revenue"),
    ("cap_rate", "Cap Rate", "property_performance", KpiFormat.PERCENTAGE, "NOI divided by property value"),
    ("cash_on_cash", "Cash on Cash Return", "property_performance", KpiFormat.PERCENTAGE, "Annual cash flow divided by total cash invested"),
    ("total_expenses", "Total Operating Expenses", "property_performance", KpiFormat.CURRENCY, "All operating expenses for the period"),
    # Financial
    ("ebitda", "EBITDA", "financial", KpiFormat.CURRENCY, "Earnings before interest, taxes, depreciation, and amortization"),
    ("free_cash_flow", "Free Cash Flow", "financial", KpiFormat.CURRENCY, "Cash available after all expenses and capital expenditures"),
    ("roi", "Return on Investment", "financial", KpiFormat.PERCENTAGE, "Total return as percentage of investment"),
    ("irr", "Internal Rate of Return", "financial", KpiFormat.PERCENTAGE, "Annualized rate of return on investment"),
    ("equity_multiple", "Equity Multiple", "financial", KpiFormat.RATIO, "Total distributions divided by total equity invested"),
    ("property_value", "Current Property Value", "financial", KpiFormat.CURRENCY, "Estimated current market value"),
    # Debt service
    ("dscr", "Debt Service Coverage Ratio", "debt_service", KpiFormat.RATIO, "NOI divided by annual debt service"),
    ("ltv", "Loan-to-Value", "debt_service", KpiFormat.PERCENTAGE, "Loan balance as percentage of property value"),
    ("principal_balance", "Principal Balance", "debt_service", KpiFormat.CURRENCY, "Outstanding loan principal"),
    ("annual_debt_service", "Annual Debt Service", "debt_service", KpiFormat.CURRENCY, "Total annual debt payments"),
    ("interest_rate", "Interest Rate", "debt_service", KpiFormat.PERCENTAGE, "Current loan interest rate"),
]


def seed_kpi_definitions(session: Session) -> int:
    """Insert missing KPI definitions. Existing codes are left untouched."""
    existing_codes = set(session.exec(select(KpiDefinition.code)).all())
    created = 0

    sort_orders: dict = {}
    for code, name, category, kpi_format, description in KPI_DEFINITIONS:
        sort_orders[category] = sort_orders.get(category, 0) + 1
        if code in existing_codes:
            continue
        session.add(KpiDefinition(
            code=code,
            name=name,
            category=category,
            format=kpi_format.value,
            description=description,
            sort_order=sort_orders[category],
        ))
        created += 1

    if created:
        session.commit()
    return created


def seed_database(session: Optional[Session] = None):
    """Main seeding function."""
    if session is not None:
        created = seed_kpi_definitions(session)
    else:
        with Session(engine) as session:
            created = seed_kpi_definitions(session)
    logger.info(f"[Seed] KPI catalogue seeded ({created} new definitions)")


if __name__ == "__main__":
    from database.connection import create_db_and_tables
    create_db_and_tables()
    seed_database()
