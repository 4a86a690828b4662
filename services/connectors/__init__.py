"""
Connector services for external data integrations.

Supported connectors:
- Google Sheets: KPI values synced from a spreadsheet tab on a schedule
"""

from services.connectors.googlesheets.client import GoogleSheetsConnector

__all__ = [
    "GoogleSheetsConnector",
]
