"""
Google Sheets Connector Client.
Handles OAuth2 authentication, token refresh, and Sheets/Drive API calls.
"""

import httpx
from typing import Dict, List, Optional, Any
from datetime import datetime, timedelta
from urllib.parse import urlencode, quote

from config.settings import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_SHEETS_REDIRECT_URI,
    GOOGLE_API_TIMEOUT_SECONDS,
)
from services.connectors.googlesheets.errors import (
    CredentialError,
    TokenExpiredError,
    SourceUnavailableError,
)
from services.sheets.models import SheetInfo
from utils.logger import get_logger

logger = get_logger(__name__)


# Google API URLs
GOOGLE_OAUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
SHEETS_API_BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"

# Read-only access is all the sync needs
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets.readonly",
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
SPREADSHEET_LIST_LIMIT = 50


class GoogleSheetsConnector:
    """
    Google Sheets connector for OAuth and API operations.
    Stateless: tokens are passed per call, never stored on the instance.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = GOOGLE_API_TIMEOUT_SECONDS,
    ):
        """
        Initialize Google Sheets connector.

        Args:
            transport: Optional httpx transport (tests pass a MockTransport)
            timeout: Per-request timeout in seconds
        """
        self.client_id = GOOGLE_CLIENT_ID
        self.client_secret = GOOGLE_CLIENT_SECRET
        self.redirect_uri = GOOGLE_SHEETS_REDIRECT_URI
        self.transport = transport
        self.timeout = timeout

    def is_configured(self) -> bool:
        """Check if Google OAuth credentials are configured"""
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    # =========================================================================
    # OAuth Methods
    # =========================================================================

    def get_authorization_url(self, state: str) -> str:
        """
        Generate OAuth2 authorization URL for user to connect Google Sheets.

        Args:
            state: Opaque state echoed back on the callback (carries the fund id)

        Returns:
            URL to redirect user to for Google consent
        """
        if not self.is_configured():
            raise ValueError("Google OAuth credentials not configured")

        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "redirect_uri": self.redirect_uri,
            "access_type": "offline",
            "prompt": "consent",  # Forces a refresh token on every consent
            "include_granted_scopes": "true",
            "state": state,
        }

        return f"{GOOGLE_OAUTH_BASE_URL}?{urlencode(params)}"

    async def _post_token(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        try:
            async with self._http() as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"[GoogleSheets] Token {action} request failed: {e}")
            raise CredentialError(f"Token {action} failed: {type(e).__name__}")

        if response.status_code != 200:
            # Error bodies from the token endpoint carry no secrets
            logger.error(f"[GoogleSheets] Token {action} failed: {response.status_code} - {response.text}")
            raise CredentialError(f"Token {action} failed ({response.status_code})")

        return response.json()

    async def exchange_code_for_tokens(self, code: str) -> Dict[str, Any]:
        """
        Exchange authorization code for access and refresh tokens.

        Args:
            code: Authorization code from OAuth callback

        Returns:
            Dict with access_token, refresh_token, expires_at and email
        """
        if not self.is_configured():
            raise ValueError("Google OAuth credentials not configured")

        token_data = await self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
            },
            "exchange",
        )

        if not token_data.get("refresh_token"):
            raise CredentialError("Google did not return a refresh token")

        access_token = token_data["access_token"]
        email = await self.get_account_email(access_token)

        logger.info(f"[GoogleSheets] Successfully exchanged code for tokens, account: {email}")
        return {
            "access_token": access_token,
            "refresh_token": token_data["refresh_token"],
            "expires_at": datetime.utcnow() + timedelta(seconds=token_data.get("expires_in", 3600)),
            "email": email,
        }

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Refresh the access token using the refresh token.

        Returns:
            Dict with new access_token, expires_at and the refresh_token to keep

        Raises:
            CredentialError: If the refresh token was rejected or revoked
        """
        if not refresh_token:
            raise CredentialError("No refresh token available")

        token_data = await self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            "refresh",
        )

        logger.info("[GoogleSheets] Successfully refreshed access token")
        return {
            "access_token": token_data["access_token"],
            # Google only rotates the refresh token occasionally
            "refresh_token": token_data.get("refresh_token", refresh_token),
            "expires_at": datetime.utcnow() + timedelta(seconds=token_data.get("expires_in", 3600)),
        }

    async def revoke_token(self, token: str) -> bool:
        """
        Revoke a token (disconnect).

        Returns:
            True if successful
        """
        if not token:
            return True  # Nothing to revoke

        try:
            async with self._http() as client:
                response = await client.post(
                    GOOGLE_REVOKE_URL,
                    data={"token": token},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            logger.warning(f"[GoogleSheets] Token revocation request failed: {e}")
            return False

        if response.status_code == 200:
            logger.info("[GoogleSheets] Successfully revoked token")
            return True
        logger.warning(f"[GoogleSheets] Token revocation returned: {response.status_code}")
        return False

    # =========================================================================
    # API Helper Methods
    # =========================================================================

    async def _get_json(
        self,
        url: str,
        access_token: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated GET request.

        Raises:
            TokenExpiredError: On 401, so the caller can refresh and retry once
            SourceUnavailableError: On any other failure, including timeouts
        """
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }

        try:
            async with self._http() as client:
                response = await client.get(url, headers=headers, params=params)
        except httpx.TimeoutException:
            logger.warning(f"[GoogleSheets] Request timed out after {self.timeout}s")
            raise SourceUnavailableError(f"Google API timed out after {self.timeout:g}s")
        except httpx.HTTPError as e:
            logger.warning(f"[GoogleSheets] Request failed: {e}")
            raise SourceUnavailableError(f"Google API unreachable: {type(e).__name__}")

        if response.status_code == 401:
            logger.warning("[GoogleSheets] Access token expired or invalid")
            raise TokenExpiredError("Access token expired")

        if response.status_code == 403:
            raise SourceUnavailableError("Access to the spreadsheet was denied")

        if response.status_code == 404:
            raise SourceUnavailableError("Spreadsheet or sheet not found")

        if response.status_code != 200:
            logger.error(f"[GoogleSheets] API request failed: {response.status_code} - {response.text}")
            raise SourceUnavailableError(f"Google API request failed ({response.status_code})")

        return response.json()

    async def get_account_email(self, access_token: str) -> Optional[str]:
        """Email of the Google account that granted access"""
        try:
            data = await self._get_json(GOOGLE_USERINFO_URL, access_token)
        except SourceUnavailableError as e:
            logger.warning(f"[GoogleSheets] Could not read account email: {e}")
            return None
        return data.get("email")

    # =========================================================================
    # Spreadsheet Discovery
    # =========================================================================

    async def list_spreadsheets(self, access_token: str) -> List[Dict[str, Any]]:
        """
        List spreadsheets visible to the user, most recently modified first.

        Returns:
            List of dicts with id, name, owner and modified_time
        """
        data = await self._get_json(
            DRIVE_FILES_URL,
            access_token,
            params={
                "q": f"mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false",
                "fields": "files(id, name, owners, modifiedTime)",
                "orderBy": "modifiedTime desc",
                "pageSize": SPREADSHEET_LIST_LIMIT,
            },
        )

        spreadsheets = []
        for file in data.get("files", []):
            owners = file.get("owners") or [{}]
            spreadsheets.append({
                "id": file.get("id"),
                "name": file.get("name") or "Untitled",
                "owner": owners[0].get("emailAddress") or owners[0].get("displayName"),
                "modified_time": file.get("modifiedTime", ""),
            })

        logger.info(f"[GoogleSheets] Listed {len(spreadsheets)} spreadsheets")
        return spreadsheets

    async def list_sheet_names(self, access_token: str, spreadsheet_id: str) -> List[SheetInfo]:
        """
        List the tabs of a spreadsheet.

        Returns:
            List of SheetInfo
        """
        data = await self._get_json(
            f"{SHEETS_API_BASE_URL}/{quote(spreadsheet_id, safe='')}",
            access_token,
            params={"fields": "sheets.properties"},
        )

        sheets = []
        for sheet in data.get("sheets", []):
            props = sheet.get("properties", {})
            grid = props.get("gridProperties", {})
            sheets.append(SheetInfo(
                sheet_id=props.get("sheetId", 0),
                title=props.get("title", "Sheet"),
                row_count=grid.get("rowCount", 0),
                column_count=grid.get("columnCount", 0),
            ))
        return sheets

    # =========================================================================
    # Data Fetching
    # =========================================================================

    async def fetch_grid(self, access_token: str, spreadsheet_id: str, sheet_name: str) -> List[List[str]]:
        """
        Fetch every populated cell of a sheet tab.

        Returns:
            Rectangular grid of strings; empty cells are ""
        """
        # Quoted A1 range selects the whole tab, even with spaces in the name
        sheet_range = "'" + sheet_name.replace("'", "''") + "'"
        data = await self._get_json(
            f"{SHEETS_API_BASE_URL}/{quote(spreadsheet_id, safe='')}/values/{quote(sheet_range, safe='')}",
            access_token,
        )

        values = data.get("values", [])
        width = max((len(row) for row in values), default=0)
        grid = [
            ["" if cell is None else str(cell) for cell in row] + [""] * (width - len(row))
            for row in values
        ]

        logger.info(f"[GoogleSheets] Fetched {len(grid)} rows x {width} columns from '{sheet_name}'")
        return grid
