import os
from dotenv import load_dotenv

load_dotenv()

# API Configuration
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", 8000))
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kpi_sync.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Frontend URL for OAuth redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Shared secret for administrative endpoints (scheduler trigger, forced sync)
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

# Google Sheets Configuration
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_SHEETS_REDIRECT_URI = os.getenv(
    "GOOGLE_SHEETS_REDIRECT_URI", "http://localhost:8000/api/connectors/googlesheets/oauth/callback"
)
# Must stay well below the shortest sync frequency (5 minutes)
GOOGLE_API_TIMEOUT_SECONDS = float(os.getenv("GOOGLE_API_TIMEOUT_SECONDS", 30))

# Fernet key used to encrypt stored OAuth credentials
CREDENTIALS_ENCRYPTION_KEY = os.getenv("CREDENTIALS_ENCRYPTION_KEY")

# Sync scheduler
SHEETS_SYNC_SCHEDULER_ENABLED = os.getenv("SHEETS_SYNC_SCHEDULER_ENABLED", "true").lower() in ("true", "1", "yes")
SHEETS_SYNC_TICK_SECONDS = int(os.getenv("SHEETS_SYNC_TICK_SECONDS", 60))
TOKEN_REFRESH_BUFFER_MINUTES = int(os.getenv("TOKEN_REFRESH_BUFFER_MINUTES", 5))

# Preview limits for the setup wizard
SHEET_PREVIEW_MAX_ROWS = int(os.getenv("SHEET_PREVIEW_MAX_ROWS", 200))
