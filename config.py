import os
from typing import List


def normalize_cors_origins(origins_str: str) -> List[str]:
    """
    Normalize a comma-separated string of CORS origins.

    Handles:
    - Trim whitespace from each origin
    - Remove surrounding quotes (" and ')
    - Remove trailing slashes (/)
    - Filter out empty entries

    Args:
        origins_str: Comma-separated string of origins

    Returns:
        List of normalized, non-empty origins
    """
    if not origins_str:
        return []

    normalized = []
    for origin in origins_str.split(","):
        origin = origin.strip()

        if (origin.startswith('"') and origin.endswith('"')) or \
           (origin.startswith("'") and origin.endswith("'")):
            origin = origin[1:-1]

        origin = origin.strip().rstrip("/")

        if origin:
            normalized.append(origin)

    return normalized


def parse_csv_setting(value: str) -> List[str]:
    """Split a comma-separated env value into lower-cased, non-empty items."""
    if not value:
        return []
    return [item.strip().lower() for item in value.split(",") if item.strip()]


class Config:
    # --- DATABASE ---
    # Supabase connection string (postgresql+psycopg://...). Falls back to SQLite.
    DATABASE_URL = os.getenv("DATABASE_URL")

    # --- GOOGLE AUTH & DRIVE ---
    # OAuth client used to refresh the per-user tokens stored in user_credentials
    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
    GOOGLE_TOKEN_URI = os.getenv("GOOGLE_TOKEN_URI", "https://oauth2.googleapis.com/token")
    USE_MOCK_DRIVE = os.getenv("USE_MOCK_DRIVE", "false").lower() == "true"
    DRIVE_LIST_PAGE_SIZE = int(os.getenv("DRIVE_LIST_PAGE_SIZE", "1000"))

    # --- EMBEDDINGS (Gemini) ---
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_AI_API_KEY")
    EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "models/text-embedding-004")
    EMBEDDING_MAX_CHARS = int(os.getenv("EMBEDDING_MAX_CHARS", "30000"))

    # --- SYNC ---
    # Folders of these service extensions are always mirrored as groups
    ALWAYS_GROUP_EXTENSIONS = parse_csv_setting(os.getenv("ALWAYS_GROUP_EXTENSIONS", "brify,abogados"))
    # true = compare Drive modifiedTime against the mirror created_at (legacy behaviour)
    SYNC_COMPARE_CREATED_AT = os.getenv("SYNC_COMPARE_CREATED_AT", "false").lower() == "true"
    # Token quota assigned when a user has no plan
    DEFAULT_TOKEN_LIMIT = int(os.getenv("DEFAULT_TOKEN_LIMIT", "1000"))

    # --- CORS (Frontend) ---
    _DEFAULT_CORS_ORIGINS = [
        "https://brify.ai",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", ",".join(_DEFAULT_CORS_ORIGINS))
    CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", None)

    # --- SUPABASE JWT AUTH ---
    SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", None)

config = Config()
