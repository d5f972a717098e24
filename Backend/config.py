"""
Application settings, read from the environment (and a local .env file).
"""
import os
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

PORT = int(os.getenv("PORT", 5000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017/todo-app")


def _database_name_from_uri(uri: str) -> str:
    path = urlparse(uri).path.lstrip("/")
    return path or "todo-app"


MONGODB_DB_NAME = os.getenv("MONGODB_DB_NAME") or _database_name_from_uri(MONGODB_URI)

# --- CORS ---
DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",  # Vite default
    "http://localhost:5500",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:5500",
]


def _extra_origins() -> list[str]:
    raw = os.getenv("FRONTEND_URLS", "")
    return [url.strip() for url in raw.split(",") if url.strip()]


ALLOWED_ORIGINS = DEFAULT_ORIGINS + _extra_origins()
ALLOW_ALL_ORIGINS = os.getenv("ALLOW_ALL_ORIGINS", "false").lower() == "true"
