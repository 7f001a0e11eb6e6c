import logging
import os

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./cloudvault.db")

# Shared secret of the identity provider that signs bearer tokens
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120"))

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000/storage")

MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "50"))
DEFAULT_STORAGE_LIMIT = int(os.getenv("DEFAULT_STORAGE_LIMIT", str(5 * 1024 ** 3)))  # 5 GiB

# Reserve quota with a conditional UPDATE instead of read-then-write
ATOMIC_QUOTA = os.getenv("ATOMIC_QUOTA", "false").lower() == "true"

ACTIVE_USER_WINDOW_DAYS = int(os.getenv("ACTIVE_USER_WINDOW_DAYS", "30"))

ALLOW_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOW_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if o.strip()
]
