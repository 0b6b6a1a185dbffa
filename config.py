import os
from pathlib import Path

from dotenv import load_dotenv

ENV_PATH = Path(__file__).with_name(".env")
load_dotenv(dotenv_path=ENV_PATH)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./college.db").strip()

SECRET_KEY = os.getenv("SECRET_KEY", "change-this-secret-key").strip()
ALGORITHM = "HS256"

# Lifetime of a login session row
SESSION_EXPIRY_SECONDS = int(os.getenv("SESSION_EXPIRY_SECONDS", "86400"))
RESET_TOKEN_EXPIRY_SECONDS = int(os.getenv("RESET_TOKEN_EXPIRY_SECONDS", "3600"))

# Echo password reset tokens in the response (local testing only)
EXPOSE_RESET_TOKEN = os.getenv("EXPOSE_RESET_TOKEN", "false").lower() == "true"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DEFAULT_MAX_STUDENTS = 60
MAX_GRADE_POINT = 4.0
UPCOMING_LIMIT = 10
