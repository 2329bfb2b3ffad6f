import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./site_ledger.db")

# Local timezone of the construction sites, used for movement and audit timestamps
TIMEZONE = os.getenv("TIMEZONE", "America/Sao_Paulo")

# How many times a contended balance write is retried before giving up
LEDGER_MAX_RETRIES = int(os.getenv("LEDGER_MAX_RETRIES", 3))

# Open loans older than this are reported as overdue
LOAN_OVERDUE_DAYS = int(os.getenv("LOAN_OVERDUE_DAYS", 1))

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "site-ledger-development-secret-change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

LOG_DIR = os.getenv("LOG_DIR", "./logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]
