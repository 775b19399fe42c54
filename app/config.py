import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


def _database_uri():
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    # Construct database URI dynamically
    db_name = os.getenv("DB_NAME")
    db_user = os.getenv("DB_USER")
    db_password = os.getenv("DB_PASSWORD")
    db_host = os.getenv("DB_HOST")
    db_port = os.getenv("DB_PORT")
    return f"postgresql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Let errors raised inside flask-restful resources reach the app handlers
    PROPAGATE_EXCEPTIONS = True

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(
        seconds=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES", 3600))
    )

    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI")
    RATE_LIMIT_MESSAGE = os.getenv("RATE_LIMIT_MESSAGE")

    # Rent savings defaults, percentages
    SAVINGS_DEFAULT_PENALTY_RATE = os.getenv("SAVINGS_DEFAULT_PENALTY_RATE", "5.00")
    SAVINGS_DEFAULT_CHARGE_RATE = os.getenv("SAVINGS_DEFAULT_CHARGE_RATE", "2.00")
    SAVINGS_MAX_ACTIVE_PLANS = int(os.getenv("SAVINGS_MAX_ACTIVE_PLANS", 10))
    SAVINGS_REFERENCE_PREFIX = os.getenv("SAVINGS_REFERENCE_PREFIX", "SAV")

    # Payment provider used to verify deposits
    PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY")
    PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_TIMEOUT = int(os.getenv("PAYSTACK_TIMEOUT", 10))
