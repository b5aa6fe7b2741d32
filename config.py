import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        token_secret: str,
        token_max_age_secs: int,
        bcrypt_rounds: int,
        db_timeout_secs: float,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.token_secret = token_secret
        self.token_max_age_secs = token_max_age_secs
        self.bcrypt_rounds = bcrypt_rounds
        self.db_timeout_secs = db_timeout_secs
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FINANCE_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "finance.db"
        database_url = f"sqlite:///{default_db}"
    token_secret = os.getenv(
        "FINANCE_TOKEN_SECRET",
        "5f0c8a3e2b9d41c7a6e8f1d2c3b4a5968778695a4b3c2d1e0f9e8d7c6b5a4938",
    )
    token_max_age_secs = int(os.getenv("FINANCE_TOKEN_MAX_AGE_SECS", "86400"))
    bcrypt_rounds = int(os.getenv("FINANCE_BCRYPT_ROUNDS", "10"))
    db_timeout_secs = float(os.getenv("FINANCE_DB_TIMEOUT_SECS", "5"))
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        token_secret=token_secret,
        token_max_age_secs=token_max_age_secs,
        bcrypt_rounds=bcrypt_rounds,
        db_timeout_secs=db_timeout_secs,
        log_level=log_level,
    )
