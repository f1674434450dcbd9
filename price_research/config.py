# price_research/config.py
from dataclasses import dataclass
from functools import lru_cache
import os

from dotenv import load_dotenv

# environment overrides
load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# compliance threshold defaults
DEFAULT_MIN_SOURCES = 3
DEFAULT_RECENCY_MONTHS = 12


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration for the price-research engine.

    Compliance thresholds live here so the validation rules, the ledger and
    the item predicates all read the same numbers.
    """
    database_url: str = f"sqlite:///{os.path.join(BASE_DIR, 'price_research.db')}"
    min_sources: int = DEFAULT_MIN_SOURCES
    recency_months: int = DEFAULT_RECENCY_MONTHS
    min_exclusion_reason_length: int = 10
    iqr_factor: float = 1.5
    max_recompute_retries: int = 3
    log_dir: str = "logs"
    log_level: str = "INFO"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    defaults = Settings()
    return Settings(
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        min_sources=int(os.getenv("PRICE_RESEARCH_MIN_SOURCES", defaults.min_sources)),
        recency_months=int(os.getenv("PRICE_RESEARCH_RECENCY_MONTHS", defaults.recency_months)),
        min_exclusion_reason_length=int(
            os.getenv("PRICE_RESEARCH_MIN_REASON_LENGTH", defaults.min_exclusion_reason_length)
        ),
        iqr_factor=float(os.getenv("PRICE_RESEARCH_IQR_FACTOR", defaults.iqr_factor)),
        max_recompute_retries=int(os.getenv("PRICE_RESEARCH_MAX_RETRIES", defaults.max_recompute_retries)),
        log_dir=os.getenv("LOG_DIR", defaults.log_dir),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
    )
