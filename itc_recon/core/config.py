from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "ITC Reconciliation Engine"
    LOG_LEVEL: str = "INFO"

    # Default matching policy (overridable per run)
    DEFAULT_AMOUNT_TOLERANCE: float = 1.0  # percent
    DEFAULT_DATE_TOLERANCE_DAYS: int = 2
    DEFAULT_FUZZY_THRESHOLD: float = 0.8
    AUTO_ACCEPT_EXACT_MATCHES: bool = True
    REQUIRE_MANUAL_REVIEW_FOR_FUZZY: bool = True

    # Compliance survey uses fixed tolerances, independent of the run policy
    SURVEY_AMOUNT_TOLERANCE: float = 1.0
    SURVEY_DATE_TOLERANCE_DAYS: int = 2

    # Batch bounds
    MAX_BATCH_INVOICES: int = 5000
    RECONCILE_MAX_WORKERS: int = 4
    RECONCILE_CHUNK_SIZE: int = 50

    # Mismatch explanations
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    EXPLAIN_MIN_INTERVAL_SECONDS: float = 2.0

    class Config:
        case_sensitive = True

settings = Settings()
