"""
Configuration management for the LoanView advisor

Centralized configuration using Pydantic Settings. Every tunable of the
engine (generator fallback, catalog location, comparison defaults, logging)
is read from environment variables or a local .env file.
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Centralized configuration for the advisor engine and API.

    All settings are loaded from environment variables (.env file).
    Nothing here is required: without an API key the engine simply runs
    with the rule-based classifier only.
    """

    # ==================== LLM Provider (optional fallback) ====================
    llm_provider: str = "openai"        # "openai" | "gemini"
    llm_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    custom_model_name: Optional[str] = None

    # ==================== Generator Fallback ====================
    generator_enabled: bool = True
    generator_timeout_seconds: float = 8.0
    generator_retry_timeout_seconds: float = 3.0  # 0 disables the retry

    # ==================== Catalog ====================
    catalog_path: Optional[str] = None  # None -> packaged loanview/data/lenders.yaml

    # ==================== Comparison Defaults ====================
    default_comparison_loan_type: str = "home"
    comparison_amount: float = 1_000_000
    comparison_tenure_months: int = 240

    # ==================== Sessions ====================
    session_ttl_seconds: int = 1800

    # ==================== Logging ====================
    log_level: str = "INFO"
    log_file: str = "logs/loanview.log"
    json_logs: bool = True

    class Config:
        """Pydantic configuration"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False  # Allow lowercase env vars
        extra = "ignore"  # Ignore extra env vars


# Global settings instance
settings = Settings()
