"""
Configuration module for the Text2SQL backend.

Loads environment variables and provides application settings,
including the datasource map used by the execution-context router.
"""

from pydantic_settings import BaseSettings
from typing import Dict, List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    llm_temperature: float = 0.0
    max_tool_rounds: int = 8

    # Datasource name -> SQLAlchemy URL.  Supplied as JSON in the
    # DATASOURCES environment variable.
    datasources: Dict[str, str] = {
        "ticket-distribution": (
            "mysql+pymysql://root:@localhost:3306/ticket_distribution"
        ),
        "ticket-booking": (
            "mysql+pymysql://root:@localhost:3306/ticket_booking"
        ),
        "text2sql-db": "mysql+pymysql://root:@localhost:3306/text2sql",
    }
    datasource_aliases: Dict[str, str] = {
        "distribution": "ticket-distribution",
        "primary": "ticket-distribution",
        "master": "ticket-distribution",
        "booking": "ticket-booking",
        "order": "ticket-booking",
        "text2sql": "text2sql-db",
        "local": "text2sql-db",
        "test": "text2sql-db",
    }
    default_datasource: str = "ticket-distribution"
    read_datasources: List[str] = [
        "ticket-distribution",
        "ticket-booking",
        "text2sql-db",
    ]
    max_result_rows: int = 1000

    # Directory of custom prompt templates.  Templates use single-brace
    # {name} placeholders, so they must not contain any other literal
    # "{" or "}" (e.g. JSON examples); those fail to render.
    prompts_dir: Optional[str] = None
    cors_origins: str = "http://localhost:5173,http://localhost:3000"
    log_level: str = "INFO"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [
            origin.strip()
            for origin in self.cors_origins.split(",")
        ]

    class Config:
        """Pydantic settings configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
