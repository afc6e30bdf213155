"""
Application configuration using pydantic-settings.
Loads from environment variables with .env file support.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    # Database
    database_url: str = "sqlite+aiosqlite:///./progression.db"

    # Application
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    project_name: str = "Skill Progression Engine"
    version: str = "1.0.0"

    # Mastery thresholds
    mastered_threshold: int = 3       # total passes
    consecutive_threshold: int = 2    # passes in a row
    practicing_threshold: int = 1
    milestone_required_mastery: float = 0.75

    # Scheduling
    practice_days_per_week: int = 5

    # Skill tree shape (percent of non-synthesis slots)
    foundation_percent: float = 0.35
    building_percent: float = 0.25
    compound_percent: float = 0.30
    max_skills_per_stage: int = 3
    max_building_prerequisites: int = 2
    max_extra_prior_skills: int = 5
    max_cross_quest_compounds: int = 2

    # Minute budgets
    default_skill_minutes: int = 25
    max_skill_minutes: int = 45
    min_skill_minutes: int = 10
    synthesis_skill_minutes: int = 35

    # Stores
    max_write_retries: int = 3
    store_page_size: int = 100


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
