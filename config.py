# config.py - Centralized configuration management
from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # Supabase
    SUPABASE_URL: str
    SUPABASE_SECRET: str
    SUPABASE_JWT_SECRET: str = "your-jwt-secret-change-in-production"
    SUPABASE_BUCKET_NAME: str = "issue_images"

    # JWT (Supabase access tokens)
    ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # Auth flows
    PASSWORD_RESET_REDIRECT: str = "janconnect://reset-password"
    MIN_PASSWORD_LENGTH: int = 6

    # Application
    APP_NAME: str = "JanConnect"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    ALLOWED_ORIGINS: str = "*"

    # Workflow
    TENDER_SUBMISSION_DAYS: int = 14
    TENDER_DEPARTMENT: str = "Tender Management"
    LEADERBOARD_LIMIT: int = 100
    TRENDING_WINDOW_HOURS: int = 24
    RECENT_ISSUES_DAYS: int = 7

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def allowed_origins_list(self) -> List[str]:
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

# Global settings instance
settings = Settings()
