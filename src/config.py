from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite:///./transport.db"
    DATABASE_ECHO: bool = False

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    SESSION_COOKIE_NAME: str = "session"
    ADMIN_REGISTRATION_SECRET: Optional[str] = None

    # Employee access codes
    EMPLOYEE_CODE_TTL_HOURS: int = 8
    EMPLOYEE_SESSION_HOURS: int = 8

    # Reservations
    CANCELLATION_CUTOFF_HOURS: int = 2
    RESERVATION_HOLD_MINUTES: int = 15

    # Application
    PROJECT_NAME: str = "Bus Transport Booking Platform"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
