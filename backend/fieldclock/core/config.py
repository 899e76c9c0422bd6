from datetime import datetime
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Field Clock"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Database
    DATABASE_URL: str = "postgresql://fieldclock_user:fieldclock_pass@db:5432/fieldclock_db"

    # Security
    SECRET_KEY: str = "your-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours

    # Frontend origin allowed by CORS (in addition to localhost)
    FRONTEND_URL: Optional[str] = None

    # Drive time / distance
    AVERAGE_SPEED_MPH: float = 55.0
    EARTH_RADIUS_MI: float = 3958.8
    ROAD_DISTANCE_FACTOR: float = 1.50  # timesheet table / report recompute
    DRIVE_STOP_ROAD_FACTOR: float = 1.19  # drive-time stop action

    # Rule cutovers (naive, compared against naive record timestamps)
    DRIVE_DISTANCE_CUTOVER: datetime = datetime(2026, 1, 12)
    SITE_HOURS_CUTOVER: datetime = datetime(2025, 10, 26)

    # Quick-log units
    WASHOUT_UNIT_HOURS: float = 0.5
    SHOP_UNIT_HOURS: float = 0.25

    # saveIndividualTimesheet: how close two clock-ins must be to count as the same entry
    SAVE_MATCH_TOLERANCE_SECONDS: int = 60

    # Payroll defaults when neither the record nor the profile carries a rate
    DEFAULT_SITE_RATE: float = 45.0
    DRIVE_RATE_RATIO: float = 0.75

    # API client
    API_URL: str = "http://localhost:8000"
    API_TIMEOUT_SECONDS: float = 15.0
    GEOLOCATION_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
