
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Mealticket API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Bearer tokens issued by the identity provider (shared secret)
    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Meal tickets
    TICKET_SECRET_KEY: str = "change-this-ticket-secret"
    TICKET_ISSUER: str = "isetcom-restaurant"
    TICKET_AUDIENCE: str = "restaurant-entry"
    TICKET_TTL_MINUTES: int = 120

    # Reservation rules
    CANCEL_LEAD_TIME_MINUTES: int = 120
    # Optional per-reservation cap; unset means only slot capacity bounds a request
    MAX_UNITS_PER_RESERVATION: Optional[int] = None
    TX_MAX_RETRIES: int = 3

    # Default daily schedule used by POST /admin/time-slots/generate
    SLOT_DAY_START: str = "11:40"
    SLOT_DAY_END: str = "14:00"
    SLOT_LENGTH_MINUTES: int = 20
    SLOT_DEFAULT_CAPACITY: int = 30
    SLOT_DEFAULT_PRICE: Decimal = Decimal("8.50")
    SLOT_TIMEZONE: str = "Africa/Tunis"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "mealticket"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
