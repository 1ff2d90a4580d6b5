from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./relief.db"
    SQL_ECHO: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"

    # Security (tokens are issued by the external auth service)
    SECRET_KEY: str = "your-secret-key-here"
    ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Allocation
    NEED_MATCH_LIMIT: int = 5  # matching NGOs returned for a single need

    # Geocoding (used when persisting event locations)
    GEOCODING_API_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"
    GEOCODING_API_KEY: str = ""
    GEOCODING_TIMEOUT_SECONDS: float = 5.0

    class Config:
        env_file = ".env"

settings = Settings()
