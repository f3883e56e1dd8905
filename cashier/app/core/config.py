from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Collaborator services
    SALES_API_URL: str = "http://127.0.0.1:9000"
    DISCOUNTS_API_URL: str = "http://127.0.0.1:9002"
    PROMOTIONS_API_URL: str = "http://127.0.0.1:9002"
    PRODUCTS_API_URL: str = "http://127.0.0.1:8001"
    AUTH_API_URL: str = "http://127.0.0.1:4000"
    HTTP_TIMEOUT: float = 10.0

    # CORS origins — comma-separated list
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    # Checkout rules
    DEFAULT_MAX_QUANTITY: int = 999
    MIN_PIN_LENGTH: int = 4
    REFUND_WINDOW_MINUTES: int = 30
    SESSION_IDLE_MINUTES: int = 480
    CURRENCY_SYMBOL: str = "₱"

    LOG_LEVEL: str = "INFO"


settings = Settings()
