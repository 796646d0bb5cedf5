from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings class to retrieve environment variables.
    """

    API_VERSION: str = "v1"
    API_BASE_URL: str = "http://localhost:3000"     # storefront origin serving /api/cart and /api/coupon
    REQUEST_TIMEOUT: float = 10.0

    # Guest cart persistence
    GUEST_DATABASE_URL: str = "sqlite+aiosqlite:///./guest_cart.db"
    GUEST_COUPON_KEY: str = "guest_coupon"

    # Drop responses superseded by a newer request for the same line item
    REQUEST_SEQUENCING: bool = True

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

    model_config = SettingsConfigDict(
        env_file='.env',
        extra='ignore',
    )


Config = Settings()
