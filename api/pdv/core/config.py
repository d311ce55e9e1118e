from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./pdv.db"
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 480
    log_level: str = "INFO"

    # Defaults for the store settings table.
    currency: str = "MZN"
    currency_symbol: str = "MT"
    tax_rate: Decimal = Decimal("17")
    company_name: str = "Minha Empresa"
    receipt_footer: str = "Thank you for your purchase!"
    low_stock_threshold: int = 5

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
