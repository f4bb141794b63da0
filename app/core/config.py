from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # DB
    DATABASE_URL: str = "sqlite:///./database.db"

    # Discount engine switches
    DISCOUNTS_ENABLED: bool = True
    APPLY_TO_SALE_PRODUCTS: bool = False
    CURRENCY_DECIMALS: int = 2

    # Cart fee labelling
    SHOW_CART_DISCOUNT_LABEL: bool = True
    CART_DISCOUNT_LABEL: str = "Discount"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
