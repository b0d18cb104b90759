from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from urllib.parse import quote_plus


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="starledger/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Star Ledger API"
    PROJECT_NAME: str = "Star Ledger"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = ""
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = ""
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = ""
    POSTGRES_SCHEMA: str = "stars"

    # Overrides the POSTGRES_* pieces when set (e.g. sqlite:// for local runs)
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Security
    SECRET_KEY: str = "dev-secret-change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Device identifier cookie
    DID_COOKIE_NAME: str = "__host_sd"
    DID_COOKIE_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 365 * 2  # 2 years
    DID_SIGNING_SECRET: str = "dev-signing-secret-change-me"

    # Internal callers (/stars/add). 미설정 시 해당 엔드포인트 비활성
    INTERNAL_AUTH_HEADER: str = "X-Internal-Key"
    INTERNAL_API_KEY: Optional[str] = None

    # Refill policy
    ANON_DAILY_GRANT: int = 5  # 비로그인 일일 지급량 (= 비로그인 refill cap)
    AUTH_REFILL_CAP: int = 15  # 로그인 사용자 자동 충전 상한
    AUTH_REFILL_INTERVAL_MINUTES: int = 120  # 1 star per interval
    DAILY_RESET_UTC_OFFSET_HOURS: int = 7  # 일일 리셋 기준 타임존 (UTC+7)
    PRESERVE_BONUS_ON_DAILY_RESET: bool = True  # False면 리셋 시 grant로 덮어씀

    # Spend gate
    READING_COST_STARS: int = 2

    # Virality awards
    SHARE_AWARD_STARS: int = 1
    SHARE_OWNER_DAILY_CAP: int = 5
    SHARE_VISITOR_DAILY_CAP: int = 1
    REFERRAL_BONUS_STARS: int = 5
    REFERRAL_CODE_LENGTH: int = 8

    # CORS
    ALLOWED_ORIGINS: list[str] = ["*"]


settings = Settings()
