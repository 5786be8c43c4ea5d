from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./crm_access.db"
    JWT_SECRET: str = "crm-access-jwt-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 480
    CORS_ORIGINS: list[str] = ["http://localhost:5000", "http://localhost:5173"]
    # Legacy coarse role that bypasses role-based permissions
    ADMIN_ROLE_MARKER: str = "admin"
    AUTO_CREATE_TABLES: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
