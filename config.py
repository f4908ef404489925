import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # DATABASE
    DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME = os.getenv("DATABASE_NAME", "videotube")

    # AUTH
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", "change-me-access")
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET", "change-me-refresh")
    REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "10"))
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "true")  # False only for local http

    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # MEDIA
    MEDIA_BACKEND = os.getenv("MEDIA_BACKEND", "local")  # "local" or "s3"
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "uploads"))
    TEMP_DIR = os.getenv("TEMP_DIR", os.path.join(os.getcwd(), "tmp"))
    S3_BUCKET = os.getenv("S3_BUCKET")
    S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
    S3_REGION = os.getenv("S3_REGION", "us-east-1")
    S3_PUBLIC_URL = os.getenv("S3_PUBLIC_URL")

    # PAGINATION
    DEFAULT_PAGE = 1
    DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "10"))
    MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
