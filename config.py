import os
from dotenv import load_dotenv

load_dotenv()


def _split(value: str):
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    # MongoDB Configuration
    MONGO_URI = os.getenv("MONGO_URI")
    MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "exams_db")
    MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", "5000"))

    # Server Configuration
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "3000"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # CORS Configuration
    CORS_ORIGINS = ["*"] if os.getenv("CORS_ORIGINS", "*") == "*" else _split(os.getenv("CORS_ORIGINS", ""))
    CORS_ALLOW_CREDENTIALS = os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"
    CORS_ALLOW_METHODS = ["*"] if os.getenv("CORS_ALLOW_METHODS", "*") == "*" else _split(os.getenv("CORS_ALLOW_METHODS", ""))
    CORS_ALLOW_HEADERS = ["*"] if os.getenv("CORS_ALLOW_HEADERS", "*") == "*" else _split(os.getenv("CORS_ALLOW_HEADERS", ""))

    # Upload Configuration
    UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
    UPLOAD_MAX_BYTES = int(os.getenv("UPLOAD_MAX_BYTES", str(5 * 1024 * 1024)))
    UPLOAD_CONTENT_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

    @classmethod
    def validate(cls):
        """Validate required configuration"""
        if not cls.MONGO_URI:
            raise ValueError("MONGO_URI is required")
        return True

    @classmethod
    def cors_options(cls):
        """Keyword arguments for CORSMiddleware.

        Browsers refuse credentialed responses carrying a wildcard origin, so
        an open origin policy is served without credentials.
        """
        allow_all = "*" in cls.CORS_ORIGINS
        return {
            "allow_origins": ["*"] if allow_all else cls.CORS_ORIGINS,
            "allow_credentials": cls.CORS_ALLOW_CREDENTIALS and not allow_all,
            "allow_methods": cls.CORS_ALLOW_METHODS,
            "allow_headers": cls.CORS_ALLOW_HEADERS,
        }


config = Config()
