import os
from typing import List
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

class Config:
    # Server Configuration
    PORT = int(os.getenv("PORT", 8080))
    HOST = os.getenv("HOST", "0.0.0.0")

    # CORS Configuration
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173")

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    # Sealing backend
    API_BASE_URL = os.getenv("API_BASE_URL", "https://api.inaltera.es/sionver")
    API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", 30))

    # Registry
    REGISTRY_PAGE_SIZE = int(os.getenv("REGISTRY_PAGE_SIZE", 10))

    # Rate Limiting
    RATE_LIMIT_PER_MINUTE = int(os.getenv("RATE_LIMIT_PER_MINUTE", 60))
    SUBMIT_RATE_LIMIT = os.getenv("SUBMIT_RATE_LIMIT", "20/minute")

    # File Upload Settings
    MAX_FILE_SIZE_MB = int(os.getenv("MAX_FILE_SIZE_MB", 10))

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    # Session store
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dashboard_session.db")
    SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", 24))

    @property
    def database_path(self) -> str:
        return self.DATABASE_URL.replace("sqlite:///", "")

    # Logging Configuration
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE", "dashboard.log")

    def validate(self):
        """Validate configuration"""
        if not self.API_BASE_URL:
            raise ValueError("API_BASE_URL is required. Set it as an environment variable.")

        if not self.API_BASE_URL.startswith("https://"):
            import warnings
            warnings.warn("API_BASE_URL is not HTTPS. Bearer tokens will travel in clear text.")

        if self.REGISTRY_PAGE_SIZE < 1:
            raise ValueError("REGISTRY_PAGE_SIZE must be at least 1.")

config = Config()
