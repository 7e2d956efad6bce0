import os
from typing import List, Literal
from dotenv import load_dotenv
import logging


logger = logging.getLogger(__name__)

# Load environment variables from .env file located in the backend directory.
# Environment variables explicitly set (e.g., by Docker Compose) take precedence.
BASE_DIR = os.path.dirname(os.path.dirname(__file__))
ENV_PATH = os.path.join(BASE_DIR, '.env')
load_dotenv(ENV_PATH)


def parse_cors(value: str) -> List[str]:
    """
    Parses CORS origins. Accepts comma-separated string or list-like string.
    Example: "http://localhost,http://127.0.0.1" → ["http://localhost", "http://127.0.0.1"]
    If the value is empty, a default list of common development origins is provided.
    """
    if not value:
        return [
            "http://localhost:5173",  # Vite dev server
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ]
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("[") and value.endswith("]"):
            return [i.strip().strip('"').strip("'") for i in value[1:-1].split(",")]
        return [i.strip() for i in value.split(",")]
    raise ValueError("Invalid CORS format")


class Settings:
    # --- General Environment Settings ---
    DOMAIN: str = os.getenv('DOMAIN', 'localhost')
    # ENVIRONMENT determines application behavior (e.g., SQL echo, debug modes).
    ENVIRONMENT: Literal["local", "staging",
                         "production"] = os.getenv('ENVIRONMENT', 'local')
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')

    # --- PostgreSQL Database Configuration ---
    POSTGRES_USER: str = os.getenv('POSTGRES_USER', 'aquaticpose')
    POSTGRES_PASSWORD: str = os.getenv('POSTGRES_PASSWORD', 'aquaticpose_password')
    POSTGRES_SERVER: str = os.getenv('POSTGRES_SERVER', 'postgres')
    POSTGRES_PORT: int = int(os.getenv('POSTGRES_PORT', 5432))
    POSTGRES_DB: str = os.getenv('POSTGRES_DB', 'aquaticpose_db')

    # Full database URL. Takes precedence over the individual components when set.
    POSTGRES_DB_URL: str = os.getenv('POSTGRES_DB_URL', "")

    # --- Catalog Settings ---
    CATEGORY_NAME_MAX_LENGTH: int = int(os.getenv('CATEGORY_NAME_MAX_LENGTH', 100))
    CATEGORY_DESCRIPTION_MAX_LENGTH: int = int(
        os.getenv('CATEGORY_DESCRIPTION_MAX_LENGTH', 500))
    # Deepest nesting accepted before a hierarchy is reported as corrupt.
    CATEGORY_TREE_MAX_DEPTH: int = int(os.getenv('CATEGORY_TREE_MAX_DEPTH', 32))
    SLUG_MAX_ATTEMPTS: int = int(os.getenv('SLUG_MAX_ATTEMPTS', 50))

    # --- Promotion Settings ---
    # Order value used to express fixed-amount discounts as a percentage when
    # ranking promotions for badges. Approximation only.
    PROMOTION_REFERENCE_ORDER_VALUE: float = float(
        os.getenv('PROMOTION_REFERENCE_ORDER_VALUE', 1000000))
    DEFAULT_SHIPPING_FEE: float = float(os.getenv('DEFAULT_SHIPPING_FEE', 30000))

    # --- CORS Configuration ---
    RAW_CORS_ORIGINS: str = os.getenv('BACKEND_CORS_ORIGINS', '')
    BACKEND_CORS_ORIGINS: List[str] = parse_cors(RAW_CORS_ORIGINS)

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """
        Constructs the SQLAlchemy database URI.
        Prioritizes a full URL (POSTGRES_DB_URL) over individual components.
        """
        if self.POSTGRES_DB_URL:
            return self.POSTGRES_DB_URL

        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


# Instantiate the settings object to be used throughout the application
settings = Settings()
