from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Get the backend directory (parent of app directory)
BACKEND_DIR = Path(__file__).parent.parent
ENV_FILE = BACKEND_DIR / ".env"

class Settings(BaseSettings):
    # Server settings (non-confidential, can have defaults)
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # Database settings - confidential values from .env
    database_url: Optional[str] = None  # Full SQLAlchemy URL, overrides the db_* fields below (e.g. sqlite:///./library.db)
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str  # Required from .env
    db_user: str  # Required from .env
    db_password: str  # Required from .env (confidential - no default)

    # Database SSL settings
    db_ssl_mode: str = "prefer"  # Options: disable, allow, prefer, require, verify-ca, verify-full
    db_ssl_cert: Optional[str] = None  # Path to client certificate
    db_ssl_key: Optional[str] = None  # Path to client key
    db_ssl_root_cert: Optional[str] = None  # Path to root certificate

    # JWT settings - confidential values from .env
    jwt_secret_key: str  # Required from .env (confidential - no default)
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 1440

    # Circulation policy
    library_timezone: str = "UTC"  # pytz zone name used for loan timestamps
    loan_period_days: int = 14
    max_active_loans: int = 5
    block_borrowing_when_overdue: bool = True  # Refuse new loans while the patron holds an overdue book
    availability_history_size: int = 100  # Events replayed to late stream subscribers

    # MQTT availability bridge - disabled unless a broker is configured
    mqtt_enabled: bool = False
    mqtt_broker: str = "localhost"
    mqtt_port: int = 1883
    mqtt_username: Optional[str] = None  # Optional, from .env if provided
    mqtt_password: Optional[str] = None  # Optional, from .env if provided (confidential)
    mqtt_availability_topic_format: str = "library/books/{book_id}/availability"

    # MQTT TLS/SSL settings - for secured MQTT
    mqtt_use_tls: bool = False  # Enable TLS/SSL for MQTT
    mqtt_tls_insecure: bool = False  # Allow insecure TLS (for self-signed certs, not recommended for production)
    mqtt_ca_cert: Optional[str] = None  # Path to CA certificate file
    mqtt_client_cert: Optional[str] = None  # Path to client certificate file (optional, for mutual TLS)
    mqtt_client_key: Optional[str] = None  # Path to client private key file (optional, for mutual TLS)

    # Bootstrap librarian account, created on first start when the users table is empty
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None  # Confidential
    admin_first_name: str = "Library"
    admin_last_name: str = "Administrator"
    seed_sample_data: bool = False

    class Config:
        env_file = str(ENV_FILE) if ENV_FILE.exists() else ".env"
        case_sensitive = False

settings = Settings()
