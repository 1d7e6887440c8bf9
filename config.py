"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Auth cookie (value is the username, read by the session gate)
    AUTH_COOKIE_NAME = os.getenv('AUTH_COOKIE_NAME', 'auth-demo')
    AUTH_COOKIE_MAX_AGE = 60 * 60 * 24 * 7  # one week
    AUTH_COOKIE_SECURE = os.getenv('AUTH_COOKIE_SECURE', 'false').lower() == 'true'
    LOGIN_PATH = '/login'

    # Flask's own session cookie only carries flash messages
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'stockroom')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'stockroom')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'stockroom')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Catalog
    COMPANIES = ('saiwin lights', 'prana lights')

    # Bulk import: first data row is spreadsheet row 2 (1-based + header)
    IMPORT_HEADER_ROW_OFFSET = 2
    MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 5 * 1024 * 1024))  # 5MB
    ALLOWED_IMPORT_EXTENSIONS = {'xlsx', 'xls'}

    # Sale + stock writes: one transaction with a compare-and-set on stock.
    # False writes the sale and the stock in two independent commits.
    SALE_ATOMIC_COMMIT = os.getenv('SALE_ATOMIC_COMMIT', 'true').lower() == 'true'


class TestingConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
