"""
Configuration for the NGO Operations Dashboard
"""
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    # Flask
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    PREFERRED_URL_SCHEME = 'http'

    # Backend REST API
    API_BASE_URL = os.environ.get('API_BASE_URL', 'http://localhost:4000/api').rstrip('/')
    API_TIMEOUT = int(os.environ.get('API_TIMEOUT', 30))

    # Lists and exports
    DEFAULT_PAGE_SIZE = 10
    PAGE_SIZE_OPTIONS = (10, 20, 50, 100)
    EXPORT_LIMIT = int(os.environ.get('EXPORT_LIMIT', 10000))

    # Permissions are cached in the session for this many seconds
    PERMISSIONS_CACHE_TTL = int(os.environ.get('PERMISSIONS_CACHE_TTL', 300))

    # Pre-fill the OTP echoed back by a development backend
    SHOW_DEVELOPMENT_OTP = os.environ.get('SHOW_DEVELOPMENT_OTP', 'false').lower() == 'true'

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Security
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = False
    PERMANENT_SESSION_LIFETIME = 3600  # 1 hour
    WTF_CSRF_ENABLED = True
    PROXY_FIX = False

    SERVICE_NAME = 'ngo-dashboard'
    SOFTWARE_NAME = 'NGO Operations Dashboard'

    @staticmethod
    def init_app(app):
        pass


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    SHOW_DEVELOPMENT_OTP = os.environ.get('SHOW_DEVELOPMENT_OTP', 'true').lower() == 'true'


class ProductionConfig(Config):
    PREFERRED_URL_SCHEME = 'https'
    SESSION_COOKIE_SECURE = True
    PROXY_FIX = True

    # Gunicorn
    WORKERS = 2
    TIMEOUT = 120
    KEEP_ALIVE = 5
    MAX_REQUESTS = 1000
    MAX_REQUESTS_JITTER = 50

    @staticmethod
    def init_app(app):
        secret_key = os.environ.get('SECRET_KEY')
        if not secret_key:
            raise ValueError("SECRET_KEY environment variable is required in production")
        app.config['SECRET_KEY'] = secret_key
        app.config['PREFERRED_URL_SCHEME'] = 'https'


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    API_BASE_URL = 'http://backend.test/api'
    WTF_CSRF_ENABLED = False
    SHOW_DEVELOPMENT_OTP = False
    LOG_LEVEL = 'WARNING'


config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
}


def get_config(name=None):
    """Resolve a configuration class from a name or FLASK_ENV"""
    name = name or os.environ.get('FLASK_ENV', 'production')
    return config_by_name.get(name, ProductionConfig)
