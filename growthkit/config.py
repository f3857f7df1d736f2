"""
Configuration management for GrowthKit.
"""
import os
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Signed referral claim tokens
    REFERRAL_TOKEN_SECRET = os.getenv('REFERRAL_TOKEN_SECRET', 'dev-referral-secret-change-in-production')
    REFERRAL_TOKEN_ALGORITHM = os.getenv('REFERRAL_TOKEN_ALGORITHM', 'HS256')
    MASTER_CLAIM_TTL_SECONDS = 7 * 24 * 3600  # 7 days
    REFERRAL_CLAIM_TTL_SECONDS = 5 * 60       # 5 minutes

    # Admin endpoints (invitation generation, batch runs)
    SERVICE_KEY = os.getenv('SERVICE_KEY', '')

    # Upper bound on a single identity resolution
    REQUEST_TIMEOUT_SECONDS = float(os.getenv('REQUEST_TIMEOUT_SECONDS', '10'))

    # Invitations
    INVITATION_CODE_EXPIRY_DAYS = int(os.getenv('INVITATION_CODE_EXPIRY_DAYS', '7'))
    INVITE_BATCH_HOUR = int(os.getenv('INVITE_BATCH_HOUR', '10'))

    # Email verification links
    EMAIL_VERIFY_TOKEN_HOURS = int(os.getenv('EMAIL_VERIFY_TOKEN_HOURS', '24'))

    # Email (SendGrid)
    SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')
    EMAIL_FROM_ADDRESS = os.getenv('EMAIL_FROM_ADDRESS', 'noreply@growthkit.dev')
    EMAIL_FROM_NAME = os.getenv('EMAIL_FROM_NAME', 'GrowthKit')


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///growthkit_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,  # Verify connections before using
    }

    _secret_key = os.getenv('SECRET_KEY', '')
    _referral_secret = os.getenv('REFERRAL_TOKEN_SECRET', '')

    @staticmethod
    def _validate_secret(name: str, value: str) -> str:
        """
        Reject missing, short, or placeholder secrets.

        Raises:
            RuntimeError: If the secret is unsafe for production
        """
        if not value:
            raise RuntimeError(
                f"CRITICAL: {name} environment variable is not set!\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        insecure_patterns = ['dev', 'change', 'default', 'test', 'secret', 'password']
        lower_value = value.lower()
        for pattern in insecure_patterns:
            if pattern in lower_value:
                raise RuntimeError(
                    f"CRITICAL: {name} contains '{pattern}' which suggests it's not secure!"
                )

        if len(value) < 32:
            raise RuntimeError(f"CRITICAL: {name} is too short (minimum 32 characters required)!")

        return value

    @classmethod
    def validate_secrets(cls) -> None:
        cls._validate_secret('SECRET_KEY', cls._secret_key)
        cls._validate_secret('REFERRAL_TOKEN_SECRET', cls._referral_secret)

    SECRET_KEY = _secret_key
    REFERRAL_TOKEN_SECRET = _referral_secret


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    REFERRAL_TOKEN_SECRET = 'testing-referral-secret-0123456789abcdef'
    SERVICE_KEY = 'testing-service-key'
    SENDGRID_API_KEY = None


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    In production, this ensures SECRET_KEY and REFERRAL_TOKEN_SECRET are
    properly configured.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secrets()
