import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "default-secret")
    FLASK_ENV = os.getenv("FLASK_ENV", "development")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///student_perks.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "jwt-secret")
    JWT_ACCESS_TOKEN_EXPIRES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_HOURS", 24)) * 3600

    # Mail Configuration
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.zoho.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", 587))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "True").lower() in ("true", "1", "yes")
    MAIL_USE_SSL = os.getenv("MAIL_USE_SSL", "False").lower() in ("true", "1", "yes")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = (
        os.getenv("MAIL_SENDER_NAME", "Student Perks"),
        os.getenv("MAIL_SENDER_ADDRESS", "no-reply@studentperks.uz"),
    )

    # Background jobs
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    DRAMATIQ_TEST_MODE = os.getenv("DRAMATIQ_TEST_MODE", "false").lower() in ("true", "1", "yes")

    # Discounts
    # clock used for time-of-day and weekday windows
    DISCOUNT_TIMEZONE = os.getenv("DISCOUNT_TIMEZONE", "UTC")
    CLAIM_EXPIRY_HOURS = int(os.getenv("CLAIM_EXPIRY_HOURS", 24))

    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-secret-key-for-testing-only-0123456789"
    SECRET_KEY = "test-secret"
    MAIL_SUPPRESS_SEND = True
    DRAMATIQ_TEST_MODE = True
    LOG_LEVEL = "DEBUG"
