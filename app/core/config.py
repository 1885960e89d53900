from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "One-Hour Services Booking API"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Redis (rate limits, catalog cache, processed webhook events)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE: int = 300
    DEFAULT_CURRENCY: str = "usd"

    # Email
    EMAIL_PROVIDER: str = "sendgrid"
    SENDGRID_API_KEY: str = ""
    RESEND_API_KEY: str = ""
    FROM_EMAIL: str = "noreply@yourdomain.com"
    FROM_NAME: str = "One-Hour Services"
    ADMIN_EMAIL: str = "admin@yourdomain.com"

    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""

    # CRM
    CRM_PROVIDER: str = "hubspot"
    HUBSPOT_API_KEY: str = ""
    SALESFORCE_CLIENT_ID: str = ""
    SALESFORCE_CLIENT_SECRET: str = ""
    SALESFORCE_USERNAME: str = ""
    SALESFORCE_PASSWORD: str = ""
    SALESFORCE_SECURITY_TOKEN: str = ""
    PIPEDRIVE_API_TOKEN: str = ""

    # Rate limiting
    RATE_LIMIT_MAX_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: int = 60 * 15

    # Service catalog
    SERVICES_CATALOG_PATH: str = "data/services.json"
    SERVICES_CACHE_TTL: int = 60 * 60

    # Celery (notification jobs); broker and backend fall back to REDIS_URL
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # Security
    ADMIN_API_TOKEN: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
