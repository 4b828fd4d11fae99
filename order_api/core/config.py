import os
from decimal import Decimal

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./orders.db")

# Heroku/Azure style URLs are not accepted by SQLAlchemy
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Order pricing
TAX_RATE = Decimal(os.getenv("ORDER_TAX_RATE", "0.18"))
CURRENCY_PLACES = int(os.getenv("ORDER_CURRENCY_PLACES", "2"))

# Optimistic locking on product stock
STOCK_UPDATE_MAX_RETRIES = int(os.getenv("STOCK_UPDATE_MAX_RETRIES", "3"))
STOCK_RETRY_BACKOFF_SECONDS = float(os.getenv("STOCK_RETRY_BACKOFF_SECONDS", "0.01"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
