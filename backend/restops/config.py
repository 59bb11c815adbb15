# backend/restops/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/restops.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///restops.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    # "text" (Flask default handler) or "json" (structured, one object per line)
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")

    # VAT classes in basis points (2000 bps = 20%)
    VAT_RATES_BPS = {
        "standard": 2000,
        "reduced": 1000,
        "special": 550,
    }
    DEFAULT_VAT_CLASS = "standard"

    # Product categories -> VAT class
    PRODUCT_CATEGORIES = {
        "starters": "reduced",
        "pizzas": "reduced",
        "pastas": "reduced",
        "mains": "reduced",
        "sides": "reduced",
        "desserts": "reduced",
        "soft_drinks": "reduced",
        "alcoholic_drinks": "standard",
        "coffee": "reduced",
        "supplies": "standard",
    }

    # Length of a table booking when no explicit end time is given
    RESERVATION_DURATION_MINUTES = int(os.environ.get("RESERVATION_DURATION_MINUTES", "120"))

    # Front-end dev servers allowed to call the API from the browser
    CORS_ALLOWED_ORIGINS = (
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    )
