# config/settings_test.py
# Ajustes para pytest: BD SQLite en fichero (los tests con hilos necesitan
# una BD real compartida) en modo IMMEDIATE, que serializa las escrituras.
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///test-ledger.sqlite3")

from .settings import *  # noqa: E402,F401,F403

DEBUG = False
SECURE_SSL_REDIRECT = False
ALLOWED_HOSTS = ["testserver", "localhost"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test-ledger.sqlite3",
        "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 20},
        "TEST": {"NAME": BASE_DIR / "test-ledger-pytest.sqlite3"},
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

LEDGER_TRANSACTION_MAX_ATTEMPTS = 3
LEDGER_TRANSACTION_RETRY_DELAY = 0.01
