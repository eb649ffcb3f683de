"""
Pytest bootstrap: environment must be in place before the app modules import,
because settings and the engine are built at import time.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("MPESA_BASE_URL", "https://gateway.test")
os.environ.setdefault("MPESA_CONSUMER_KEY", "key")
os.environ.setdefault("MPESA_CONSUMER_SECRET", "secret")
os.environ.setdefault("MPESA_SHORTCODE", "174379")
os.environ.setdefault("MPESA_PASSKEY", "passkey")
os.environ.setdefault("MPESA_CALLBACK_BASE_URL", "https://api.example.com")
os.environ["PAYMENT_POLL_DELAY_SECONDS"] = "0"
os.environ["PAYMENT_POLL_MAX_ATTEMPTS"] = "3"
os.environ["PAYMENT_POLL_BACKOFF_SECONDS"] = "2"
os.environ["PAYMENT_POLL_BACKOFF_MAX_SECONDS"] = "60"
