"""
Single place for deployment configuration.
Every value can be overridden by an environment variable of the same name.
Game rule constants live in backend.engine.
"""
import os

# Deck used when a create/join request names none (id from data/decks.json).
DEFAULT_DECK_ID = os.environ.get("DEFAULT_DECK_ID", "grass_starter")

# How many times submit_action re-runs load-validate-write after losing a compare-and-swap race.
MAX_SUBMIT_RETRIES = int(os.environ.get("MAX_SUBMIT_RETRIES", "10"))

# Comma-separated list of allowed browser origins.
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if o.strip()
]

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# JWT signing key. Set in every real deployment.
JWT_SECRET = os.environ.get("JWT_SECRET", "change-me-in-production-use-env")
ACCESS_TOKEN_EXPIRE_DAYS = int(os.environ.get("ACCESS_TOKEN_EXPIRE_DAYS", "30"))

# Lower rounds = faster register/login; tests drop this to 4.
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "10"))
