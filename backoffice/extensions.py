# backoffice/extensions.py
import os

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# ======================
# Database
# ======================
db = SQLAlchemy()
migrate = Migrate()

# ======================
# Rate Limiter
# ======================
# Prefer Redis in production, fall back to in-memory locally.
_limiter_storage = (
    os.getenv("LIMITER_STORAGE_URL")
    or os.getenv("REDIS_URL")
    or "memory://"
)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],              # No global limits by default
    storage_uri=_limiter_storage,
)
