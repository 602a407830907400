"""Application-wide extension instances."""

from flask_caching import Cache
from flask_compress import Compress
from flask_login import LoginManager
from flask_migrate import Migrate

# SimpleCache in a single process, RedisCache when REDIS_URL is set.
cache = Cache()

# Compression for JSON responses (Brotli and Gzip)
compress = Compress()

login_manager = LoginManager()
migrate = Migrate()

__all__ = ["cache", "compress", "login_manager", "migrate"]
