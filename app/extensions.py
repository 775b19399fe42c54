from flask_sqlalchemy import SQLAlchemy
from flask_restful import Api
from flask_marshmallow import Marshmallow
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from app.core.logger import logger
import redis
import os

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
api = Api()
ma = Marshmallow()
migrate = Migrate()
jwt = JWTManager()
try:
    redis_client = redis.StrictRedis(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", 6379)),
        db=int(os.getenv("REDIS_DB", 0)),
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
    )
    redis_client.ping()
    logger.info("Redis connection established successfully")
except redis.RedisError as e:
    logger.error(f"Failed to connect to Redis: {str(e)}")
    # Other code checks for None before using Redis
    redis_client = None
    logger.warning("Application will run with reduced functionality")

# Create the limiter instance without initializing it
limiter = Limiter(
    key_func=get_remote_address,
    strategy=os.getenv("LIMITER_STRATEGY", "moving-window"),
    default_limits=os.getenv("LIMITER_DEFAULT_LIMITS", "60 per minute").split(","),
)


def init_limiter(app):
    """Initialize the limiter with the Flask app"""
    if redis_client is not None and not app.config.get("RATELIMIT_STORAGE_URI"):
        kwargs = redis_client.connection_pool.connection_kwargs
        app.config["RATELIMIT_STORAGE_URI"] = (
            f"redis://{kwargs['host']}:{kwargs['port']}/{kwargs['db']}"
        )
        logger.info("Rate limiter using Redis storage")
    else:
        if not app.config.get("RATELIMIT_STORAGE_URI"):
            app.config["RATELIMIT_STORAGE_URI"] = "memory://"
        logger.warning(
            f"Rate limiter using storage: {app.config['RATELIMIT_STORAGE_URI']}"
        )
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)
    app.config.setdefault("RATELIMIT_IN_MEMORY_FALLBACK_ENABLED", True)
    limiter.init_app(app)
    logger.info(
        f"Flask-Limiter initialized, enabled: {app.config.get('RATELIMIT_ENABLED', True)}"
    )
