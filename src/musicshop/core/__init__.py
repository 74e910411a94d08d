from musicshop.core.config import settings
from musicshop.core.database import Base, async_session_maker, engine, get_db, unit_of_work
from musicshop.core.redis import close_redis, get_redis
from musicshop.core.security import create_access_token, decode_access_token

__all__ = [
    "settings",
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "unit_of_work",
    "get_redis",
    "close_redis",
    "create_access_token",
    "decode_access_token",
]
