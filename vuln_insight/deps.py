from functools import lru_cache

from .ai_client import AIClient
from .config import get_settings
from .storage.backends import ResultStore, build_store
from .storage.cache import TTLCache


@lru_cache(maxsize=1)
def get_store() -> ResultStore:
    return build_store(get_settings())


@lru_cache(maxsize=1)
def get_cache() -> TTLCache:
    return TTLCache(default_ttl=get_settings().cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_ai_client() -> AIClient:
    return AIClient(get_settings())
