"""
Scoped keyed store
Namespaced wrapper over the Django cache with explicit per-entry expiry
"""
from django.core.cache import caches


class ScopedStore:
    """Keys are prefixed with the namespace so scopes never collide"""

    def __init__(self, namespace, timeout=300, cache_alias='default'):
        self.namespace = namespace
        self.timeout = timeout
        self.cache_alias = cache_alias

    @property
    def _cache(self):
        return caches[self.cache_alias]

    def _key(self, key):
        return f"{self.namespace}:{key}"

    def get(self, key, default=None):
        return self._cache.get(self._key(key), default)

    def set(self, key, value, timeout=None):
        self._cache.set(self._key(key), value, self.timeout if timeout is None else timeout)

    def delete(self, key):
        self._cache.delete(self._key(key))

    def get_or_set(self, key, factory, timeout=None):
        value = self.get(key)
        if value is None:
            value = factory()
            self.set(key, value, timeout)
        return value
