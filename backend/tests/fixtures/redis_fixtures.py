"""
In-memory stand-in for the redis client used by the preference store.
"""
import redis


class FakeRedis:
    """Just enough of the redis client for the preference store."""

    def __init__(self, store=None, fail=False):
        self.store = store if store is not None else {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("redis down")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value):
        self._check()
        self.store[key] = value

    def delete(self, key):
        self._check()
        self.store.pop(key, None)

    def close(self):
        pass
