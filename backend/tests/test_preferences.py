"""
Tests for preferences.py - recent searches and theme flag.
"""
import pytest

from screener.services import preferences

from tests.fixtures.redis_fixtures import FakeRedis


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(preferences, "_get_sync_redis", lambda: fake)
    return fake


class TestSearchHistory:

    def test_most_recent_first(self, fake_redis):
        preferences.add_to_history("Acme")
        preferences.add_to_history("Globex")
        assert preferences.get_search_history() == ["Globex", "Acme"]

    def test_case_insensitive_dedupe(self, fake_redis):
        preferences.add_to_history("Acme")
        preferences.add_to_history("Globex")
        history = preferences.add_to_history("ACME")
        assert history == ["ACME", "Globex"]

    def test_bounded(self, fake_redis, monkeypatch):
        monkeypatch.setattr(preferences.settings, "SEARCH_HISTORY_MAX_ITEMS", 5)
        for i in range(8):
            preferences.add_to_history(f"company {i}")
        history = preferences.get_search_history()
        assert len(history) == 5
        assert history[0] == "company 7"

    def test_blank_query_is_not_recorded(self, fake_redis):
        preferences.add_to_history("   ")
        assert preferences.get_search_history() == []

    def test_scoped_per_client(self, fake_redis):
        preferences.add_to_history("Acme", client_id="browser-a")
        assert preferences.get_search_history("browser-b") == []
        assert preferences.get_search_history("browser-a") == ["Acme"]

    def test_clear(self, fake_redis):
        preferences.add_to_history("Acme")
        preferences.clear_history()
        assert preferences.get_search_history() == []

    def test_corrupt_history_reads_as_empty(self, fake_redis):
        fake_redis.store["prefs:default:kyc-app-search-history"] = "{not json"
        assert preferences.get_search_history() == []

    def test_redis_failure_degrades(self, monkeypatch):
        monkeypatch.setattr(preferences, "_get_sync_redis", lambda: FakeRedis(fail=True))
        assert preferences.get_search_history() == []
        assert preferences.add_to_history("Acme") == ["Acme"]
        preferences.clear_history()


class TestTheme:

    def test_default_is_light(self, fake_redis):
        assert preferences.get_theme() == "light"

    def test_set_and_get(self, fake_redis):
        assert preferences.set_theme("dark") == "dark"
        assert preferences.get_theme() == "dark"

    def test_unknown_theme_rejected(self, fake_redis):
        with pytest.raises(ValueError):
            preferences.set_theme("sepia")

    def test_redis_failure_gives_default(self, monkeypatch):
        monkeypatch.setattr(preferences, "_get_sync_redis", lambda: FakeRedis(fail=True))
        assert preferences.get_theme() == "light"
