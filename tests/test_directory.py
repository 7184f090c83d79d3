"""
Tests for user directory resolution and the "Unknown" fallback
"""

import pytest
import httpx
from unittest.mock import Mock

from ledger_service.storage import InMemoryStorage
from ledger_service.directory import (
    Holder, StorageUserDirectory, HttpUserDirectory, UserDirectory, UNKNOWN
)


class TestHolder:

    def test_unknown_placeholder(self):
        assert Holder.unknown() == Holder(name="Unknown", email="Unknown")


class TestStorageUserDirectory:

    def setup_method(self):
        self.directory = StorageUserDirectory(InMemoryStorage())

    def test_resolve_known_user(self):
        user = self.directory.add_user("Alice Banda", "alice@example.com")
        assert self.directory.resolve(user.id) == Holder("Alice Banda", "alice@example.com")

    def test_resolve_unknown_user(self):
        assert self.directory.resolve("missing") is None
        assert self.directory.safe_resolve("missing") == Holder.unknown()

    def test_safe_resolve_without_reference(self):
        assert self.directory.safe_resolve(None) == Holder.unknown()
        assert self.directory.safe_resolve("") == Holder.unknown()

    def test_blank_fields_fall_back(self):
        self.directory.add_user("", "bob@example.com", user_id="user-b")
        assert self.directory.safe_resolve("user-b") == Holder(UNKNOWN, "bob@example.com")

    def test_get_user(self):
        self.directory.add_user("Alice Banda", "alice@example.com", user_id="user-a")
        user = self.directory.get_user("user-a")
        assert user.name == "Alice Banda"
        assert self.directory.get_user("nope") is None


class TestSafeResolve:

    def test_exception_degrades_to_unknown(self):
        class FailingDirectory(UserDirectory):
            def resolve(self, user_id):
                raise TimeoutError("directory timed out")

        assert FailingDirectory().safe_resolve("user-a") == Holder.unknown()


class TestHttpUserDirectory:

    def _directory(self, handler, **kwargs):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return HttpUserDirectory("http://users.local/", client=client, **kwargs)

    def test_resolve_user(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "user-a", "name": "Alice Banda", "email": "alice@example.com"})

        directory = self._directory(handler, api_key="secret")

        assert directory.resolve("user-a") == Holder("Alice Banda", "alice@example.com")
        assert str(requests[0].url) == "http://users.local/users/user-a"
        assert requests[0].headers["Authorization"] == "Bearer secret"

    def test_results_are_cached(self):
        handler = Mock(return_value=httpx.Response(200, json={"name": "Alice", "email": "a@example.com"}))
        directory = self._directory(handler)

        directory.resolve("user-a")
        directory.resolve("user-a")

        assert handler.call_count == 1

    def test_cached_name_expires(self):
        now = [1000.0]
        names = iter(["Alice", "Alice Banda"])
        handler = Mock(side_effect=lambda request: httpx.Response(
            200, json={"name": next(names), "email": "a@example.com"}))
        directory = self._directory(handler, cache_ttl=60, clock=lambda: now[0])

        assert directory.resolve("user-a").name == "Alice"
        now[0] += 59
        assert directory.resolve("user-a").name == "Alice"
        now[0] += 1
        assert directory.resolve("user-a").name == "Alice Banda"
        assert handler.call_count == 2

    def test_cache_is_bounded(self):
        handler = Mock(side_effect=lambda request: httpx.Response(
            200, json={"name": "Someone", "email": "s@example.com"}))
        directory = self._directory(handler, cache_size=3)

        for i in range(50):
            directory.resolve(f"user-{i}")
        assert len(directory._cache) == 3

        directory.resolve("user-49")
        assert handler.call_count == 50
        directory.resolve("user-0")
        assert handler.call_count == 51

    def test_missing_user(self):
        directory = self._directory(lambda request: httpx.Response(404))
        assert directory.resolve("user-x") is None
        assert directory.safe_resolve("user-x") == Holder.unknown()

    def test_server_error_raises_but_safe_resolve_falls_back(self):
        directory = self._directory(lambda request: httpx.Response(500))

        with pytest.raises(httpx.HTTPStatusError):
            directory.resolve("user-a")
        assert directory.safe_resolve("user-a") == Holder.unknown()

    def test_connection_failure_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        directory = self._directory(handler)
        assert directory.safe_resolve("user-a") == Holder.unknown()

    def test_close(self):
        client = Mock()
        HttpUserDirectory("http://users.local", client=client).close()
        client.close.assert_called_once()
