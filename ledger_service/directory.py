"""
User Directory Module

Read-through resolver from a user reference to the display identity shown
in transfer and history responses. Resolution never fails an operation:
anything that goes wrong degrades to the "Unknown" placeholder.
"""

import httpx
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Any, Tuple

from .storage import StorageInterface, StorageRecord

logger = logging.getLogger("ledger.directory")

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Holder:
    """Display identity of an account holder"""
    name: str
    email: str

    @classmethod
    def unknown(cls) -> 'Holder':
        return cls(name=UNKNOWN, email=UNKNOWN)


@dataclass
class User(StorageRecord):
    """Directory entry for a user"""
    name: str
    email: str


class UserDirectory(ABC):
    """Resolves user references to holder identities"""

    @abstractmethod
    def resolve(self, user_id: str) -> Optional[Holder]:
        """Return the holder for a user, or None if the user is unknown"""
        pass

    def safe_resolve(self, user_id: Optional[str]) -> Holder:
        """Resolve with the placeholder fallback; never raises"""
        if not user_id:
            return Holder.unknown()
        try:
            holder = self.resolve(user_id)
        except Exception as e:
            logger.warning(f"User directory lookup failed for {user_id}: {e}")
            return Holder.unknown()
        if holder is None:
            return Holder.unknown()
        return Holder(name=holder.name or UNKNOWN, email=holder.email or UNKNOWN)


class StorageUserDirectory(UserDirectory):
    """Directory backed by the ``users`` table of the ledger's own store"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "users"

    def add_user(self, name: str, email: str, user_id: Optional[str] = None) -> User:
        now = datetime.now(timezone.utc)
        user = User(
            id=user_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            email=email
        )
        self.storage.save(self.table_name, user.id, user.to_dict())
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.storage.load(self.table_name, user_id)
        if data:
            return User.from_dict(data)
        return None

    def resolve(self, user_id: str) -> Optional[Holder]:
        user = self.get_user(user_id)
        if user is None:
            return None
        return Holder(name=user.name, email=user.email)


class HttpUserDirectory(UserDirectory):
    """
    REST client for an external user service: ``GET {base_url}/users/{id}``

    Resolved holders are cached for ``cache_ttl`` seconds, keeping at most
    ``cache_size`` entries (least recently used evicted first).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        api_key: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        cache_ttl: float = 300.0,
        cache_size: int = 1024,
        clock=time.monotonic
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key
        self.cache_ttl = cache_ttl
        self.cache_size = cache_size
        self._clock = clock
        self._client = client or httpx.Client(timeout=timeout)
        self._cache: "OrderedDict[str, Tuple[float, Holder]]" = OrderedDict()
        self._cache_lock = threading.Lock()

    def _cached(self, user_id: str) -> Optional[Holder]:
        with self._cache_lock:
            entry = self._cache.get(user_id)
            if entry is None:
                return None
            expires_at, holder = entry
            if self._clock() >= expires_at:
                del self._cache[user_id]
                return None
            self._cache.move_to_end(user_id)
            return holder

    def _remember(self, user_id: str, holder: Holder) -> None:
        if self.cache_size <= 0 or self.cache_ttl <= 0:
            return
        with self._cache_lock:
            self._cache[user_id] = (self._clock() + self.cache_ttl, holder)
            self._cache.move_to_end(user_id)
            while len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)

    def resolve(self, user_id: str) -> Optional[Holder]:
        holder = self._cached(user_id)
        if holder is not None:
            return holder

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        response = self._client.get(f"{self.base_url}/users/{user_id}", headers=headers)
        if response.status_code == 404:
            return None
        response.raise_for_status()

        data: Dict[str, Any] = response.json()
        holder = Holder(name=data.get("name") or UNKNOWN, email=data.get("email") or UNKNOWN)
        self._remember(user_id, holder)
        return holder

    def close(self):
        """Close the HTTP client"""
        self._client.close()
