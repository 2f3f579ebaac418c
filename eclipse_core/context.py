"""
Runtime Context - Everything a tool call needs, built once at startup.

    ctx = CoreContext.create(load_settings())
    ctx.profile          # "my-api"
    ctx.profile_store    # profiles/my-api/memory.db
    ctx.global_store     # profiles/global/memory.db

When the resolved profile *is* "global", both names point at the same
Storage object, so nothing is opened twice.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from eclipse_core.cache import MemoryCache
from eclipse_core.config import Settings, load_settings
from eclipse_core.embeddings import EmbeddingService
from eclipse_core.errors import InvalidOperation, MemoryNotFound
from eclipse_core.models import Memory, Scope
from eclipse_core.profile import GLOBAL_PROFILE, resolve_profile
from eclipse_core.storage import Storage
from eclipse_core.usage import UsageRecorder

logger = logging.getLogger("eclipse_core.context")

DB_FILENAME = "memory.db"


def profile_db_path(settings: Settings, profile: str) -> Path:
    return settings.profiles_dir / profile / DB_FILENAME


@dataclass
class CoreContext:
    settings: Settings
    profile: str
    profile_store: Storage
    global_store: Storage
    cache: MemoryCache
    embedder: EmbeddingService
    usage: UsageRecorder

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        loader: Optional[Callable] = None,
    ) -> "CoreContext":
        """Resolve the profile, open the stores, wire the cache.

        Args:
            settings: Defaults to load_settings().
            loader: Embedding model loader (tests pass a fake one).

        Raises:
            OSError / sqlite3.Error if a store can't be opened.
        """
        settings = settings or load_settings()
        profile = resolve_profile(settings.profile_override, settings.working_dir)

        cache = MemoryCache()
        global_store = Storage(profile_db_path(settings, GLOBAL_PROFILE), scope=Scope.GLOBAL.value)
        global_store.add_listener(cache)

        if profile == GLOBAL_PROFILE:
            profile_store = global_store
        else:
            profile_store = Storage(profile_db_path(settings, profile), scope=Scope.PROFILE.value)
            profile_store.add_listener(cache)

        embedder = EmbeddingService(
            model_name=settings.embedding_model,
            cache_dir=settings.model_cache_dir,
            max_attempts=settings.embedding_max_attempts,
            retry_delay=settings.embedding_retry_delay,
            max_chars=settings.embedding_max_chars,
            loader=loader,
        )

        logger.info(f"Profile: {profile} ({profile_store.db_path})")
        return cls(
            settings=settings,
            profile=profile,
            profile_store=profile_store,
            global_store=global_store,
            cache=cache,
            embedder=embedder,
            usage=UsageRecorder(profile_store),
        )

    @property
    def is_global_profile(self) -> bool:
        return self.profile_store is self.global_store

    def stores_for(self, scope: str = Scope.ALL.value) -> list[Storage]:
        """The distinct stores a scope covers (profile first)."""
        if scope == Scope.PROFILE.value:
            return [self.profile_store]
        if scope == Scope.GLOBAL.value:
            return [self.global_store]
        if scope == Scope.ALL.value:
            return self.all_stores()
        raise InvalidOperation(f"Unknown scope: {scope}")

    def all_stores(self) -> list[Storage]:
        if self.is_global_profile:
            return [self.profile_store]
        return [self.profile_store, self.global_store]

    def store_for_write(self, scope: str) -> Storage:
        if scope == Scope.GLOBAL.value:
            return self.global_store
        if scope == Scope.PROFILE.value:
            return self.profile_store
        raise InvalidOperation(f"Memories are saved to 'profile' or 'global', not '{scope}'")

    def locate(self, ref: str) -> tuple[Memory, Storage]:
        """Find a memory by full or short id in any store.

        Raises:
            MemoryNotFound
        """
        for store in self.all_stores():
            memory = store.find_memory(ref)
            if memory is not None:
                return memory, store
        raise MemoryNotFound(ref)

    def close(self) -> None:
        for store in self.all_stores():
            store.close()
