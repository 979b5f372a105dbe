"""
Field value resolvers.

A resolver supplies select options for a field asynchronously, page by page,
optionally filtered by a search query. ``ResolverSession`` drives one resolver
for one field:
- first-page, non-search results are cached for a configurable time
- a newer request cancels the in-flight one
- results of a superseded request are never applied
- fetch failures are kept in ``error`` and re-raised as ResolverError

The engine never calls resolvers itself; only the resolved option list reaches
the validator and the compiler, through ``FieldCatalog.with_options``.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from rule_builder.core.config import settings
from rule_builder.core.errors import ResolverError
from rule_builder.domain.catalog import FieldCatalog, SelectOption

logger = logging.getLogger(__name__)


class OptionPage(BaseModel):
    """One page of resolved options."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    options: tuple[SelectOption, ...] = ()
    has_more: bool = False


@runtime_checkable
class ValueResolver(Protocol):
    """Asynchronous option source for one field."""

    async def fetch(self, query: str | None = None, page: int = 1) -> OptionPage: ...


def filter_options(options: Iterable[SelectOption], query: str | None) -> list[SelectOption]:
    """Options whose label or value contains ``query`` (case-insensitive)."""
    if not query:
        return list(options)
    needle = query.lower()
    return [
        option
        for option in options
        if needle in str(option.label).lower()
        or (option.value is not None and needle in str(option.value).lower())
    ]


class StaticValueResolver:
    """Resolver over a fixed option list, with search and pagination."""

    def __init__(
        self,
        options: Iterable[SelectOption | Mapping[str, Any]],
        page_size: int | None = None,
    ):
        self.options = tuple(SelectOption.model_validate(option) for option in options)
        self.page_size = page_size or settings.resolver_page_size

    async def fetch(self, query: str | None = None, page: int = 1) -> OptionPage:
        matches = filter_options(self.options, query)
        start = (max(page, 1) - 1) * self.page_size
        end = start + self.page_size
        return OptionPage(options=tuple(matches[start:end]), has_more=end < len(matches))


class OptionCache:
    """
    Time-bounded cache of first-page, non-search results.

    Args:
        ttl_seconds: Entry lifetime (defaults to settings.resolver_cache_seconds)
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.resolver_cache_seconds
        )
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, OptionPage]] = {}

    def get(self, key: Hashable) -> OptionPage | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, page = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return page

    def set(self, key: Hashable, page: OptionPage) -> None:
        self._entries[key] = (self._clock(), page)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ResolverSession:
    """
    Drives one resolver and holds its latest applied state.

    Args:
        resolver: Option source
        cache: Shared cache (a private one is created when omitted)
        cache_key: Cache entry key (defaults to the resolver itself)
    """

    def __init__(
        self,
        resolver: ValueResolver,
        cache: OptionCache | None = None,
        *,
        cache_key: Hashable | None = None,
    ):
        self.resolver = resolver
        self.cache = cache if cache is not None else OptionCache()
        self.cache_key = cache_key if cache_key is not None else resolver

        self.options: tuple[SelectOption, ...] = ()
        self.has_more = False
        self.current_page = 1
        self.loading = False
        self.error: str | None = None
        self.query: str | None = None

        self._generation = 0
        self._task: asyncio.Task | None = None

    async def load(self, query: str | None = None) -> OptionPage | None:
        """
        Fetch the first page for ``query`` and replace the current options.

        Returns:
            The applied page, or None when a newer request superseded this one

        Raises:
            ResolverError: If the resolver fails
        """
        return await self._fetch(page=1, query=query or None, append=False, use_cache=True)

    async def search(self, query: str) -> OptionPage | None:
        """Search the resolver; an empty query reloads the unfiltered options."""
        return await self.load(query)

    async def load_more(self) -> OptionPage | None:
        """Append the next page when more options exist and nothing is loading."""
        if not self.has_more or self.loading:
            return None
        return await self._fetch(
            page=self.current_page + 1, query=self.query, append=True, use_cache=False
        )

    async def refetch(self) -> OptionPage | None:
        """Reload the unfiltered first page, bypassing and refreshing the cache."""
        return await self._fetch(page=1, query=None, append=False, use_cache=False)

    def clear_cache(self) -> None:
        self.cache.invalidate(self.cache_key)

    async def close(self) -> None:
        """Cancel any in-flight request; its result will never be applied."""
        self._generation += 1
        task = self._task
        self._task = None
        self.loading = False
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.debug("Cancelled resolver request failed during shutdown", exc_info=True)

    def filtered(self, query: str | None = None) -> list[SelectOption]:
        """Current options filtered locally by ``query`` (or the last search query)."""
        return filter_options(self.options, query if query is not None else self.query)

    def apply_to_catalog(self, catalog: FieldCatalog, field_name: str) -> FieldCatalog:
        """Catalog in which ``field_name`` carries the currently resolved options."""
        return catalog.with_options(field_name, self.options)

    def _supersede(self) -> int:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return self._generation

    async def _fetch(
        self, *, page: int, query: str | None, append: bool, use_cache: bool
    ) -> OptionPage | None:
        generation = self._supersede()
        cacheable = page == 1 and not append and query is None

        if cacheable and use_cache:
            cached = self.cache.get(self.cache_key)
            if cached is not None:
                logger.debug("Resolver cache hit for %s", self.cache_key)
                self._apply(cached, page=1, query=None, append=False)
                return cached

        self.loading = True
        self.error = None
        task = asyncio.create_task(self.resolver.fetch(query, page))
        self._task = task

        try:
            result = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                return None
            raise
        except Exception as e:
            if generation != self._generation:
                return None
            self.loading = False
            self.has_more = False
            self.error = str(e) or "Failed to fetch options"
            logger.warning("Resolver fetch failed (page=%d, query=%s): %s", page, query, e)
            raise ResolverError(
                "Failed to fetch field options",
                details={"page": page, "query": query, "error": str(e)},
            ) from e
        finally:
            if self._task is task:
                self._task = None

        if generation != self._generation:
            return None

        option_page = result if isinstance(result, OptionPage) else OptionPage.model_validate(result)
        self._apply(option_page, page=page, query=query, append=append)
        if cacheable:
            self.cache.set(self.cache_key, option_page)
        return option_page

    def _apply(self, page_result: OptionPage, *, page: int, query: str | None, append: bool) -> None:
        self.options = (*self.options, *page_result.options) if append else page_result.options
        self.has_more = page_result.has_more
        self.current_page = page
        self.query = query
        self.loading = False
        self.error = None
