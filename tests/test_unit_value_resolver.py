"""
Unit tests for field value resolvers.

Tests cover:
- Static resolver search and pagination
- Option cache expiry
- ResolverSession loading, paging, caching and error handling
- Superseded requests never applying their result
"""

import asyncio

import pytest

from rule_builder.core.errors import ResolverError
from rule_builder.domain.catalog import SelectOption
from rule_builder.services.value_resolver import (
    OptionCache,
    OptionPage,
    ResolverSession,
    StaticValueResolver,
    ValueResolver,
    filter_options,
)

COLORS = [
    {"label": "Red", "value": "red"},
    {"label": "Green", "value": "green"},
    {"label": "Blue", "value": "blue"},
    {"label": "Black", "value": "black"},
    {"label": "White", "value": "white"},
]


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingResolver:
    """Resolver that records every call."""

    def __init__(self):
        self.calls: list[tuple[str | None, int]] = []

    async def fetch(self, query=None, page=1):
        self.calls.append((query, page))
        return OptionPage(options=(SelectOption(label=f"call {len(self.calls)}", value=page),))


class GatedResolver:
    """Resolver whose responses are released explicitly by the test."""

    def __init__(self):
        self.gates: dict[str | None, asyncio.Event] = {}

    async def fetch(self, query=None, page=1):
        gate = self.gates.setdefault(query, asyncio.Event())
        await gate.wait()
        return OptionPage(options=(SelectOption(label=str(query), value=query),))


class FailingResolver:
    async def fetch(self, query=None, page=1):
        raise RuntimeError("backend down")


async def _settle():
    for _ in range(3):
        await asyncio.sleep(0)


class TestStaticValueResolver:
    """Tests for the fixed-list resolver."""

    @pytest.mark.anyio
    async def test_paginates(self):
        resolver = StaticValueResolver(COLORS, page_size=2)

        first = await resolver.fetch()
        last = await resolver.fetch(page=3)

        assert [o.value for o in first.options] == ["red", "green"]
        assert first.has_more
        assert [o.value for o in last.options] == ["white"]
        assert not last.has_more

    @pytest.mark.anyio
    async def test_search_is_case_insensitive(self):
        resolver = StaticValueResolver(COLORS)
        page = await resolver.fetch("BL")
        assert [o.value for o in page.options] == ["blue", "black"]

    @pytest.mark.anyio
    async def test_satisfies_protocol(self):
        assert isinstance(StaticValueResolver(COLORS), ValueResolver)


class TestFilterOptions:
    @pytest.mark.anyio
    async def test_matches_label_or_value(self):
        options = [SelectOption(label="United States", value="us")]
        assert filter_options(options, "states") == options
        assert filter_options(options, "US") == options
        assert filter_options(options, "ca") == []
        assert filter_options(options, None) == options


class TestOptionCache:
    """Tests for time-bounded caching."""

    @pytest.mark.anyio
    async def test_entries_expire(self):
        clock = FakeClock()
        cache = OptionCache(ttl_seconds=10, clock=clock)
        page = OptionPage()
        cache.set("k", page)

        clock.now = 9.9
        assert cache.get("k") is page

        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.anyio
    async def test_invalidate_and_clear(self):
        cache = OptionCache()
        cache.set("a", OptionPage())
        cache.set("b", OptionPage())

        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0


class TestResolverSession:
    """Tests for the per-field resolver session."""

    @pytest.mark.anyio
    async def test_load_and_load_more(self):
        session = ResolverSession(StaticValueResolver(COLORS, page_size=2))

        await session.load()
        assert [o.value for o in session.options] == ["red", "green"]
        assert session.has_more
        assert not session.loading

        await session.load_more()
        await session.load_more()
        assert len(session.options) == 5
        assert session.current_page == 3
        assert not session.has_more

        assert await session.load_more() is None

    @pytest.mark.anyio
    async def test_search_replaces_options(self):
        session = ResolverSession(StaticValueResolver(COLORS))
        await session.load()
        await session.search("gr")

        assert [o.value for o in session.options] == ["green"]
        assert session.query == "gr"

    @pytest.mark.anyio
    async def test_first_page_is_cached(self):
        clock = FakeClock()
        resolver = CountingResolver()
        session = ResolverSession(resolver, OptionCache(ttl_seconds=300, clock=clock))

        await session.load()
        await session.load()
        assert len(resolver.calls) == 1

        clock.now = 301
        await session.load()
        assert len(resolver.calls) == 2

    @pytest.mark.anyio
    async def test_searches_are_not_cached(self):
        resolver = CountingResolver()
        session = ResolverSession(resolver)

        await session.search("a")
        await session.search("a")
        assert resolver.calls == [("a", 1), ("a", 1)]

    @pytest.mark.anyio
    async def test_refetch_bypasses_cache(self):
        resolver = CountingResolver()
        session = ResolverSession(resolver)

        await session.load()
        page = await session.refetch()
        assert len(resolver.calls) == 2
        assert session.cache.get(session.cache_key) is page

    @pytest.mark.anyio
    async def test_clear_cache(self):
        resolver = CountingResolver()
        session = ResolverSession(resolver)

        await session.load()
        session.clear_cache()
        await session.load()
        assert len(resolver.calls) == 2

    @pytest.mark.anyio
    async def test_shared_cache_across_sessions(self):
        resolver = CountingResolver()
        cache = OptionCache()

        await ResolverSession(resolver, cache, cache_key="country").load()
        await ResolverSession(resolver, cache, cache_key="country").load()
        assert len(resolver.calls) == 1

    @pytest.mark.anyio
    async def test_error_is_recorded_and_raised(self):
        session = ResolverSession(FailingResolver())

        with pytest.raises(ResolverError) as exc_info:
            await session.load()

        assert session.error == "backend down"
        assert not session.loading
        assert not session.has_more
        assert exc_info.value.details["error"] == "backend down"

    @pytest.mark.anyio
    async def test_superseded_request_is_not_applied(self):
        """A newer search wins even when the older one would finish later."""
        resolver = GatedResolver()
        session = ResolverSession(resolver)

        first = asyncio.create_task(session.search("a"))
        await _settle()
        second = asyncio.create_task(session.search("b"))
        await _settle()

        resolver.gates["b"].set()
        resolver.gates["a"].set()

        assert await first is None
        page = await second
        assert [o.value for o in page.options] == ["b"]
        assert [o.value for o in session.options] == ["b"]
        assert session.query == "b"

    @pytest.mark.anyio
    async def test_close_cancels_in_flight_request(self):
        resolver = GatedResolver()
        session = ResolverSession(resolver)

        pending = asyncio.create_task(session.search("a"))
        await _settle()
        assert session.loading

        await session.close()
        assert await pending is None
        assert session.options == ()
        assert not session.loading

    @pytest.mark.anyio
    async def test_apply_to_catalog(self, catalog):
        session = ResolverSession(
            StaticValueResolver([{"label": "Peru", "value": "pe"}]), cache_key="country"
        )
        await session.load()

        updated = session.apply_to_catalog(catalog, "country")
        assert updated.get("country").option_label("pe") == "Peru"

    @pytest.mark.anyio
    async def test_filtered_uses_last_query(self):
        session = ResolverSession(StaticValueResolver(COLORS))
        await session.load()

        assert [o.value for o in session.filtered("wh")] == ["white"]
        assert len(session.filtered()) == 5
