import asyncio
import math

from partner_portal.metrics import StoreMetrics
from partner_portal.pagination import Page, Paginator


def _resolver(kv):
    async def resolve(entity_id: str):
        record = await kv.hgetall(f"thing:{entity_id}")
        return record.get("id") or None

    return resolve


async def _seed(kv, count: int, *, ordered: bool = True) -> None:
    for i in range(count):
        await kv.hset(f"thing:t{i:02d}", {"id": f"t{i:02d}"})
        if ordered:
            await kv.zadd("things", {f"t{i:02d}": float(i)})
        else:
            await kv.sadd("things", f"t{i:02d}")


def test_ordered_pages_concatenate_to_the_full_listing(kv):
    paginator = Paginator(kv)
    total, size = 7, 3

    async def scenario():
        await _seed(kv, total)
        pages: list[Page] = []
        cursor = 0
        while cursor is not None:
            page = await paginator.paginate_ordered("things", _resolver(kv), cursor=cursor, limit=size)
            pages.append(page)
            cursor = page.next_cursor
        return pages

    pages = asyncio.run(scenario())
    assert len(pages) == math.ceil(total / size)
    assert [item for page in pages for item in page.items] == [f"t{i:02d}" for i in reversed(range(total))]
    assert [page.has_more for page in pages] == [True, True, False]
    assert pages[0].next_cursor == 3


def test_stale_ids_are_dropped_and_counted_without_ending_the_listing(kv):
    metrics = StoreMetrics()
    paginator = Paginator(kv, metrics=metrics)

    async def scenario():
        await _seed(kv, 4)
        await kv.delete("thing:t03", "thing:t02")
        return await paginator.paginate_ordered("things", _resolver(kv), cursor=0, limit=2, with_total=True)

    page = asyncio.run(scenario())
    assert page.items == []
    assert page.has_more is True
    assert page.next_cursor == 2
    assert page.total == 4
    assert metrics.get("stale_index_references_total") == 2


def test_set_pages_follow_the_scan_cursor(kv):
    paginator = Paginator(kv)

    async def scenario():
        await _seed(kv, 5, ordered=False)
        seen: list[str] = []
        cursor = 0
        pages = 0
        while True:
            page = await paginator.paginate_set("things", _resolver(kv), cursor=cursor, limit=2, with_total=True)
            seen.extend(page.items)
            pages += 1
            assert page.total == 5
            if not page.has_more:
                assert page.next_cursor is None
                break
            cursor = page.next_cursor
        return seen, pages

    seen, pages = asyncio.run(scenario())
    assert sorted(seen) == [f"t{i:02d}" for i in range(5)]
    assert pages == 3


def test_limit_is_clamped(kv):
    paginator = Paginator(kv, default_page_size=20, max_page_size=100)
    assert paginator.clamp_limit(None) == 20
    assert paginator.clamp_limit(0) == 20
    assert paginator.clamp_limit(-5) == 20
    assert paginator.clamp_limit(500) == 100
    assert paginator.clamp_limit(7) == 7


def test_page_to_dict_omits_total_unless_requested():
    page = Page(items=[1, 2], next_cursor=None, has_more=False)
    assert page.to_dict(lambda x: x * 10) == {"items": [10, 20], "next_cursor": None, "has_more": False}
    assert Page(items=[], next_cursor=None, has_more=False, total=0).to_dict()["total"] == 0


class _WholeSetScan:
    """Answers SSCAN the way Redis does for small sets: everything in one step."""

    def __init__(self, kv):
        self._kv = kv

    def __getattr__(self, name):
        return getattr(self._kv, name)

    async def sscan(self, key, cursor=0, count=10):
        return 0, sorted(await self._kv.smembers(key))


def test_set_page_keeps_every_id_of_an_oversized_scan_step(kv):
    paginator = Paginator(_WholeSetScan(kv), max_page_size=5)

    async def scenario():
        await _seed(kv, 8, ordered=False)
        return await paginator.paginate_set("things", _resolver(kv), limit=5)

    page = asyncio.run(scenario())
    assert len(page.items) == 8
    assert page.has_more is False
    assert page.next_cursor is None
