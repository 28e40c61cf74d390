from __future__ import annotations

import logging
from typing import Any

from partner_portal.batch import WriteBatch
from partner_portal.codec import codec_for
from partner_portal.context import StoreContext
from partner_portal.indexes import ENTITY_INDEXES, ENTITY_MODELS
from partner_portal.keys import SEPARATOR

logger = logging.getLogger(__name__)


def _table_for(entity_type: str):
    try:
        return ENTITY_INDEXES[entity_type]
    except KeyError as exc:
        raise ValueError(f"unknown entity type: {entity_type}") from exc


async def _record_ids(ctx: StoreContext, entity_type: str) -> list[str]:
    prefix = ctx.keys.record_prefix(entity_type)
    ids = []
    for key in await ctx.kv.scan_keys(prefix):
        suffix = key[len(prefix) :]
        # child collections share the record prefix
        if not suffix or SEPARATOR in suffix:
            continue
        ids.append(suffix)
    return sorted(ids)


async def rebuild_entity_indexes(ctx: StoreContext, entity_type: str, *, dry_run: bool = False) -> dict[str, Any]:
    """Re-add every index membership implied by the primary records of one entity type.

    Memberships are only added; removing references to records that no longer
    exist is :func:`find_stale_references` plus an explicit cleanup.
    """
    table = _table_for(entity_type)
    codec = codec_for(ENTITY_MODELS[entity_type], table.id_field)
    scanned = 0
    repaired = 0
    skipped: list[str] = []
    failed: list[str] = []
    for entity_id in await _record_ids(ctx, entity_type):
        scanned += 1
        entity = codec.decode(await ctx.kv.hgetall(table.record_key(ctx.keys, entity_id)))
        if entity is None:
            skipped.append(entity_id)
            continue
        deltas = ctx.indexes.diff(table, None, entity)
        if dry_run or not deltas:
            repaired += 1 if deltas else 0
            continue
        batch = WriteBatch(ctx.kv, entity_type=entity_type, entity_id=entity_id, metrics=ctx.metrics)
        result = await batch.apply(deltas).submit()
        if result.ok:
            repaired += 1
        else:
            failed.append(entity_id)
            logger.warning(
                "index_repair_failed entity_type=%s entity_id=%s failed=%s",
                entity_type,
                entity_id,
                [outcome.to_dict() for outcome in result.failed],
            )
    report = {
        "entity_type": entity_type,
        "dry_run": dry_run,
        "scanned": scanned,
        "repaired": repaired,
        "skipped": skipped,
        "failed": failed,
    }
    logger.info(
        "index_repair_done entity_type=%s scanned=%s repaired=%s skipped=%s failed=%s dry_run=%s",
        entity_type,
        scanned,
        repaired,
        len(skipped),
        len(failed),
        dry_run,
    )
    return report


async def find_stale_references(ctx: StoreContext, index_key: str, entity_type: str) -> list[str]:
    """Identifiers held by an index whose primary record is gone."""
    table = _table_for(entity_type)
    kind = await ctx.kv.key_type(index_key)
    if kind == "zset":
        ids = await ctx.kv.zrange(index_key, 0, -1)
    elif kind == "set":
        ids = sorted(await ctx.kv.smembers(index_key))
    elif kind == "none":
        return []
    else:
        raise ValueError(f"{index_key} is a {kind}, not an index")
    stale = []
    for entity_id in ids:
        if not await ctx.kv.exists(table.record_key(ctx.keys, entity_id)):
            stale.append(entity_id)
    return stale


async def remove_stale_references(ctx: StoreContext, index_key: str, entity_type: str) -> list[str]:
    stale = await find_stale_references(ctx, index_key, entity_type)
    if not stale:
        return []
    if await ctx.kv.key_type(index_key) == "zset":
        await ctx.kv.zrem(index_key, *stale)
    else:
        await ctx.kv.srem(index_key, *stale)
    logger.info("stale_references_removed index_key=%s count=%s", index_key, len(stale))
    return stale
