from partner_portal.ops.index_repair import find_stale_references
from partner_portal.ops.index_repair import rebuild_entity_indexes
from partner_portal.ops.index_repair import remove_stale_references

__all__ = [
    "find_stale_references",
    "rebuild_entity_indexes",
    "remove_stale_references",
]
