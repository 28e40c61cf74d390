from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from partner_portal.cache import CacheLayer
from partner_portal.config import PortalSettings
from partner_portal.indexes import IndexMaintainer
from partner_portal.keys import KeySpace
from partner_portal.metrics import StoreMetrics
from partner_portal.pagination import Paginator


@dataclass(frozen=True)
class StoreContext:
    """Everything a repository needs, built once around one store client."""

    kv: Any
    keys: KeySpace
    settings: PortalSettings
    metrics: StoreMetrics
    indexes: IndexMaintainer
    paginator: Paginator
    cache: CacheLayer

    @classmethod
    def build(
        cls,
        kv: Any,
        settings: PortalSettings | None = None,
        *,
        metrics: StoreMetrics | None = None,
    ) -> "StoreContext":
        settings = settings or PortalSettings()
        metrics = metrics or StoreMetrics()
        keys = KeySpace(settings.key_prefix)
        return cls(
            kv=kv,
            keys=keys,
            settings=settings,
            metrics=metrics,
            indexes=IndexMaintainer(keys),
            paginator=Paginator(
                kv,
                default_page_size=settings.default_page_size,
                max_page_size=settings.max_page_size,
                metrics=metrics,
            ),
            cache=CacheLayer(kv, metrics=metrics),
        )
