"""Best-effort multi-command writes.

A :class:`WriteBatch` queues the primary-record command followed by its
index deltas and submits them in one pipelined round trip. The store applies
them in submission order but not atomically, so the outcome of every command
is returned in a :class:`BatchResult` rather than collapsed into one flag.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from partner_portal.errors import KVCommandError, PartialWriteFailure, StoreUnavailable
from partner_portal.indexes import IndexDelta
from partner_portal.kv_backend import Command
from partner_portal.metrics import StoreMetrics

logger = logging.getLogger(__name__)

OK = "ok"
ERROR = "error"
UNKNOWN = "unknown"


@dataclass(frozen=True)
class CommandOutcome:
    op: str
    key: str
    status: str
    result: Any = None
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"op": self.op, "key": self.key, "status": self.status}
        if self.error:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class BatchResult:
    entity_type: str
    entity_id: str
    outcomes: tuple[CommandOutcome, ...]
    metrics: StoreMetrics | None = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return all(outcome.status == OK for outcome in self.outcomes)

    @property
    def failed(self) -> list[CommandOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status != OK]

    @property
    def transport_failed(self) -> bool:
        return bool(self.outcomes) and all(outcome.status == UNKNOWN for outcome in self.outcomes)

    def raise_for_partial_failure(self) -> "BatchResult":
        if self.ok:
            return self
        failed = [outcome.to_dict() for outcome in self.failed]
        logger.warning(
            "partial_write_failure entity_type=%s entity_id=%s failed=%s total=%s failed_commands=%s",
            self.entity_type,
            self.entity_id,
            len(failed),
            len(self.outcomes),
            failed,
        )
        if self.metrics is not None:
            self.metrics.increment("partial_write_failures_total")
        raise PartialWriteFailure(entity_type=self.entity_type, entity_id=self.entity_id, failed=failed)


class WriteBatch:
    def __init__(
        self,
        kv: Any,
        *,
        entity_type: str,
        entity_id: str,
        metrics: StoreMetrics | None = None,
    ) -> None:
        self._kv = kv
        self._entity_type = entity_type
        self._entity_id = entity_id
        self._metrics = metrics
        self._commands: list[Command] = []

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def commands(self) -> list[Command]:
        return list(self._commands)

    def hset(self, key: str, mapping: Mapping[str, str]) -> "WriteBatch":
        self._commands.append(("hset", (key, dict(mapping))))
        return self

    def delete(self, key: str) -> "WriteBatch":
        self._commands.append(("delete", (key,)))
        return self

    def set(self, key: str, value: str) -> "WriteBatch":
        self._commands.append(("set", (key, value)))
        return self

    def incr(self, key: str) -> "WriteBatch":
        self._commands.append(("incr", (key,)))
        return self

    def sadd(self, key: str, member: str) -> "WriteBatch":
        self._commands.append(("sadd", (key, member)))
        return self

    def zadd(self, key: str, member: str, score: float) -> "WriteBatch":
        self._commands.append(("zadd", (key, {member: float(score)})))
        return self

    def apply(self, deltas: Iterable[IndexDelta]) -> "WriteBatch":
        for delta in deltas:
            self._commands.append(delta.to_command())
        return self

    async def submit(self) -> BatchResult:
        commands = list(self._commands)
        if not commands:
            return self._result(())
        try:
            results = await self._kv.execute_batch(commands)
        except StoreUnavailable as exc:
            logger.warning(
                "write_batch_transport_failure entity_type=%s entity_id=%s commands=%s error=%s",
                self._entity_type,
                self._entity_id,
                len(commands),
                exc.message,
            )
            if self._metrics is not None:
                self._metrics.increment("store_unavailable_total")
            return self._result(
                tuple(
                    CommandOutcome(op=op, key=str(args[0]), status=UNKNOWN, error=exc.message)
                    for op, args in commands
                )
            )
        outcomes = []
        for (op, args), result in zip(commands, results):
            if isinstance(result, KVCommandError):
                outcomes.append(CommandOutcome(op=op, key=str(args[0]), status=ERROR, error=str(result)))
            else:
                outcomes.append(CommandOutcome(op=op, key=str(args[0]), status=OK, result=result))
        return self._result(tuple(outcomes))

    def _result(self, outcomes: tuple[CommandOutcome, ...]) -> BatchResult:
        return BatchResult(
            entity_type=self._entity_type,
            entity_id=self._entity_id,
            outcomes=outcomes,
            metrics=self._metrics,
        )
