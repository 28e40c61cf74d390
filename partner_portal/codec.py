"""Flat hash encoding for entity models.

Every model field maps to one string field of the primary record. The decoder
for each field is chosen once per model class from its type annotation:

* ``bool`` is written as ``"true"``/``"false"`` and read back by comparison,
  so ``"false"`` never becomes a truthy string;
* ``int``/``float`` are parsed base-10; absent or unparseable values fall back
  to the field default;
* everything else (lists, dicts, nested models) is one JSON string;
* ``None`` is written as ``""`` and ``""`` reads back as ``None`` for optional
  fields (and as the default for required ones). Optional text fields are
  declared as ``OptionalText``, which turns ``""`` into ``None`` on validation,
  so the two never need to be told apart.

A record without a non-empty identifier field decodes to ``None``.
"""

from __future__ import annotations

import functools
import json
import logging
import types
import typing
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

TRUE = "true"
FALSE = "false"

_SCALAR_KINDS: dict[Any, str] = {bool: "bool", int: "int", float: "float", str: "str"}


def _unwrap_optional(annotation: Any) -> tuple[Any, bool]:
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = typing.get_args(annotation)
        rest = [arg for arg in args if arg is not type(None)]
        optional = len(rest) < len(args)
        if len(rest) == 1:
            return rest[0], optional
        return typing.Union[tuple(rest)], optional
    return annotation, False


class FieldCodec:
    def __init__(self, name: str, annotation: Any, field_info: Any) -> None:
        inner, optional = _unwrap_optional(annotation)
        self.name = name
        self.optional = optional
        self.kind = _SCALAR_KINDS.get(inner, "json")
        self._field_info = field_info
        self._adapter = TypeAdapter(inner) if self.kind == "json" else None

    def default(self) -> Any:
        if self._field_info.is_required():
            return None
        return self._field_info.get_default(call_default_factory=True)

    def _empty(self) -> Any:
        return None if self.optional else self.default()

    def encode(self, value: Any) -> str:
        if value is None:
            return ""
        if self.kind == "bool":
            return TRUE if value else FALSE
        if self.kind in ("int", "float", "str"):
            return str(value)
        assert self._adapter is not None
        payload = self._adapter.dump_python(value, mode="json")
        return json.dumps(payload, ensure_ascii=True, sort_keys=True)

    def decode(self, raw: str | None) -> Any:
        if raw is None:
            return self.default()
        if raw == "":
            if self.kind == "str" and not self.optional:
                return ""
            return self._empty()
        if self.kind == "str":
            return raw
        if self.kind == "bool":
            if raw == TRUE:
                return True
            if raw == FALSE:
                return False
            return self.default()
        if self.kind == "int":
            try:
                return int(raw, 10)
            except ValueError:
                return self.default()
        if self.kind == "float":
            try:
                return float(raw)
            except ValueError:
                return self.default()
        assert self._adapter is not None
        try:
            return self._adapter.validate_python(json.loads(raw))
        except (json.JSONDecodeError, ValidationError):
            logger.warning("field_decode_failed field=%s", self.name)
            return self._empty()


class EntityCodec(Generic[M]):
    def __init__(self, model: type[M], *, id_field: str = "id") -> None:
        if id_field not in model.model_fields:
            raise ValueError(f"{model.__name__} has no identifier field {id_field!r}")
        self.model = model
        self.id_field = id_field
        self._fields = {
            name: FieldCodec(name, info.annotation, info) for name, info in model.model_fields.items()
        }

    def encode(self, entity: M) -> dict[str, str]:
        return {name: codec.encode(getattr(entity, name)) for name, codec in self._fields.items()}

    def encode_fields(self, updates: Mapping[str, Any]) -> dict[str, str]:
        out: dict[str, str] = {}
        for name, value in updates.items():
            codec = self._fields.get(name)
            if codec is None:
                raise ValueError(f"unknown field for {self.model.__name__}: {name}")
            out[name] = codec.encode(value)
        return out

    def decode(self, mapping: Mapping[str, str] | None) -> M | None:
        if not mapping:
            return None
        if not mapping.get(self.id_field):
            return None
        data = {name: codec.decode(mapping.get(name)) for name, codec in self._fields.items()}
        return self.model.model_validate(data)


@functools.cache
def codec_for(model: type[M], id_field: str = "id") -> EntityCodec[M]:
    return EntityCodec(model, id_field=id_field)
