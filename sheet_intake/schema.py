"""
schema.py — Static description of the record a template row decodes into.

A schema is an ordered list of fields. Each field maps to one column by
position; the optional EXTRA field must come last and captures every
remaining labelled column as header/value pairs.

    schema = SchemaDescriptor.from_dataclass(ProductRow)
    schema = SchemaDescriptor([FieldSpec("sku", FieldKind.STRING), ...])
"""

from __future__ import annotations

import dataclasses
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from sheet_intake.errors import SchemaInvalid


class FieldKind(str, Enum):
    INT = "int"
    UINT = "uint"
    FLOAT = "float"
    STRING = "string"
    EXTRA = "extra"


ZERO_VALUES = {
    FieldKind.INT: 0,
    FieldKind.UINT: 0,
    FieldKind.FLOAT: 0.0,
    FieldKind.STRING: "",
}

_ANNOTATION_KINDS = {
    int: FieldKind.INT,
    float: FieldKind.FLOAT,
    str: FieldKind.STRING,
}


@dataclass
class ExtraColumn:
    """Trailing columns the template does not model, keyed by header label."""

    headers: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)

    def append(self, header: str, value: str) -> None:
        self.headers.append(header)
        self.values.append(value)

    def items(self) -> list[tuple[str, str]]:
        return list(zip(self.headers, self.values))

    def as_dict(self) -> dict[str, str]:
        # Repeated labels keep the first value.
        result: dict[str, str] = {}
        for header, value in self.items():
            result.setdefault(header, value)
        return result

    def __len__(self) -> int:
        return len(self.headers)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind

    @property
    def is_extra(self) -> bool:
        return self.kind is FieldKind.EXTRA


class SchemaDescriptor:
    def __init__(
        self,
        fields: "list[FieldSpec] | tuple[FieldSpec, ...]",
        record_factory: Callable[..., Any] | None = None,
    ) -> None:
        fields = tuple(fields)
        if not fields:
            raise SchemaInvalid("Schema must declare at least one field")
        names = [spec.name for spec in fields]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise SchemaInvalid(f"Duplicate schema field names: {duplicates}")
        extra_positions = [i for i, spec in enumerate(fields) if spec.is_extra]
        if len(extra_positions) > 1:
            raise SchemaInvalid("Schema may declare at most one extra-column field")
        if extra_positions and extra_positions[0] != len(fields) - 1:
            raise SchemaInvalid(
                f"Extra-column field '{fields[extra_positions[0]].name}' must be the last field"
            )
        self.fields = fields
        self.record_factory = record_factory
        self.extra_index: int | None = extra_positions[0] if extra_positions else None

    @property
    def field_count(self) -> int:
        return len(self.fields)

    @property
    def fixed_count(self) -> int:
        return self.field_count if self.extra_index is None else self.extra_index

    @property
    def names(self) -> list[str]:
        return [spec.name for spec in self.fields]

    def new_record(self, values: dict[str, Any]) -> Any:
        if self.record_factory is None:
            return dict(values)
        return self.record_factory(**values)

    def __repr__(self) -> str:
        body = ", ".join(f"{spec.name}:{spec.kind.value}" for spec in self.fields)
        return f"SchemaDescriptor({body})"

    @classmethod
    def from_dataclass(cls, record_cls: type) -> "SchemaDescriptor":
        """
        Build a descriptor from a dataclass, once, at configuration time.

        Supported annotations: int, float, str, ExtraColumn and
        Annotated[int, FieldKind.UINT] for unsigned integers.
        """
        if not dataclasses.is_dataclass(record_cls):
            raise SchemaInvalid(f"{record_cls!r} is not a dataclass")
        hints = typing.get_type_hints(record_cls, include_extras=True)
        specs: list[FieldSpec] = []
        for item in dataclasses.fields(record_cls):
            specs.append(FieldSpec(item.name, _kind_for_annotation(item.name, hints[item.name])))
        return cls(specs, record_factory=record_cls)

    @classmethod
    def from_mapping(cls, payload: "list[dict[str, Any]]") -> "SchemaDescriptor":
        if not isinstance(payload, list):
            raise SchemaInvalid("Schema must be a list of {name, kind} objects")
        specs: list[FieldSpec] = []
        for position, entry in enumerate(payload):
            if not isinstance(entry, dict) or "name" not in entry:
                raise SchemaInvalid(f"Schema field {position} needs a 'name'")
            raw_kind = str(entry.get("kind", FieldKind.STRING.value)).strip().lower()
            try:
                kind = FieldKind(raw_kind)
            except ValueError as exc:
                allowed = ", ".join(kind.value for kind in FieldKind)
                raise SchemaInvalid(
                    f"Unknown kind '{raw_kind}' for field '{entry['name']}'. Expected one of: {allowed}"
                ) from exc
            specs.append(FieldSpec(str(entry["name"]), kind))
        return cls(specs)


def _kind_for_annotation(name: str, annotation: Any) -> FieldKind:
    if typing.get_origin(annotation) is typing.Annotated:
        base, *metadata = typing.get_args(annotation)
        for item in metadata:
            if isinstance(item, FieldKind):
                return item
        annotation = base
    if annotation is ExtraColumn:
        return FieldKind.EXTRA
    try:
        return _ANNOTATION_KINDS[annotation]
    except (KeyError, TypeError):
        raise SchemaInvalid(f"Unsupported annotation {annotation!r} for field '{name}'") from None
