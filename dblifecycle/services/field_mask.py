from __future__ import annotations

from dataclasses import dataclass
import types
from typing import Any, Iterable, Iterator, Union, get_args, get_origin

from pydantic import BaseModel

from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.models import PatchModel


@dataclass(frozen=True)
class FieldMask:
    """Ordered set of dotted field paths relative to the entity root."""

    paths: tuple[str, ...] = ()

    @classmethod
    def of(cls, *paths: str) -> FieldMask:
        return cls.from_paths(paths)

    @classmethod
    def from_paths(cls, paths: Iterable[str]) -> FieldMask:
        ordered: list[str] = []
        for raw in paths:
            path = str(raw).strip()
            if not path:
                raise InvalidArgumentError("Field mask paths must be non-empty")
            if "*" in path:
                raise InvalidArgumentError(f"Wildcard field mask paths are not supported: {path}")
            if any(segment == "" for segment in path.split(".")):
                raise InvalidArgumentError(f"Malformed field mask path: {path}")
            if path not in ordered:
                ordered.append(path)
        return cls(tuple(ordered))

    @classmethod
    def from_param(cls, value: str | None) -> FieldMask:
        if not value:
            return cls()
        return cls.from_paths(part for part in value.split(","))

    @classmethod
    def from_patch(cls, patch: PatchModel) -> FieldMask:
        # Derive the mask from explicitly-set fields, in declaration order.
        explicit = patch.model_fields_set - {"name"}
        return cls(tuple(field for field in type(patch).model_fields if field in explicit))

    def to_param(self) -> str:
        return ",".join(self.paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)

    def __len__(self) -> int:
        return len(self.paths)

    def __contains__(self, path: object) -> bool:
        return path in self.paths


def coerce_mask(mask: FieldMask | Iterable[str] | None) -> FieldMask:
    if mask is None:
        return FieldMask()
    if isinstance(mask, FieldMask):
        return mask
    if isinstance(mask, str):
        return FieldMask.from_param(mask)
    return FieldMask.from_paths(mask)


def _nested_model(annotation: Any) -> type[BaseModel] | None:
    # Unwrap Optional[...] down to a model class when the field holds one.
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    origin = get_origin(annotation)
    if origin in (Union, types.UnionType):
        for arg in get_args(annotation):
            if isinstance(arg, type) and issubclass(arg, BaseModel):
                return arg
    return None


def _resolve_value(model: BaseModel | None, segments: list[str]) -> Any:
    node: Any = model
    for segment in segments:
        if node is None:
            return None
        node = getattr(node, segment, None)
    return node


def validate_mask(patch_cls: type[PatchModel], mask: FieldMask, patch: PatchModel | None = None) -> None:
    """Reject unknown, immutable and non-clearable mask paths.

    When ``patch`` is given, a masked path whose value is None is a request to
    clear that field, which only succeeds for the patch type's clearable paths.
    """
    for path in mask:
        segments = path.split(".")
        if path in patch_cls.immutable_paths or segments[0] in patch_cls.immutable_paths:
            raise InvalidArgumentError(f"Field {path} is immutable")
        model: type[BaseModel] | None = patch_cls
        for index, segment in enumerate(segments):
            if model is None or segment not in model.model_fields or (model is patch_cls and segment == "name"):
                raise InvalidArgumentError(f"Unknown field mask path: {path}")
            if index < len(segments) - 1:
                model = _nested_model(model.model_fields[segment].annotation)
        if patch is not None and _resolve_value(patch, segments) is None:
            if path not in patch_cls.clearable_paths:
                raise InvalidArgumentError(f"Field {path} cannot be cleared")


def _include_tree(mask: FieldMask) -> dict[str, Any]:
    tree: dict[str, Any] = {}
    for path in mask:
        node = tree
        segments = path.split(".")
        for segment in segments[:-1]:
            child = node.get(segment)
            if child is True:
                break
            node = node.setdefault(segment, {})
        else:
            node[segments[-1]] = True
    return tree


def patch_body(patch: PatchModel, mask: FieldMask) -> dict[str, Any]:
    # Only masked fields travel; unmasked patch fields are ignored by construction.
    include = _include_tree(mask)
    include["name"] = True
    return patch.model_dump(include=include, by_alias=True, mode="json")


def apply_patch(entity: BaseModel, patch: PatchModel, mask: FieldMask) -> BaseModel:
    """Return a copy of ``entity`` with the masked fields of ``patch`` applied."""
    validate_mask(type(patch), mask, patch)
    data = entity.model_dump()
    patch_data = patch.model_dump()
    for path in mask:
        segments = path.split(".")
        source: Any = patch_data
        for segment in segments:
            source = source.get(segment) if isinstance(source, dict) else None
        target = data
        for segment in segments[:-1]:
            if not isinstance(target.get(segment), dict):
                target[segment] = {}
            target = target[segment]
        if source is None:
            # Dropping the key lets the entity's declared default stand in.
            target.pop(segments[-1], None)
        else:
            target[segments[-1]] = source
    return type(entity).model_validate(data)


def validate_upsert_mask(record_cls: type[BaseModel], mask: FieldMask) -> None:
    allowed = getattr(record_cls, "payload_paths", frozenset()) | getattr(record_cls, "metadata_paths", frozenset())
    for path in mask:
        if path == "name":
            raise InvalidArgumentError("Field name is immutable")
        if path not in allowed:
            raise InvalidArgumentError(f"Unknown field mask path: {path}")


def apply_upsert(existing: BaseModel | None, incoming: BaseModel, mask: FieldMask) -> BaseModel:
    """Create-or-replace: payload paths always follow ``incoming``, metadata only when masked."""
    record_cls = type(incoming)
    validate_upsert_mask(record_cls, mask)
    if existing is None:
        return incoming
    updates = {field: getattr(incoming, field) for field in record_cls.payload_paths}
    for path in mask:
        if path in record_cls.metadata_paths:
            updates[path] = getattr(incoming, path)
    merged = existing.model_copy(update=updates)
    return record_cls.model_validate(merged.model_dump())
