"""
Category schema tree

Resolves the fields a listing must or may carry by walking the category
tree from the root down to the listing's category, and cleans raw listing
attributes against that field list.
"""

import math
import re
from typing import Any, Dict, List, Optional, Sequence, Union

from schemas import CategoryField, CategoryFieldWithMeta, CategorySchema

AttributeValue = Union[str, int, float]

_NON_WORD = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def slugify(value: Optional[str]) -> str:
    value = (value or "").strip().lower()
    value = _NON_WORD.sub("", value)
    return _WHITESPACE.sub("_", value)


def find_category_by_name(categories: Sequence[CategorySchema], name: Optional[str]) -> Optional[CategorySchema]:
    if not name:
        return None
    for category in categories:
        if category.name == name:
            return category
        if category.subcategories:
            found = find_category_by_name(category.subcategories, name)
            if found:
                return found
    return None


def build_lineage(
    categories: Sequence[CategorySchema],
    name: Optional[str],
    path: Optional[List[CategorySchema]] = None,
) -> Optional[List[CategorySchema]]:
    """Nodes from the root down to the first category called name."""
    if not name:
        return None
    path = path or []
    for category in categories:
        next_path = path + [category]
        if category.name == name:
            return next_path
        if category.subcategories:
            found = build_lineage(category.subcategories, name, next_path)
            if found:
                return found
    return None


def _with_meta(field: CategoryField, node: Optional[CategorySchema], inherited: bool) -> CategoryFieldWithMeta:
    return CategoryFieldWithMeta(
        **field.model_dump(exclude={"name"}),
        name=field.name or slugify(field.label),
        inherited=inherited,
        source_category_id=node.id if node else None,
        source_category_name=node.name if node else None,
    )


def resolve_fields_for_category(
    categories: Sequence[CategorySchema],
    category: Optional[CategorySchema],
) -> List[CategoryFieldWithMeta]:
    """Merge the fields of every node from the root to category.

    A field whose name was already seen on an ancestor replaces that entry
    where it stands, so the descendant's definition keeps the ancestor's
    position; new names are appended. Fields precomputed on the category
    are returned as they are.
    """
    if category is None:
        return []
    if category.resolved_fields:
        return list(category.resolved_fields)
    lineage = build_lineage(categories, category.name)
    if not lineage:
        return [_with_meta(field, category, False) for field in category.fields]

    resolved: List[CategoryFieldWithMeta] = []
    positions: Dict[str, int] = {}
    for node in lineage:
        inherited = node.name != category.name
        for field in node.fields:
            meta = _with_meta(field, node, inherited)
            idx = positions.get(meta.name)
            if idx is not None:
                resolved[idx] = meta
            else:
                positions[meta.name] = len(resolved)
                resolved.append(meta)
    return resolved


def with_resolved_fields(
    categories: Sequence[CategorySchema],
    _root: Optional[Sequence[CategorySchema]] = None,
) -> List[CategorySchema]:
    """Copy of the tree with resolved_fields filled in on every node."""
    root = categories if _root is None else _root
    return [
        category.model_copy(update={
            "resolved_fields": resolve_fields_for_category(root, category.model_copy(update={"resolved_fields": None})),
            "subcategories": with_resolved_fields(category.subcategories, root),
        })
        for category in categories
    ]


def without_resolved_fields(categories: Sequence[CategorySchema]) -> List[CategorySchema]:
    return [
        category.model_copy(update={
            "resolved_fields": None,
            "subcategories": without_resolved_fields(category.subcategories),
        })
        for category in categories
    ]


def resolve_fields_by_name(categories: Sequence[CategorySchema], name: Optional[str]) -> List[CategoryFieldWithMeta]:
    return resolve_fields_for_category(categories, find_category_by_name(categories, name))


def _to_number(raw: Any) -> Optional[Union[int, float]]:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, (int, float)):
        num = float(raw)
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return 0
        if not _NUMBER.fullmatch(text):
            return None
        num = float(text)
    else:
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return int(num) if num.is_integer() else num


def to_js_string(raw: Any) -> str:
    """Render a JSON value the way JavaScript String() does."""
    if isinstance(raw, str):
        return raw
    if raw is None:
        return "null"
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, float):
        if math.isnan(raw):
            return "NaN"
        if math.isinf(raw):
            return "Infinity" if raw > 0 else "-Infinity"
        return str(int(raw)) if raw.is_integer() and abs(raw) < 1e21 else repr(raw)
    if isinstance(raw, (list, tuple)):
        return ",".join("" if item is None else to_js_string(item) for item in raw)
    if isinstance(raw, dict):
        return "[object Object]"
    return str(raw)


def normalize_dynamic_attributes_for_category(
    attributes: Optional[Dict[str, Any]],
    fields: Sequence[CategoryFieldWithMeta],
) -> Dict[str, AttributeValue]:
    """Keep only declared fields, typed as declared.

    Raw values may be keyed by field name or by label. Empty and
    unparseable values are dropped.
    """
    if not fields:
        return dict(attributes or {})
    attributes = attributes or {}

    normalized: Dict[str, AttributeValue] = {}
    for field in fields:
        raw = attributes.get(field.name)
        if raw is None and field.label:
            raw = attributes.get(field.label)
        if raw is None or raw == "":
            continue
        if field.type == "number":
            num = _to_number(raw)
            if num is not None:
                normalized[field.name] = num
            continue
        normalized[field.name] = to_js_string(raw)
    return normalized


def validate_category_tree(categories: Sequence[CategorySchema], _path: str = "") -> List[str]:
    problems: List[str] = []
    seen_names = set()
    for category in categories:
        where = f"{_path}/{category.name}"
        if not category.name.strip():
            problems.append(f"{_path or '/'}: category name is empty")
        if category.name in seen_names:
            problems.append(f"{where}: duplicate sibling name")
        seen_names.add(category.name)

        field_names = set()
        for field in category.fields:
            if not field.label.strip():
                problems.append(f"{where}: field without label")
                continue
            name = field.name or slugify(field.label)
            if name in field_names:
                problems.append(f"{where}: duplicate field {name}")
            field_names.add(name)
            if field.type == "select" and not field.options:
                problems.append(f"{where}: select field {name} has no options")

        problems.extend(validate_category_tree(category.subcategories, where))
    return problems


def _field(name: str, label: str, type: str = "text", **kwargs) -> CategoryField:
    return CategoryField(name=name, label=label, type=type, **kwargs)


DEFAULT_CATEGORIES: List[CategorySchema] = [
    CategorySchema(name="Искусство и коллекционирование", fields=[
        _field("artist", "Художник/Автор"),
        _field("year", "Год создания", "number"),
        _field("style", "Стиль"),
    ]),
    CategorySchema(name="Товары ручной работы", fields=[
        _field("material", "Основной материал", required=True),
        _field("dimensions", "Размеры (см)"),
    ]),
    CategorySchema(name="Ювелирные изделия", fields=[
        _field("metal", "Металл", required=True),
        _field("stone", "Камень"),
        _field("weight_grams", "Вес (граммы)", "number"),
    ]),
    CategorySchema(name="Одежда и аксессуары", fields=[
        _field("size", "Размер", required=True),
        _field("fabric", "Ткань"),
        _field("color", "Цвет"),
    ]),
    CategorySchema(name="Электроника", fields=[
        _field("brand", "Бренд", required=True),
        _field("model", "Модель", required=True),
        _field("condition", "Состояние", "select", options=["Новое", "Б/у", "Восстановленное"], required=True),
    ]),
    CategorySchema(name="Автомобили", fields=[
        _field("brand", "Бренд", required=True),
        _field("model", "Модель", required=True),
        _field("year", "Год выпуска", "number", required=True),
        _field("mileage", "Пробег, км", "number", required=True),
        _field("vin", "VIN-код", required=True),
        _field("engine_volume", "Объем двигателя, л", "number"),
        _field("transmission", "Коробка передач", "select", options=["Механика", "Автомат", "Роботизированная", "Вариатор"]),
        _field("fuel_type", "Тип топлива", "select", options=["Бензин", "Дизель", "Гибрид", "Электро"]),
        _field("body_type", "Тип кузова"),
        _field("condition", "Состояние", "select", options=["Новый", "Б/у", "На запчасти"]),
    ]),
    CategorySchema(name="Дом и быт", fields=[
        _field("material", "Материал"),
        _field("purpose", "Назначение"),
    ]),
    CategorySchema(name="Цифровые товары", fields=[
        _field("file_format", "Формат файла", required=True),
        _field("resolution", "Разрешение"),
    ]),
    CategorySchema(name="Винтаж", fields=[
        _field("period", "Период"),
        _field("condition", "Состояние сохранности"),
    ]),
]
