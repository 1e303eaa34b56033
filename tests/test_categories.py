import pytest

from categories import (
    DEFAULT_CATEGORIES,
    build_lineage,
    find_category_by_name,
    normalize_dynamic_attributes_for_category,
    resolve_fields_by_name,
    resolve_fields_for_category,
    slugify,
    to_js_string,
    validate_category_tree,
    with_resolved_fields,
    without_resolved_fields,
)
from schemas import CategoryField, CategorySchema


@pytest.fixture
def electronics_tree():
    phones = CategorySchema(name="Смартфоны", fields=[
        CategoryField(name="screen_size", label="Диагональ", type="number"),
    ])
    electronics = CategorySchema(name="Электроника", fields=[
        CategoryField(name="brand", label="Бренд", required=True),
        CategoryField(name="model", label="Модель", required=True),
        CategoryField(name="condition", label="Состояние", type="select", options=["Новое", "Б/у"], required=True),
    ], subcategories=[phones])
    return [CategorySchema(name="Винтаж", fields=[]), electronics]


def test_slugify():
    assert slugify("  Screen Size ") == "screen_size"
    assert slugify("Weight (g)!") == "weight_g"
    assert slugify("Вес  нетто") == "вес_нетто"
    assert slugify(None) == ""


def test_find_category_by_name_searches_subcategories(electronics_tree):
    assert find_category_by_name(electronics_tree, "Смартфоны").name == "Смартфоны"
    assert find_category_by_name(electronics_tree, "Нет такой") is None
    assert find_category_by_name(electronics_tree, "") is None


def test_build_lineage(electronics_tree):
    lineage = build_lineage(electronics_tree, "Смартфоны")
    assert [c.name for c in lineage] == ["Электроника", "Смартфоны"]
    assert build_lineage(electronics_tree, "Нет такой") is None


def test_root_category_resolves_own_fields():
    fields = resolve_fields_by_name(DEFAULT_CATEGORIES, "Электроника")
    assert [f.name for f in fields] == ["brand", "model", "condition"]
    assert all(f.inherited is False for f in fields)
    assert all(f.source_category_name == "Электроника" for f in fields)


def test_subcategory_inherits_ancestor_fields(electronics_tree):
    fields = resolve_fields_by_name(electronics_tree, "Смартфоны")
    assert [f.name for f in fields] == ["brand", "model", "condition", "screen_size"]
    assert [f.inherited for f in fields] == [True, True, True, False]
    assert fields[3].type == "number"


def test_descendant_override_keeps_ancestor_position():
    child = CategorySchema(name="Child", fields=[
        CategoryField(name="extra", label="Extra"),
        CategoryField(name="b", label="B child", type="select", options=["x"]),
    ])
    root = CategorySchema(name="Root", fields=[
        CategoryField(name="a", label="A"),
        CategoryField(name="b", label="B root"),
        CategoryField(name="c", label="C"),
    ], subcategories=[child])

    fields = resolve_fields_for_category([root], child)

    assert [f.name for f in fields] == ["a", "b", "c", "extra"]
    assert fields[1].label == "B child"
    assert fields[1].type == "select"
    assert fields[1].inherited is False
    assert fields[1].source_category_name == "Child"
    assert len({f.name for f in fields}) == len(fields)


def test_field_name_falls_back_to_slugified_label():
    node = CategorySchema(name="Misc", fields=[CategoryField(label="Screen Size", type="number")])
    fields = resolve_fields_for_category([node], node)
    assert fields[0].name == "screen_size"


def test_missing_category_returns_own_fields():
    orphan = CategorySchema(name="Orphan", fields=[CategoryField(name="x", label="X")])
    fields = resolve_fields_for_category(DEFAULT_CATEGORIES, orphan)
    assert [f.name for f in fields] == ["x"]
    assert fields[0].inherited is False
    assert resolve_fields_for_category(DEFAULT_CATEGORIES, None) == []


def test_normalize_empty_attributes():
    fields = resolve_fields_by_name(DEFAULT_CATEGORIES, "Автомобили")
    assert normalize_dynamic_attributes_for_category({}, fields) == {}
    assert normalize_dynamic_attributes_for_category(None, fields) == {}


def test_normalize_numbers():
    fields = resolve_fields_by_name(DEFAULT_CATEGORIES, "Автомобили")
    assert normalize_dynamic_attributes_for_category({"engine_volume": "12.5"}, fields) == {"engine_volume": 12.5}
    assert normalize_dynamic_attributes_for_category({"engine_volume": "abc"}, fields) == {}
    assert normalize_dynamic_attributes_for_category({"year": " 2015 "}, fields) == {"year": 2015}
    assert normalize_dynamic_attributes_for_category({"mileage": "nan"}, fields) == {}


def test_normalize_by_label_and_drops_undeclared():
    fields = resolve_fields_by_name(DEFAULT_CATEGORIES, "Ювелирные изделия")
    raw = {"Металл": "Золото", "Вес (граммы)": "3", "stone": "", "color": "red"}
    assert normalize_dynamic_attributes_for_category(raw, fields) == {"metal": "Золото", "weight_grams": 3}


def test_normalize_prefers_name_over_label():
    fields = resolve_fields_by_name(DEFAULT_CATEGORIES, "Винтаж")
    raw = {"period": "1960-е", "Период": "1970-е"}
    assert normalize_dynamic_attributes_for_category(raw, fields) == {"period": "1960-е"}


def test_normalize_stringifies_text_fields():
    fields = resolve_fields_by_name(DEFAULT_CATEGORIES, "Цифровые товары")
    assert normalize_dynamic_attributes_for_category({"resolution": 1080}, fields) == {"resolution": "1080"}


def test_normalize_stringifies_like_javascript():
    fields = resolve_fields_by_name(DEFAULT_CATEGORIES, "Цифровые товары")
    raw = {"resolution": 12.0, "file_format": True}
    assert normalize_dynamic_attributes_for_category(raw, fields) == {"resolution": "12", "file_format": "true"}


@pytest.mark.parametrize("raw, expected", [
    (False, "false"),
    (2.5, "2.5"),
    (-0.0, "0"),
    (1e21, "1e+21"),
    (["png", 3, None], "png,3,"),
    ({"a": 1}, "[object Object]"),
])
def test_to_js_string(raw, expected):
    assert to_js_string(raw) == expected


def test_normalize_without_fields_passes_through():
    assert normalize_dynamic_attributes_for_category({"anything": "goes"}, []) == {"anything": "goes"}


def test_default_tree_is_valid():
    assert validate_category_tree(DEFAULT_CATEGORIES) == []


def test_validate_category_tree_reports_problems():
    tree = [
        CategorySchema(name="A", fields=[
            CategoryField(name="x", label="X"),
            CategoryField(name="x", label="X again"),
            CategoryField(name="s", label="S", type="select"),
        ]),
        CategorySchema(name="A"),
    ]
    problems = validate_category_tree(tree)
    assert "/A: duplicate field x" in problems
    assert "/A: select field s has no options" in problems
    assert "/A: duplicate sibling name" in problems


def test_precomputed_fields_are_returned_as_is(electronics_tree):
    cached = resolve_fields_by_name(electronics_tree, "Смартфоны")[:1]
    phones = find_category_by_name(electronics_tree, "Смартфоны").model_copy(update={"resolved_fields": cached})
    assert resolve_fields_for_category(electronics_tree, phones) == cached


def test_with_resolved_fields_fills_every_node(electronics_tree):
    tree = with_resolved_fields(electronics_tree)
    phones = tree[1].subcategories[0]
    assert [f.name for f in phones.resolved_fields] == ["brand", "model", "condition", "screen_size"]
    assert tree[0].resolved_fields == []
    assert electronics_tree[1].resolved_fields is None

    stripped = without_resolved_fields(tree)
    assert stripped[1].subcategories[0].resolved_fields is None
