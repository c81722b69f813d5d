"""Tests for Rust entity extraction."""

import pytest

from callscope.extractor import extract_entities
from callscope.models import ItemKind

SOURCE = '''
/// A point in space.
/// Has two coordinates.
#[derive(Debug)]
pub struct Point {
    pub x: f64,
    y: Vec<f64>,
}

pub struct Pair(u32, String);

pub enum Shape {
    Circle { radius: f64 },
    Empty,
}

pub trait Area {
    fn area(&self) -> f64;
    fn describe(&self) -> String { String::new() }
}

impl Point {
    pub fn new(x: f64) -> Self {
        Point { x, y: Vec::new() }
    }

    fn helper(&self) {}
}

impl Area for Point {
    fn area(&self) -> f64 { 0.0 }
}

pub fn free_function() -> Point {
    Point::new(1.0)
}

pub(crate) const LIMIT: u32 = 10;
type Alias = Point;

mod geometry {
    pub fn nested() {}
}

#[cfg(test)]
mod tests {
    #[test]
    fn builds_point() {
        super::free_function();
    }

    #[tokio::test]
    async fn async_case() {}
}
'''


@pytest.fixture
def extraction(rust_parser):
    return extract_entities(rust_parser.parse(SOURCE), "src/shapes.rs")


def _ids(extraction):
    return [i.id for i in extraction.items]


def test_struct_with_fields_and_doc(extraction):
    point = next(i for i in extraction.items if i.id == "src/shapes.rs::Point::struct")
    assert point.kind is ItemKind.STRUCT
    assert point.fields == (("x", "f64"), ("y", "Vec<f64>"))
    assert point.visibility == "pub"
    assert point.doc == "A point in space.\nHas two coordinates."
    assert point.signature == "pub struct Point"


def test_tuple_struct_fields_are_positional(extraction):
    pair = next(i for i in extraction.items if i.name == "Pair")
    assert pair.fields == (("0", "u32"), ("1", "String"))


def test_enum_variants(extraction):
    shape = next(i for i in extraction.items if i.name == "Shape")
    assert shape.kind is ItemKind.ENUM
    assert [name for name, _ in shape.fields] == ["Circle", "Empty"]


def test_methods_have_owner_and_normalized_return(extraction):
    new = next(i for i in extraction.items if i.id == "src/shapes.rs::Point::new::method")
    assert new.owner == "Point"
    assert new.return_type == "Point"
    assert new.signature == "pub fn new(x: f64) -> Self"

    helper = next(i for i in extraction.items if i.name == "helper")
    assert helper.kind is ItemKind.METHOD
    assert helper.visibility == "private"


def test_trait_and_impls(extraction):
    ids = _ids(extraction)
    assert "src/shapes.rs::Area::trait" in ids
    assert "src/shapes.rs::Area::area::method" in ids
    assert "src/shapes.rs::Area::describe::method" in ids
    assert "src/shapes.rs::Point::impl" in ids
    assert "src/shapes.rs::Point::Area::impl" in ids
    assert "src/shapes.rs::Point::area::method" in ids


def test_free_function_and_simple_items(extraction):
    ids = _ids(extraction)
    assert "src/shapes.rs::free_function::fn" in ids
    assert "src/shapes.rs::LIMIT::const" in ids
    assert "src/shapes.rs::Alias::type" in ids
    limit = next(i for i in extraction.items if i.name == "LIMIT")
    assert limit.visibility == "pub(crate)"


def test_inline_module_extends_path(extraction):
    ids = _ids(extraction)
    assert "src/shapes.rs::geometry::mod" in ids
    assert "src/shapes.rs::geometry::nested::fn" in ids


def test_test_functions(extraction):
    tests = {t.id for t in extraction.tests}
    assert tests == {
        "src/shapes.rs::builds_point::test",
        "src/shapes.rs::async_case::test",
    }


def test_sites_cover_bodies_only(extraction):
    site_ids = {s.item.id for s in extraction.sites}
    assert "src/shapes.rs::Point::new::method" in site_ids
    assert "src/shapes.rs::builds_point::test" in site_ids
    # declaration without a body
    assert "src/shapes.rs::Area::area::method" not in site_ids
    new_site = next(s for s in extraction.sites if s.item.name == "new")
    assert new_site.self_type == "Point"


def test_extraction_is_deterministic(rust_parser):
    first = extract_entities(rust_parser.parse(SOURCE), "src/shapes.rs")
    second = extract_entities(rust_parser.parse(SOURCE), "src/shapes.rs")
    assert [i.to_dict() for i in first.items] == [i.to_dict() for i in second.items]


def test_duplicate_ids_get_suffix(rust_parser):
    source = "impl A { fn go(&self) {} }\nimpl A { fn go(&self) {} }\n"
    ids = [i.id for i in extract_entities(rust_parser.parse(source), "a.rs").items]
    assert "a.rs::A::go::method" in ids
    assert "a.rs::A::go::method#2" in ids
    assert "a.rs::A::impl#2" in ids


def test_partial_source_is_not_fatal(rust_parser):
    source = "pub fn ok() {}\nfn broken( {\n"
    items = extract_entities(rust_parser.parse(source), "b.rs").items
    assert "b.rs::ok::fn" in [i.id for i in items]
