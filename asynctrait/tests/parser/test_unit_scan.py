from __future__ import annotations

import pytest

from asynctrait.parser import ParseError, scan_unit


def test_collects_scope_carriers_with_arity():
	src = """type Elided<'a> = &'a usize;
struct Holder<'a, 'b, T> { a: &'a T, b: &'b T }
enum Plain { A }
struct Gen<T>(T);
"""
	scan = scan_unit(src)
	assert scan.carriers == {"Elided": 1, "Holder": 2}
	assert [it.keyword for it in scan.items] == ["type", "struct", "enum", "struct"]


def test_attribute_sites_and_driving_attribute():
	src = "#[derive(Debug)]\n#[async_trait::async_trait(local)]\ntrait T {}\n"
	scan = scan_unit(src)
	(item,) = scan.items
	assert [a.path for a in item.attrs] == ["derive", "async_trait::async_trait"]
	site = item.driving_attribute()
	assert site is not None
	assert site.args == "local"
	assert src[site.next_start :].startswith("trait T {}")
	assert src[item.start : item.end] == src.rstrip("\n")


def test_unannotated_items_are_not_targets():
	scan = scan_unit("#[derive(Clone)]\nstruct S;\nimpl S { fn f(&self) {} }\n")
	assert scan.annotated() == []


def test_nested_module_items_are_found():
	src = """mod outer {
	#[async_trait]
	pub trait Inner {
		async fn f(&self);
	}
}
"""
	scan = scan_unit(src)
	assert [it.name for it in scan.annotated()] == ["Inner"]


def test_const_fn_is_not_a_const_item():
	scan = scan_unit("const fn f() -> u8 { 1 }\n#[async_trait]\ntrait A {}\n")
	assert [it.keyword for it in scan.items] == ["fn", "trait"]


def test_unbalanced_unit_is_parse_error():
	with pytest.raises(ParseError):
		scan_unit("trait T {")
