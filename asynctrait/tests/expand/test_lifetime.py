"""
Borrow-scope elaboration: call-scope placement, outlives predicates, purity.
"""

from __future__ import annotations

import pytest

from asynctrait.expand import AmbiguousBorrowScope, elaborate, fresh_scope
from asynctrait.parser import parse_item, render_type
from asynctrait.parser.ast import MethodSignature


def _sig(method: str) -> MethodSignature:
	return parse_item("trait T {\n\t" + method + "\n}").methods[0].sig


def test_every_elided_reference_gets_the_single_call_scope():
	elab = elaborate(_sig("async fn f(&self, a: &u8, b: &mut [&str]) -> &u8;"))
	assert elab.introduced == ["'async_trait"]
	assert elab.call_scope == "'async_trait"
	assert elab.rewritten == 5
	sig = elab.signature
	assert sig.receiver.lifetime == "'async_trait"
	assert render_type(sig.params[0].ty) == "&'async_trait u8"
	assert render_type(sig.params[1].ty) == "&'async_trait mut [&'async_trait str]"
	assert render_type(sig.output) == "&'async_trait u8"


def test_named_scopes_and_type_params_outlive_the_call():
	elab = elaborate(_sig("async fn f<'a, T>(&'a self, x: &'a T, y: Cow<'_, str>);"))
	assert elab.rewritten == 1
	assert elab.signature.receiver.lifetime == "'a"
	assert render_type(elab.signature.params[1].ty) == "Cow<'async_trait, str>"
	assert elab.outlives == ["'a: 'async_trait", "T: 'async_trait"]


def test_static_is_not_tied_to_the_call():
	elab = elaborate(_sig("async fn f(&self, name: &'static str);"))
	assert elab.outlives == []


def test_outer_type_params_only_when_mentioned():
	elab = elaborate(_sig("async fn f(&self, x: T);"), outer_types=["T", "U"])
	assert elab.outlives == ["T: 'async_trait"]


def test_elaboration_is_pure_and_repeatable():
	sig = _sig("async fn f(&self, a: &u8) -> Vec<&str>;")
	first = elaborate(sig)
	second = elaborate(sig)
	assert first == second
	assert sig.receiver.lifetime is None
	assert sig.params[0].ty.lifetime is None


def test_elaboration_is_idempotent_on_scoped_input():
	first = elaborate(_sig("async fn f(&self, a: &u8) -> Vec<&str>;"))
	again = elaborate(first.signature)
	assert again.call_scope == first.call_scope
	assert again.rewritten == 0
	assert again.signature == first.signature
	assert again.outlives == []


def test_fresh_scope_avoids_names_in_use():
	assert fresh_scope([]) == "'async_trait"
	assert fresh_scope(["'async_trait"]) == "'async_trait1"
	assert fresh_scope(["'async_trait", "'async_trait1"]) == "'async_trait2"
	elab = elaborate(_sig("async fn f<'async_trait>(&'async_trait self, x: &u8);"))
	assert elab.call_scope == "'async_trait1"
	assert render_type(elab.signature.params[0].ty) == "&'async_trait1 u8"
	assert elab.outlives == ["'async_trait: 'async_trait1"]


def test_function_pointers_and_fn_sugar_are_left_alone():
	elab = elaborate(_sig("async fn f(cb: fn(&u8) -> &u8, g: Box<dyn Fn(&u8) -> &u8>);"))
	assert elab.rewritten == 0
	assert render_type(elab.signature.params[0].ty) == "fn(&u8) -> &u8"
	assert render_type(elab.signature.params[1].ty) == "Box<dyn Fn(&u8) -> &u8>"


def test_placeholder_in_trait_object_bound():
	elab = elaborate(_sig("async fn f(x: Box<dyn Display + '_>);"))
	assert elab.rewritten == 1
	assert render_type(elab.signature.params[0].ty) == "Box<dyn Display + 'async_trait>"


def test_impl_trait_argument_outlives_the_call():
	elab = elaborate(_sig("async fn f(it: impl Iterator<Item = &u8>);"))
	assert render_type(elab.signature.params[0].ty) == "impl Iterator<Item = &'async_trait u8> + 'async_trait"


def test_hidden_scope_is_ambiguous():
	sig = _sig("async fn test(not_okay: Elided, okay: &usize);")
	with pytest.raises(AmbiguousBorrowScope) as exc:
		elaborate(sig, carriers={"Elided": 1})
	assert exc.value.code == "E-AMBIGUOUS-BORROW-SCOPE"
	assert exc.value.span == sig.params[0].span
	assert exc.value.notes


def test_hidden_scope_nested_in_generic_is_ambiguous():
	with pytest.raises(AmbiguousBorrowScope):
		elaborate(_sig("async fn test(&self) -> Vec<Elided>;"), carriers={"Elided": 1})


def test_placeholder_resolves_hidden_scope():
	elab = elaborate(_sig("async fn test(elided: Elided<'_>);"), carriers={"Elided": 1})
	assert render_type(elab.signature.params[0].ty) == "Elided<'async_trait>"
	assert elab.rewritten == 1
