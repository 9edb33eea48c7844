from __future__ import annotations

import pytest

from asynctrait.expand import SEND, SYNC, ExpansionContext, Receiver, capability_bound, expand_item
from asynctrait.parser import parse_item


@pytest.mark.parametrize("receiver", list(Receiver))
@pytest.mark.parametrize("has_body", [True, False])
@pytest.mark.parametrize("local", [True, False])
def test_bound_truth_table(receiver: Receiver, has_body: bool, local: bool):
	expected = None
	if not local and has_body:
		if receiver is Receiver.BY_REFERENCE:
			expected = SYNC
		elif receiver is Receiver.BY_MUT_REFERENCE:
			expected = SEND
	assert capability_bound(receiver, has_body, local) == expected


SHAPES = """trait Shapes {
	async fn none() {}
	async fn value(self) {}
	async fn by_ref(&self) {}
	async fn by_mut(&mut self) {}
	async fn decl_only(&self);
}"""


def test_default_bodies_get_exactly_the_selected_bounds():
	expanded = expand_item(parse_item(SHAPES), ExpansionContext())
	assert [(m.name, m.bound) for m in expanded.methods] == [
		("none", None),
		("value", None),
		("by_ref", SYNC),
		("by_mut", SEND),
		("decl_only", None),
	]
	assert expanded.text.count("Self: ::core::marker::Sync + 'async_trait") == 1
	assert expanded.text.count("Self: ::core::marker::Send + 'async_trait") == 1


def test_local_injects_nothing():
	expanded = expand_item(parse_item(SHAPES), ExpansionContext(local=True))
	assert all(m.bound is None for m in expanded.methods)
	assert "Self: ::core" not in expanded.text
	assert "::core::marker::Send" not in expanded.text
	assert "::core::marker::Sync" not in expanded.text


def test_self_stand_in_is_unsized_except_for_plain_self():
	text = expand_item(parse_item(SHAPES), ExpansionContext()).text
	assert "async fn __none<'async_trait, AsyncTrait: ?Sized + Shapes>()" in text
	assert "async fn __value<'async_trait, AsyncTrait: Shapes>(_self: AsyncTrait)" in text
	assert (
		"async fn __by_ref<'async_trait, AsyncTrait: ?Sized + Shapes + ::core::marker::Sync + 'async_trait>"
		"(_self: &'async_trait AsyncTrait)"
	) in text
	assert "::std::boxed::Box::pin(__none::<Self>())" in text


def test_explicit_self_type_receiver_is_sized():
	src = "trait Job {\n\tasync fn take(self: Self) {}\n\tasync fn boxed(self: Box<Self>) {}\n}"
	text = expand_item(parse_item(src), ExpansionContext()).text
	assert "async fn __take<'async_trait, AsyncTrait: Job>(_self: AsyncTrait) {}" in text
	assert "async fn __boxed<'async_trait, AsyncTrait: ?Sized + Job>(_self: Box<AsyncTrait>) {}" in text
