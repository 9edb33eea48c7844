"""
End-to-end expansion of parsed items: the canonical scenarios plus impl-side
rewriting (Self substitution, argument forwarding, generics).
"""

from __future__ import annotations

import pytest

from asynctrait.expand import AmbiguousBorrowScope, ExpansionContext, expand_item
from asynctrait.expand.expand import rename_receiver, replace_self_type
from asynctrait.parser import parse_item

HANDLE = "::core::pin::Pin<::std::boxed::Box<dyn ::core::future::Future<Output = {}> + ::core::marker::Send + 'async_trait>>"


def _expand(src: str, *, local: bool = False, carriers=None) -> str:
	return expand_item(parse_item(src), ExpansionContext(local=local), carriers=carriers).text


def test_scenario_a_declaration_returns_send_handle_without_self_bound():
	src = "pub trait Runner {\n\tasync fn run(&self);\n}"
	expected = "pub trait Runner {\n\tfn run<'async_trait>(&'async_trait self) -> " + HANDLE.format("()") + ";\n}"
	assert _expand(src) == expected


SRC_B = """trait Counter {
	fn get(&self) -> u32;

	async fn g(&mut self) {
		self.bump();
	}
}"""


def test_scenario_b_mut_default_body_requires_send_self():
	out = _expand(SRC_B)
	assert out.startswith(SRC_B[: SRC_B.index("async fn g")])
	assert "\tfn g<'async_trait>(&'async_trait mut self) -> " + HANDLE.format("()") + "\n\twhere\n" in out
	assert "\t\tSelf: ::core::marker::Send + 'async_trait,\n\t{\n" in out
	assert "(_self: &'async_trait mut AsyncTrait)" in out
	assert "_self.bump();" in out
	assert "\t\t::std::boxed::Box::pin(__g::<Self>(self))\n\t}\n}" in out


def test_scenario_c_local_drops_all_thread_requirements():
	out = _expand(SRC_B, local=True)
	assert "Self:" not in out
	assert "::core::marker::Send" not in out
	assert "Future<Output = ()> + 'async_trait>>" in out


SRC_D = """trait Test {
	async fn test(not_okay: Elided, okay: &usize) {}
}"""


def test_scenario_d_hidden_scope_fails_at_parameter():
	with pytest.raises(AmbiguousBorrowScope) as exc:
		_expand(SRC_D, carriers={"Elided": 1})
	span = exc.value.span
	assert SRC_D[span.start : span.end] == "not_okay: Elided"
	assert span.line == 2


def test_scenario_e_placeholder_binds_to_call_scope():
	src = "trait Test {\n\tasync fn test(elided: Elided<'_>, okay: &usize) {}\n}"
	out = _expand(src, carriers={"Elided": 1})
	assert "fn test<'async_trait>(elided: Elided<'async_trait>, okay: &'async_trait usize)" in out
	assert "__test::<Self>(elided, okay)" in out


SRC_KEEP = """/// Storage.
pub trait Store<K: Eq + Hash, V = ()>: Sync
where
	K: Clone,
{
	/// Looks up a key.
	#[must_use]
	fn peek(&self, key: &K) -> Option<&V>;

	type Iter<'a>: Iterator<Item = &'a V>
	where
		Self: 'a;

	/// Fetches a key.
	#[inline]
	async fn fetch(&self, key: K) -> Option<V>;
}"""


def test_untouched_text_is_byte_identical():
	out = _expand(SRC_KEEP)
	assert out.startswith(SRC_KEEP[: SRC_KEEP.index("async fn fetch")])
	assert out.endswith(";\n}")
	assert "fn fetch<'async_trait>(&'async_trait self, key: K) -> " + HANDLE.format("Option<V>") in out
	assert "\twhere\n\t\tK: 'async_trait,\n\t\tV: 'async_trait;" in out


def test_sync_only_item_is_unchanged():
	src = "impl Plain for S {\n\tfn f(&self) -> u8 {\n\t\t1\n\t}\n}"
	expanded = expand_item(parse_item(src), ExpansionContext())
	assert expanded.text == src
	assert expanded.methods == []


SRC_IMPL = """impl Runner for Job {
	async fn run(&self) {
		Self::log(self.id).await;
	}
}"""


def test_impl_substitutes_concrete_self():
	out = _expand(SRC_IMPL)
	assert "Self: ::core::marker::Sync + 'async_trait," in out
	assert "async fn __run<'async_trait>(_self: &'async_trait Job)" in out
	assert "<Job>::log(_self.id).await;" in out
	assert "::std::boxed::Box::pin(__run(self))" in out


def test_impl_forwards_patterns_through_generated_names():
	src = """impl Adder for Calc {
	async fn add(&self, (a, b): (u32, u32), mut acc: u32) -> u32 {
		acc += a + b;
		acc
	}
}"""
	out = _expand(src)
	assert "fn add<'async_trait>(&'async_trait self, __arg0: (u32, u32), acc: u32) -> " + HANDLE.format("u32") in out
	assert "(_self: &'async_trait Calc, (a, b): (u32, u32), mut acc: u32) -> u32" in out
	assert "__add(self, __arg0, acc)" in out


def test_generic_impl_passes_type_params_explicitly():
	src = """impl<T: Clone> Source<T> for Repo<T> {
	async fn load<U>(&self, id: U) -> T where U: Into<u64> {
		self.fetch(id.into())
	}
}"""
	out = _expand(src)
	assert "fn load<'async_trait, U>(&'async_trait self, id: U) -> " + HANDLE.format("T") in out
	assert "\t\tU: Into<u64>,\n\t\tT: 'async_trait,\n\t\tU: 'async_trait,\n" in out
	assert "async fn __load<'async_trait, T: Clone, U>(_self: &'async_trait Repo<T>, id: U) -> T" in out
	assert "__load::<T, U>(self, id)" in out


def test_impl_trait_argument_becomes_named_parameter():
	src = "trait Feed {\n\tasync fn feed(&self, items: impl Iterator<Item = u8> + Send) {}\n}"
	out = _expand(src)
	assert "(&'async_trait self, items: impl Iterator<Item = u8> + Send + 'async_trait)" in out
	assert "__Impl0: Iterator<Item = u8> + Send + 'async_trait, AsyncTrait: ?Sized + Feed" in out
	assert "(_self: &'async_trait AsyncTrait, items: __Impl0) {}" in out
	assert "__feed::<_, Self>(self, items)" in out


def test_impl_trait_argument_without_receiver_still_names_self():
	src = "trait Sink {\n\tasync fn feed(items: impl Iterator<Item = u8> + Send) {}\n}"
	out = _expand(src)
	assert (
		"\t\tasync fn __feed<'async_trait, __Impl0: Iterator<Item = u8> + Send + 'async_trait, "
		"AsyncTrait: ?Sized + Sink>(items: __Impl0) {}\n"
	) in out
	assert "\t\t::std::boxed::Box::pin(__feed::<_, Self>(items))\n" in out


def test_nested_impl_trait_arguments_are_numbered_in_order():
	src = "impl Merge for Pool {\n\tasync fn merge(&self, a: &impl Read, b: Vec<impl Read + Sync>) {}\n}"
	out = _expand(src)
	assert "__Impl0: Read + 'async_trait, __Impl1: Read + Sync + 'async_trait>" in out
	assert "(_self: &'async_trait Pool, a: &'async_trait __Impl0, b: Vec<__Impl1>) {}" in out
	assert "__merge::<_, _>(self, a, b)" in out


def test_rename_receiver_keeps_module_paths_and_literals():
	body = '{ self.x; self::helper(); let s = "self"; }'
	assert rename_receiver(body) == '{ _self.x; self::helper(); let s = "self"; }'


def test_replace_self_type_expression_forms():
	text = replace_self_type("Self::new(Self { a })", "Job::<T>", "<Job<T>>")
	assert text == "<Job<T>>::new(Job::<T> { a })"


def test_unsafe_method_wraps_inner_call():
	src = "impl Raw for Port {\n\tasync unsafe fn poke(&mut self, v: u8) {\n\t\tself.write(v);\n\t}\n}"
	out = _expand(src)
	assert "\tunsafe fn poke<'async_trait>(&'async_trait mut self, v: u8) -> " + HANDLE.format("()") in out
	assert "async unsafe fn __poke<'async_trait>(_self: &'async_trait mut Port, v: u8) {" in out
	assert "::std::boxed::Box::pin(unsafe { __poke(self, v) })" in out


def test_inner_body_opens_on_signature_line_and_is_reindented():
	src = 'impl Raw for Port {\n\tasync fn poke(&mut self, v: u8) {\n\t\tself.write(v);\n\t\tlog("a\n\tb");\n\t}\n}'
	out = _expand(src)
	expected = (
		"\t{\n"
		"\t\tasync fn __poke<'async_trait>(_self: &'async_trait mut Port, v: u8) {\n"
		"\t\t\t_self.write(v);\n"
		'\t\t\tlog("a\n\tb");\n'
		"\t\t}\n"
		"\t\t::std::boxed::Box::pin(__poke(self, v))\n"
		"\t}\n}"
	)
	assert out.endswith(expected)


def test_inner_where_clause_puts_body_on_its_own_line():
	src = "trait Load {\n\tasync fn load<T>(&self, t: T) {\n\t\tdrop(t);\n\t}\n}"
	out = _expand(src)
	assert "(_self: &'async_trait AsyncTrait, t: T)\n\t\twhere\n\t\t\tT: 'async_trait,\n\t\t{\n\t\t\tdrop(t);\n\t\t}\n" in out
