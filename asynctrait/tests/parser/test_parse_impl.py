from __future__ import annotations

from asynctrait.parser import parse_item, parse_type, render_type
from asynctrait.parser.ast import ImplementationDeclaration, PathType, RefType, TraitObjectType, TypeArg


def test_trait_impl_fields():
	src = """impl<'a, T> Store<T> for Cache<'a, T>
where
	T: Send,
{
	type Key = u64;
	async fn get(&self, key: u64) -> Option<T> {
		self.inner.get(&key).cloned()
	}
	fn len(&self) -> usize {
		self.inner.len()
	}
}"""
	decl = parse_item(src)
	assert isinstance(decl, ImplementationDeclaration)
	assert not decl.is_inherent
	assert render_type(decl.trait_ref) == "Store<T>"
	assert render_type(decl.self_ty) == "Cache<'a, T>"
	assert decl.generics.lifetimes == ["'a"]
	assert decl.generics.type_names == ["T"]
	assert [p.text for p in decl.where_clause.predicates] == ["T: Send"]
	assert [m.sig.name for m in decl.methods] == ["get", "len"]
	get = decl.methods[0]
	assert get.sig.is_async
	assert get.body.text == "{\n\t\tself.inner.get(&key).cloned()\n\t}"


def test_inherent_impl_with_qualifiers_and_patterns():
	src = """impl Foo {
	pub(crate) async unsafe fn go(mut self: Box<Self>, (a, b): (u8, u8)) {}
}"""
	decl = parse_item(src)
	assert decl.is_inherent
	go = decl.methods[0]
	assert go.sig.qualifiers.visibility == "pub(crate)"
	assert go.sig.qualifiers.is_async and go.sig.qualifiers.is_unsafe
	receiver = go.sig.receiver
	assert receiver.kind == "typed" and receiver.mut_binding
	assert isinstance(receiver.ty, PathType) and receiver.ty.last.name == "Box"
	assert go.sig.params[0].pattern == "(a, b)"
	assert render_type(go.sig.params[0].ty) == "(u8, u8)"


def test_unsafe_impl_and_default_fn():
	decl = parse_item("unsafe impl<T> Marker for Wrapper<T> {\n\tdefault async fn tick(&mut self) {}\n}")
	assert decl.is_unsafe
	tick = decl.methods[0]
	assert tick.sig.qualifiers.is_default
	assert tick.sig.receiver.mutable_ref


def test_parse_reference_type():
	ty = parse_type("&'a mut Vec<&str>")
	assert isinstance(ty, RefType)
	assert ty.lifetime == "'a" and ty.mutable
	assert isinstance(ty.inner, PathType)
	arg = ty.inner.last.args[0]
	assert isinstance(arg, TypeArg) and isinstance(arg.ty, RefType) and arg.ty.lifetime is None


def test_render_round_trips_bounds_and_qualified_paths():
	ty = parse_type("dyn Fn(&u8) -> &u8 + Send + '_")
	assert isinstance(ty, TraitObjectType)
	assert render_type(ty) == "dyn Fn(&u8) -> &u8 + Send + '_"
	assert render_type(parse_type("<T as Iterator>::Item")) == "<T as Iterator>::Item"
	assert render_type(parse_type("[Option<&'static str>; 4]")) == "[Option<&'static str>; 4]"
