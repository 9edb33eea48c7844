# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Expansion engine: rewrites every `async fn` of a trait or impl block.

Each async method becomes a plain method returning a boxed, pinned future
bound by the call scope. When the method has a body, the body moves into a
private inner `async fn __<name>` declared inside the new body, and the outer
method only pins a call to it:

	fn run<'async_trait>(&'async_trait self) -> ::core::pin::Pin<...>
	where
		Self: ::core::marker::Sync + 'async_trait,
	{
		async fn __run<'async_trait, AsyncTrait: ?Sized + Tr + ...>(_self: &'async_trait AsyncTrait) {
			/* original body */
		}
		::std::boxed::Box::pin(__run::<Self>(self))
	}

Only the text from each async method's signature to the end of its body is
replaced; attributes, doc comments, other items and everything between them
are copied from the source unchanged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple

from lark import Token

from asynctrait.parser.ast import (
	ArrayType,
	ConstParam,
	ContractDeclaration,
	FnParam,
	ImplTraitType,
	Item,
	LifetimeParam,
	Method,
	MethodSignature,
	PathSegment,
	PathType,
	PtrType,
	RefType,
	SelfParam,
	SliceType,
	TupleType,
	TypeArg,
	TypeExpr,
	TypeParam,
)
from asynctrait.parser.parser import is_punct, lex
from asynctrait.parser.printer import render_bounds, render_generic_param, render_path, render_type

from .context import ExpansionContext
from .lifetime import ElaboratedSignature, elaborate
from .receiver import Receiver, classify_receiver

logger = logging.getLogger(__name__)

SEND = "::core::marker::Send"
SYNC = "::core::marker::Sync"
INNER_RECEIVER = "_self"
# Generic parameter standing for `Self` in the inner function of a trait default body.
SELF_PARAM = "AsyncTrait"
# Prefix of the type parameters that replace `impl Trait` arguments in the inner function.
IMPL_PARAM = "__Impl"

_IDENT_PATTERN = re.compile(r"(mut\s+)?(r#[A-Za-z_][A-Za-z0-9_]*|[A-Za-z_][A-Za-z0-9_]*)")


@dataclass
class ExpandedMethod:
	name: str
	receiver: Receiver
	# Marker trait injected as `Self: <bound> + 'call`, or None.
	bound: Optional[str]
	elaborated: ElaboratedSignature
	has_body: bool


@dataclass
class ExpandedItem:
	text: str
	methods: List[ExpandedMethod] = field(default_factory=list)


def capability_bound(receiver: Receiver, has_body: bool, local: bool) -> Optional[str]:
	"""
	Select the marker trait `Self` must satisfy for the method's future to be `Send`.

	A default body borrowing `&self` across an await needs `Self: Sync`; one
	borrowing `&mut self` needs `Self: Send`. Local items, bodiless methods and
	by-value/no receivers get nothing.
	"""
	if local or not has_body:
		return None
	if receiver is Receiver.BY_REFERENCE:
		return SYNC
	if receiver is Receiver.BY_MUT_REFERENCE:
		return SEND
	return None


def handle_type(output: str, scope: str, *, local: bool) -> str:
	"""The boxed future type an expanded method returns."""
	send = "" if local else f" + {SEND}"
	return (
		f"::core::pin::Pin<::std::boxed::Box<dyn ::core::future::Future<Output = {output}>{send} + {scope}>>"
	)


def expand_item(
	item: Item,
	ctx: ExpansionContext,
	*,
	carriers: Optional[Dict[str, int]] = None,
) -> ExpandedItem:
	"""
	Expand every async method of `item`.

	Raises `AmbiguousBorrowScope` when a signature hides a borrow the call
	scope cannot be attached to.
	"""
	expander = _Expander(item, ctx, carriers or {})
	source = item.source
	pieces: List[str] = []
	methods: List[ExpandedMethod] = []
	pos = 0
	for method in item.methods:
		if not method.sig.is_async:
			continue
		start, end = method.sig.span.start, method.span.end
		text, info = expander.method(method)
		pieces.append(source[pos:start])
		pieces.append(text)
		methods.append(info)
		pos = end
	pieces.append(source[pos:])
	return ExpandedItem(text="".join(pieces), methods=methods)


def retokenize(text: str, fn: Callable[[List[Token], int], Optional[str]]) -> str:
	"""
	Rewrite individual tokens of `text`.

	`fn(tokens, i)` returns the replacement for `tokens[i]` or None to keep it.
	Whitespace and comments between tokens are preserved.
	"""
	tokens = lex(text)
	out: List[str] = []
	pos = 0
	for i, tok in enumerate(tokens):
		repl = fn(tokens, i)
		if repl is None:
			continue
		out.append(text[pos : tok.start_pos])
		out.append(repl)
		pos = tok.end_pos
	out.append(text[pos:])
	return "".join(out)


def _followed_by_path_sep(tokens: List[Token], i: int) -> bool:
	return i + 1 < len(tokens) and is_punct(tokens[i + 1], "::")


def rename_receiver(text: str) -> str:
	"""`self` -> `_self`, leaving `self::` module paths alone."""

	def swap(tokens: List[Token], i: int) -> Optional[str]:
		if tokens[i].type == "SELF" and not _followed_by_path_sep(tokens, i):
			return INNER_RECEIVER
		return None

	return retokenize(text, swap)


def replace_self_type(text: str, plain: str, qualified: str) -> str:
	"""
	Replace the `Self` type.

	`Self::X` becomes `<qualified>::X`; any other `Self` becomes `plain`.
	"""

	def swap(tokens: List[Token], i: int) -> Optional[str]:
		tok = tokens[i]
		if tok.type != "IDENT" or tok.value != "Self":
			return None
		return qualified if _followed_by_path_sep(tokens, i) else plain

	return retokenize(text, swap)


def lift_impl_trait(ty: TypeExpr, lifted: List[ImplTraitType]) -> TypeExpr:
	"""
	Replace every `impl Trait` inside `ty` with a named type parameter.

	Each replaced type is appended to `lifted` and named `__Impl0`, `__Impl1`, ... in order.
	"""
	if isinstance(ty, ImplTraitType):
		lifted.append(ty)
		return PathType(segments=[PathSegment(name=f"{IMPL_PARAM}{len(lifted) - 1}")], span=ty.span)
	if isinstance(ty, (RefType, PtrType, SliceType, ArrayType)):
		return replace(ty, inner=lift_impl_trait(ty.inner, lifted))
	if isinstance(ty, TupleType):
		return replace(ty, elems=[lift_impl_trait(e, lifted) for e in ty.elems])
	if isinstance(ty, PathType):
		segments = []
		for seg in ty.segments:
			if seg.args:
				args = [TypeArg(ty=lift_impl_trait(a.ty, lifted)) if isinstance(a, TypeArg) else a for a in seg.args]
				seg = replace(seg, args=args)
			segments.append(seg)
		return replace(ty, segments=segments)
	return ty


def _reindent(text: str, unit: str) -> str:
	"""Indent every line after the first by `unit`; lines inside string literals are left alone."""
	literals = [(t.start_pos, t.end_pos) for t in lex(text) if t.type in {"STRING", "RAW_STRING"}]
	lines = text.split("\n")
	offset = len(lines[0]) + 1
	for k in range(1, len(lines)):
		line = lines[k]
		if line and not any(start < offset < end for start, end in literals):
			lines[k] = unit + line
		offset += len(line) + 1
	return "\n".join(lines)


class _Expander:
	"""Per-item expansion state; created once per annotated item."""

	def __init__(self, item: Item, ctx: ExpansionContext, carriers: Dict[str, int]) -> None:
		self.item = item
		self.ctx = ctx
		self.carriers = carriers
		self.source = item.source
		self.is_trait = isinstance(item, ContractDeclaration)
		self.unit = "\t" if "\n\t" in self.source else "    "
		self.params = item.generics.params if item.generics is not None else []
		if isinstance(item, ContractDeclaration):
			self.label = item.name
		else:
			self.label = render_type(item.self_ty)

	# ---- Self substitution ----------------------------------------------

	def _sig_self(self, text: str) -> str:
		"""`Self` as the inner function's signature must spell it."""
		if isinstance(self.item, ContractDeclaration):
			return replace_self_type(text, SELF_PARAM, SELF_PARAM)
		self_ty = render_type(self.item.self_ty)
		if self.item.trait_ref is not None:
			qualified = f"<{self_ty} as {render_type(self.item.trait_ref)}>"
		else:
			qualified = f"<{self_ty}>"
		return replace_self_type(text, self_ty, qualified)

	def _body_self(self, text: str) -> str:
		"""`Self` as the inner function's body must spell it (expression position)."""
		if isinstance(self.item, ContractDeclaration):
			return replace_self_type(text, SELF_PARAM, SELF_PARAM)
		self_ty = self.item.self_ty
		plain = render_path(self_ty, turbofish=True) if isinstance(self_ty, PathType) else render_type(self_ty)
		return replace_self_type(text, plain, f"<{render_type(self_ty)}>")

	# ---- methods ---------------------------------------------------------

	def method(self, method: Method) -> Tuple[str, ExpandedMethod]:
		sig = method.sig
		receiver = classify_receiver(sig.receiver)
		method_text = self.source[sig.span.start : method.span.end]
		taken = {p.name for p in self.params if isinstance(p, LifetimeParam)}
		taken.update(t.value for t in lex(method_text) if t.type == "LIFETIME")
		outer_types = [p.name for p in self.params if isinstance(p, TypeParam)]
		elab = elaborate(sig, carriers=self.carriers, taken=taken, outer_types=outer_types)
		bound = capability_bound(receiver, method.has_body, self.ctx.local)
		logger.debug(
			"expanding %s::%s (receiver=%s, body=%s, bound=%s, scope=%s)",
			self.label,
			sig.name,
			receiver.name,
			method.has_body,
			bound,
			elab.call_scope,
		)
		info = ExpandedMethod(
			name=sig.name, receiver=receiver, bound=bound, elaborated=elab, has_body=method.has_body
		)
		return self._render(method, receiver, elab, bound), info

	def _render(self, method: Method, receiver: Receiver, elab: ElaboratedSignature, bound: Optional[str]) -> str:
		sig = method.sig
		esig = elab.signature
		scope = elab.call_scope
		indent = self._indent_of(sig.span.start)
		i1 = indent + self.unit
		i2 = i1 + self.unit

		output = render_type(esig.output) if esig.output is not None else "()"
		forwards = self._forwards(esig.params) if method.has_body else []

		params: List[str] = []
		if esig.receiver is not None:
			params.append(self._outer_receiver(esig.receiver, has_body=method.has_body))
		for i, param in enumerate(esig.params):
			name = forwards[i][0] if forwards else param.pattern
			params.append(f"{_attrs(param)}{name}: {render_type(param.ty)}")

		where = [p.text for p in sig.where_clause.predicates] if sig.where_clause is not None else []
		where.extend(elab.outlives)
		if bound is not None:
			where.append(f"Self: {bound} + {scope}")

		lines = [
			f"{_qualifiers(sig)}fn {sig.name}{_method_generics(esig, scope)}({', '.join(params)})"
			f" -> {handle_type(output, scope, local=self.ctx.local)}"
		]
		if not method.has_body:
			if where:
				lines.append(f"{indent}where")
				lines.extend(f"{i1}{pred}," for pred in where[:-1])
				lines.append(f"{i1}{where[-1]};")
			else:
				lines[-1] += ";"
			return "\n".join(lines)

		if where:
			lines.append(f"{indent}where")
			lines.extend(f"{i1}{pred}," for pred in where)
		lines.append(f"{indent}{{")
		lines.extend(self._inner(method, receiver, elab, bound, forwards, i1, i2))
		lines.append(f"{indent}}}")
		return "\n".join(lines)

	def _inner(
		self,
		method: Method,
		receiver: Receiver,
		elab: ElaboratedSignature,
		bound: Optional[str],
		forwards: List[Tuple[str, str]],
		i1: str,
		i2: str,
	) -> List[str]:
		sig = method.sig
		esig = elab.signature
		scope = elab.call_scope
		inner_name = f"__{sig.name}"
		method_params = esig.generics.params if esig.generics is not None else []

		lifetimes = [p.text for p in self.params if isinstance(p, LifetimeParam)]
		lifetimes += [p.text for p in method_params if isinstance(p, LifetimeParam)]
		lifetimes.append(scope)
		types = [render_generic_param(p, with_default=False) for p in self.params if not isinstance(p, LifetimeParam)]
		types += [render_generic_param(p, with_default=False) for p in method_params if not isinstance(p, LifetimeParam)]
		turbofish = [p.name for p in self.params if not isinstance(p, LifetimeParam)]
		turbofish += [p.name for p in method_params if not isinstance(p, LifetimeParam)]

		# `impl Trait` arguments become named parameters, passed as `_` in the turbofish.
		lifted: List[ImplTraitType] = []
		param_types = [lift_impl_trait(p.ty, lifted) for p in esig.params]
		for n, impl in enumerate(lifted):
			types.append(self._sig_self(f"{IMPL_PARAM}{n}: {render_bounds(impl.bounds)}"))
			turbofish.append("_")
		if isinstance(self.item, ContractDeclaration):
			types.append(self._self_param(esig.receiver, bound, scope))
			turbofish.append("Self")
		generics = "<" + ", ".join(lifetimes + types) + ">"

		params: List[str] = []
		args: List[str] = []
		if esig.receiver is not None:
			params.append(self._sig_self(_inner_receiver(esig.receiver)))
			args.append("self")
		for (outer_name, inner_pattern), ty in zip(forwards, param_types):
			params.append(f"{inner_pattern}: {self._sig_self(render_type(ty))}")
			args.append(outer_name)
		ret = f" -> {self._sig_self(render_type(esig.output))}" if esig.output is not None else ""

		where: List[str] = []
		if self.item.where_clause is not None:
			where.extend(p.text for p in self.item.where_clause.predicates)
		if sig.where_clause is not None:
			where.extend(p.text for p in sig.where_clause.predicates)
		where.extend(elab.outlives)

		unsafe = "unsafe " if sig.qualifiers.is_unsafe else ""
		lines = [f"{i1}async {unsafe}fn {inner_name}{generics}({', '.join(params)}){ret}"]
		body = method.body.text if method.body is not None else "{}"
		body = _reindent(self._body_self(rename_receiver(body)), self.unit)
		if where:
			lines.append(f"{i1}where")
			lines.extend(f"{i2}{self._sig_self(pred)}," for pred in where)
			lines.append(f"{i1}{body}")
		else:
			lines[-1] += f" {body}"

		if turbofish:
			call = f"{inner_name}::<{', '.join(turbofish)}>({', '.join(args)})"
		else:
			call = f"{inner_name}({', '.join(args)})"
		if sig.qualifiers.is_unsafe:
			call = f"unsafe {{ {call} }}"
		lines.append(f"{i1}::std::boxed::Box::pin({call})")
		return lines

	def _self_param(self, receiver: Optional[SelfParam], bound: Optional[str], scope: str) -> str:
		"""The `AsyncTrait: ?Sized + Trait<..>` parameter standing for `Self`."""
		assert isinstance(self.item, ContractDeclaration)
		args = [p.name for p in self.params]
		trait = self.item.name + (f"<{', '.join(args)}>" if args else "")
		bounds = [trait]
		if not _takes_self_by_value(receiver):
			bounds.insert(0, "?Sized")
		if bound is not None:
			bounds += [bound, scope]
		return f"{SELF_PARAM}: {' + '.join(bounds)}"

	def _forwards(self, params: List[FnParam]) -> List[Tuple[str, str]]:
		"""
		(outer name, inner pattern) for each parameter.

		Plain bindings keep their name; `mut` moves to the inner function. Any
		other pattern is destructured by the inner function and passed through
		a generated `__argN` name.
		"""
		out: List[Tuple[str, str]] = []
		for i, param in enumerate(params):
			pattern = param.pattern.strip()
			m = _IDENT_PATTERN.fullmatch(pattern)
			if m is not None and m.group(2) not in {"_", "mut", "ref"}:
				out.append((m.group(2), pattern))
			else:
				out.append((f"__arg{i}", pattern))
		return out

	def _outer_receiver(self, receiver: SelfParam, *, has_body: bool) -> str:
		prefix = "".join(a.text + " " for a in receiver.attrs)
		mut = "mut " if receiver.mut_binding and not has_body else ""
		if receiver.kind == "ref":
			return f"{prefix}&{receiver.lifetime} {'mut ' if receiver.mutable_ref else ''}self"
		if receiver.kind == "typed" and receiver.ty is not None:
			return f"{prefix}{mut}self: {render_type(receiver.ty)}"
		return f"{prefix}{mut}self"

	def _indent_of(self, pos: int) -> str:
		line_start = self.source.rfind("\n", 0, pos) + 1
		m = re.match(r"[ \t]*", self.source[line_start:pos])
		return m.group() if m is not None else ""


def _takes_self_by_value(receiver: Optional[SelfParam]) -> bool:
	"""`self`, `mut self` and `self: Self` move a sized `Self`."""
	if receiver is None:
		return False
	if receiver.kind == "value":
		return True
	return receiver.kind == "typed" and isinstance(receiver.ty, PathType) and receiver.ty.is_ident("Self")


def _inner_receiver(receiver: SelfParam) -> str:
	"""The inner function's first parameter, still spelled with `Self`."""
	mut = "mut " if receiver.mut_binding else ""
	if receiver.kind == "ref":
		return f"{INNER_RECEIVER}: &{receiver.lifetime} {'mut ' if receiver.mutable_ref else ''}Self"
	if receiver.kind == "typed" and receiver.ty is not None:
		return f"{mut}{INNER_RECEIVER}: {render_type(receiver.ty)}"
	return f"{mut}{INNER_RECEIVER}: Self"


def _qualifiers(sig: MethodSignature) -> str:
	q = sig.qualifiers
	out = ""
	if q.visibility:
		out += q.visibility + " "
	if q.is_default:
		out += "default "
	if q.is_unsafe:
		out += "unsafe "
	if q.abi:
		out += q.abi + " "
	return out


def _method_generics(sig: MethodSignature, scope: str) -> str:
	params = sig.generics.params if sig.generics is not None else []
	lifetimes = [p.text for p in params if isinstance(p, LifetimeParam)]
	rest = [p.text for p in params if isinstance(p, (TypeParam, ConstParam))]
	return "<" + ", ".join(lifetimes + [scope] + rest) + ">"


def _attrs(param: FnParam) -> str:
	return "".join(a.text + " " for a in param.attrs)


__all__ = [
	"SEND",
	"SYNC",
	"ExpandedItem",
	"ExpandedMethod",
	"capability_bound",
	"expand_item",
	"handle_type",
	"rename_receiver",
	"replace_self_type",
	"retokenize",
]
