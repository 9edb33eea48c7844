# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Borrow-scope (lifetime) elaboration for one method signature.

An `async fn` captures every reference it is given, so the boxed future the
rewritten method returns may not outlive any of them. The elaborator makes
that explicit: it invents one fresh call scope (`'async_trait`), writes it on
every reference whose scope was left implicit, and ties every named scope and
every type parameter the signature uses to it.

The pass is functional. Input nodes are never mutated; rewritten nodes are
fresh copies made with `dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Set

from asynctrait.core.span import Span
from asynctrait.parser.ast import (
	ArrayType,
	BindingArg,
	Bound,
	ConstraintArg,
	FnParam,
	GenericArg,
	ImplTraitType,
	LifetimeArg,
	LifetimeBound,
	MethodSignature,
	PathSegment,
	PathType,
	PtrType,
	QSelf,
	RefType,
	SelfParam,
	SliceType,
	TraitBound,
	TraitObjectType,
	TupleType,
	TypeArg,
	TypeExpr,
)

CALL_SCOPE = "'async_trait"
PLACEHOLDER = "'_"
STATIC = "'static"


class AmbiguousBorrowScope(ValueError):
	"""A type hides a borrow behind a declaration that takes scope parameters."""

	code = "E-AMBIGUOUS-BORROW-SCOPE"

	def __init__(self, message: str, *, span: Span, name: str) -> None:
		super().__init__(message)
		self.span = span
		self.name = name
		self.notes = [f"indicate the anonymous scope: `{name}<'_>`, or name it explicitly"]


@dataclass
class ElaboratedSignature:
	"""Result of elaborating one method signature."""

	signature: MethodSignature
	call_scope: str
	# Scope parameters to add to the method's generic list (always the call scope).
	introduced: List[str] = field(default_factory=list)
	# `'a: 'call` / `T: 'call` predicates, rendered.
	outlives: List[str] = field(default_factory=list)
	# Number of implicit scopes that now name the call scope.
	rewritten: int = 0


def fresh_scope(taken: Iterable[str]) -> str:
	"""Return `'async_trait`, or the first `'async_traitN` not in `taken`."""
	used = set(taken)
	if CALL_SCOPE not in used:
		return CALL_SCOPE
	n = 1
	while f"{CALL_SCOPE}{n}" in used:
		n += 1
	return f"{CALL_SCOPE}{n}"


def elaborate(
	sig: MethodSignature,
	*,
	carriers: Optional[Dict[str, int]] = None,
	taken: Iterable[str] = (),
	outer_types: Sequence[str] = (),
) -> ElaboratedSignature:
	"""
	Elaborate the borrow scopes of `sig`.

	`carriers` maps locally declared names to their number of scope
	parameters; naming one of them with no scope argument raises
	`AmbiguousBorrowScope`. `taken` lists scope names already in use around
	the method. `outer_types` are the enclosing declaration's type parameters;
	those the signature mentions get a `T: 'call` predicate.
	"""
	declared = sig.generics.lifetimes if sig.generics is not None else []
	scope = fresh_scope([*taken, *declared])
	walker = _Walker(scope, carriers or {})

	receiver = walker.receiver(sig.receiver) if sig.receiver is not None else None
	params: List[FnParam] = []
	for param in sig.params:
		params.append(replace(param, ty=walker.type(param.ty, site=param.span, arg_position=True)))
	output = None
	if sig.output is not None:
		output = walker.type(sig.output, site=sig.output.span)

	outlives: List[str] = []
	for name in [*declared, *walker.named]:
		pred = f"{name}: {scope}"
		if name != STATIC and name != scope and pred not in outlives:
			outlives.append(pred)
	method_types = sig.generics.type_names if sig.generics is not None else []
	for name in [*(t for t in outer_types if t in walker.mentioned), *method_types]:
		pred = f"{name}: {scope}"
		if pred not in outlives:
			outlives.append(pred)

	return ElaboratedSignature(
		signature=replace(sig, receiver=receiver, params=params, output=output),
		call_scope=scope,
		introduced=[scope],
		outlives=outlives,
		rewritten=walker.count,
	)


class _Walker:
	def __init__(self, scope: str, carriers: Dict[str, int]) -> None:
		self.scope = scope
		self.carriers = carriers
		self.count = 0
		self.named: List[str] = []
		self.mentioned: Set[str] = set()

	def lifetime(self, name: Optional[str]) -> str:
		if name is None or name == PLACEHOLDER:
			self.count += 1
			return self.scope
		if name not in self.named:
			self.named.append(name)
		return name

	def receiver(self, param: SelfParam) -> SelfParam:
		if param.kind == "ref":
			return replace(param, lifetime=self.lifetime(param.lifetime))
		if param.kind == "typed" and param.ty is not None:
			return replace(param, ty=self.type(param.ty, site=param.span))
		return param

	def type(self, ty: TypeExpr, *, site: Span, arg_position: bool = False) -> TypeExpr:
		if isinstance(ty, RefType):
			return replace(
				ty,
				lifetime=self.lifetime(ty.lifetime),
				inner=self.type(ty.inner, site=site, arg_position=arg_position),
			)
		if isinstance(ty, PathType):
			return self.path(ty, site=site, arg_position=arg_position)
		if isinstance(ty, (PtrType, SliceType, ArrayType)):
			return replace(ty, inner=self.type(ty.inner, site=site, arg_position=arg_position))
		if isinstance(ty, TupleType):
			return replace(ty, elems=[self.type(e, site=site, arg_position=arg_position) for e in ty.elems])
		if isinstance(ty, TraitObjectType):
			return replace(ty, bounds=self.bounds(ty.bounds, site=site))
		if isinstance(ty, ImplTraitType):
			bounds = self.bounds(ty.bounds, site=site)
			if arg_position and not any(isinstance(b, LifetimeBound) and b.name == self.scope for b in bounds):
				# The future holds the argument, so its hidden type must outlive the call.
				bounds = [*bounds, LifetimeBound(name=self.scope)]
			return replace(ty, bounds=bounds)
		# Function pointers, macros, `!` and `_` carry no call-scoped borrows.
		return ty

	def path(self, path: PathType, *, site: Span, arg_position: bool = False) -> PathType:
		if path.qself is None and not path.leading_colon:
			self.mentioned.add(path.segments[0].name)
		last = path.last
		arity = self.carriers.get(last.name)
		if arity and last.fn_inputs is None and not any(isinstance(a, LifetimeArg) for a in last.args or []):
			raise AmbiguousBorrowScope(
				f"`{last.name}` takes {arity} scope parameter{'s' if arity != 1 else ''} but none was given; "
				f"the borrow it carries cannot be tied to the call",
				span=site,
				name=last.name,
			)
		qself = path.qself
		if qself is not None:
			qself = QSelf(
				ty=self.type(qself.ty, site=site, arg_position=arg_position),
				trait=self.path(qself.trait, site=site) if qself.trait is not None else None,
			)
		segments = [self.segment(seg, site=site, arg_position=arg_position) for seg in path.segments]
		return replace(path, segments=segments, qself=qself)

	def segment(self, seg: PathSegment, *, site: Span, arg_position: bool = False) -> PathSegment:
		if seg.fn_inputs is not None or seg.args is None:
			# `Fn(&T) -> &U` sugar introduces its own higher-ranked scopes.
			return seg
		return replace(seg, args=[self.generic_arg(a, site=site, arg_position=arg_position) for a in seg.args])

	def generic_arg(self, arg: GenericArg, *, site: Span, arg_position: bool = False) -> GenericArg:
		if isinstance(arg, LifetimeArg):
			return LifetimeArg(name=self.lifetime(arg.name))
		if isinstance(arg, TypeArg):
			return TypeArg(ty=self.type(arg.ty, site=site, arg_position=arg_position))
		if isinstance(arg, BindingArg):
			return replace(arg, ty=self.type(arg.ty, site=site, arg_position=arg_position))
		if isinstance(arg, ConstraintArg):
			return replace(arg, bounds=self.bounds(arg.bounds, site=site))
		return arg

	def bounds(self, bounds: List[Bound], *, site: Span) -> List[Bound]:
		out: List[Bound] = []
		for bound in bounds:
			if isinstance(bound, LifetimeBound):
				out.append(LifetimeBound(name=self.lifetime(bound.name)))
			elif isinstance(bound, TraitBound) and bound.for_lifetimes is None:
				out.append(replace(bound, path=self.path(bound.path, site=site)))
			else:
				out.append(bound)
		return out


__all__ = [
	"CALL_SCOPE",
	"AmbiguousBorrowScope",
	"ElaboratedSignature",
	"elaborate",
	"fresh_scope",
]
