# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Syntax model for `#[async_trait]` targets.

The model is a strict ownership tree: declarations own their items, items own
their signatures, signatures own their types. Every node keeps the span of the
source text it was built from (offsets relative to the parsed item), and the
pieces that are never rewritten (attributes, generic parameters, where
predicates, bodies, patterns) also keep their verbatim text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from asynctrait.core.span import Span


@dataclass
class Attribute:
	text: str
	span: Span = field(default_factory=Span)
	is_doc: bool = False


# ---- types -------------------------------------------------------------------


class TypeExpr:
	span: Span


@dataclass
class LifetimeArg:
	name: str


@dataclass
class TypeArg:
	ty: "TypeExpr"


@dataclass
class BindingArg:
	"""Associated type binding, e.g. `Output = T`."""

	name: str
	ty: "TypeExpr"
	args: Optional[List["GenericArg"]] = None


@dataclass
class ConstraintArg:
	"""Associated type constraint, e.g. `Item: Clone`."""

	name: str
	bounds: List["Bound"]
	args: Optional[List["GenericArg"]] = None


@dataclass
class ConstArg:
	text: str


GenericArg = Union[LifetimeArg, TypeArg, BindingArg, ConstraintArg, ConstArg]


@dataclass
class PathSegment:
	name: str
	# None: no angle-bracketed arguments; []: written as `<>`.
	args: Optional[List[GenericArg]] = None
	turbofish: bool = False
	# Parenthesized `Fn(A, B) -> C` sugar.
	fn_inputs: Optional[List["TypeExpr"]] = None
	fn_output: Optional["TypeExpr"] = None


@dataclass
class QSelf:
	ty: "TypeExpr"
	trait: Optional["PathType"] = None


@dataclass
class PathType(TypeExpr):
	segments: List[PathSegment]
	leading_colon: bool = False
	qself: Optional[QSelf] = None
	span: Span = field(default_factory=Span)

	@property
	def last(self) -> PathSegment:
		return self.segments[-1]

	def is_ident(self, name: str) -> bool:
		"""True for a bare single-segment path like `Self` or `T`."""
		return (
			self.qself is None
			and not self.leading_colon
			and len(self.segments) == 1
			and self.segments[0].name == name
			and self.segments[0].args is None
			and self.segments[0].fn_inputs is None
		)


@dataclass
class RefType(TypeExpr):
	inner: TypeExpr
	lifetime: Optional[str] = None
	mutable: bool = False
	span: Span = field(default_factory=Span)


@dataclass
class PtrType(TypeExpr):
	inner: TypeExpr
	mutable: bool = False
	span: Span = field(default_factory=Span)


@dataclass
class TupleType(TypeExpr):
	elems: List[TypeExpr]
	# `(T)`: a parenthesized type, not a 1-tuple.
	paren: bool = False
	span: Span = field(default_factory=Span)


@dataclass
class SliceType(TypeExpr):
	inner: TypeExpr
	span: Span = field(default_factory=Span)


@dataclass
class ArrayType(TypeExpr):
	inner: TypeExpr
	length: str
	span: Span = field(default_factory=Span)


@dataclass
class NeverType(TypeExpr):
	span: Span = field(default_factory=Span)


@dataclass
class InferType(TypeExpr):
	span: Span = field(default_factory=Span)


@dataclass
class TraitObjectType(TypeExpr):
	bounds: List["Bound"]
	span: Span = field(default_factory=Span)


@dataclass
class ImplTraitType(TypeExpr):
	bounds: List["Bound"]
	span: Span = field(default_factory=Span)


@dataclass
class BareFnType(TypeExpr):
	"""`fn(A) -> B` pointer types; kept verbatim, their scopes are higher-ranked."""

	text: str
	span: Span = field(default_factory=Span)


@dataclass
class MacroType(TypeExpr):
	text: str
	span: Span = field(default_factory=Span)


# ---- bounds and generics -----------------------------------------------------


@dataclass
class LifetimeBound:
	name: str


@dataclass
class TraitBound:
	path: PathType
	maybe: bool = False
	for_lifetimes: Optional[str] = None
	paren: bool = False


Bound = Union[LifetimeBound, TraitBound]


@dataclass
class LifetimeParam:
	name: str
	bounds: List[str]
	text: str


@dataclass
class TypeParam:
	name: str
	bounds: List[Bound]
	default: Optional[TypeExpr]
	text: str


@dataclass
class ConstParam:
	name: str
	ty: TypeExpr
	default: Optional[str]
	text: str


GenericParam = Union[LifetimeParam, TypeParam, ConstParam]


@dataclass
class Generics:
	params: List[GenericParam]
	span: Span = field(default_factory=Span)

	@property
	def lifetimes(self) -> List[str]:
		return [p.name for p in self.params if isinstance(p, LifetimeParam)]

	@property
	def type_names(self) -> List[str]:
		return [p.name for p in self.params if isinstance(p, TypeParam)]


@dataclass
class WherePredicate:
	text: str
	span: Span = field(default_factory=Span)


@dataclass
class LifetimePredicate(WherePredicate):
	lifetime: str = ""
	bounds: List[str] = field(default_factory=list)


@dataclass
class TypePredicate(WherePredicate):
	bounded: Optional[TypeExpr] = None
	bounds: List[Bound] = field(default_factory=list)
	for_lifetimes: Optional[str] = None


@dataclass
class WhereClause:
	predicates: List[WherePredicate]
	span: Span = field(default_factory=Span)


# ---- functions ---------------------------------------------------------------


@dataclass
class SelfParam:
	"""
	Method receiver as written.

	`kind` is "ref" for `&self`/`&mut self`, "value" for `self`/`mut self` and
	"typed" for `self: Type`. Shape classification lives in the expansion
	engine's receiver classifier; the parser only records what was written.
	"""

	kind: str
	mutable_ref: bool = False
	lifetime: Optional[str] = None
	mut_binding: bool = False
	ty: Optional[TypeExpr] = None
	attrs: List[Attribute] = field(default_factory=list)
	span: Span = field(default_factory=Span)


@dataclass
class FnParam:
	pattern: str
	ty: TypeExpr
	attrs: List[Attribute] = field(default_factory=list)
	span: Span = field(default_factory=Span)


@dataclass
class FnQualifiers:
	visibility: Optional[str] = None
	is_default: bool = False
	is_const: bool = False
	is_async: bool = False
	is_unsafe: bool = False
	abi: Optional[str] = None


@dataclass
class MethodSignature:
	name: str
	qualifiers: FnQualifiers
	generics: Optional[Generics] = None
	receiver: Optional[SelfParam] = None
	params: List[FnParam] = field(default_factory=list)
	output: Optional[TypeExpr] = None
	where_clause: Optional[WhereClause] = None
	span: Span = field(default_factory=Span)

	@property
	def is_async(self) -> bool:
		return self.qualifiers.is_async


@dataclass
class Block:
	text: str
	span: Span = field(default_factory=Span)


@dataclass
class Method:
	attrs: List[Attribute]
	sig: MethodSignature
	body: Optional[Block]
	span: Span = field(default_factory=Span)

	@property
	def has_body(self) -> bool:
		return self.body is not None


@dataclass
class OtherItem:
	"""Associated type, associated const or item macro; passed through verbatim."""

	kind: str
	name: Optional[str]
	text: str
	span: Span = field(default_factory=Span)


DeclItem = Union[Method, OtherItem]


# ---- declarations ------------------------------------------------------------


@dataclass
class ContractDeclaration:
	"""A `trait` declaration."""

	name: str
	attrs: List[Attribute]
	items: List[DeclItem]
	source: str
	visibility: Optional[str] = None
	is_unsafe: bool = False
	generics: Optional[Generics] = None
	supertraits: List[Bound] = field(default_factory=list)
	where_clause: Optional[WhereClause] = None
	span: Span = field(default_factory=Span)

	@property
	def methods(self) -> List[Method]:
		return [it for it in self.items if isinstance(it, Method)]


@dataclass
class ImplementationDeclaration:
	"""An `impl Trait for Type` block, or an inherent `impl Type` block."""

	self_ty: TypeExpr
	attrs: List[Attribute]
	items: List[DeclItem]
	source: str
	trait_ref: Optional[TypeExpr] = None
	negative: bool = False
	is_unsafe: bool = False
	generics: Optional[Generics] = None
	where_clause: Optional[WhereClause] = None
	span: Span = field(default_factory=Span)

	@property
	def methods(self) -> List[Method]:
		return [it for it in self.items if isinstance(it, Method)]

	@property
	def is_inherent(self) -> bool:
		return self.trait_ref is None


Item = Union[ContractDeclaration, ImplementationDeclaration]


__all__ = [
	"Attribute",
	"TypeExpr",
	"LifetimeArg",
	"TypeArg",
	"BindingArg",
	"ConstraintArg",
	"ConstArg",
	"GenericArg",
	"PathSegment",
	"QSelf",
	"PathType",
	"RefType",
	"PtrType",
	"TupleType",
	"SliceType",
	"ArrayType",
	"NeverType",
	"InferType",
	"TraitObjectType",
	"ImplTraitType",
	"BareFnType",
	"MacroType",
	"LifetimeBound",
	"TraitBound",
	"Bound",
	"LifetimeParam",
	"TypeParam",
	"ConstParam",
	"GenericParam",
	"Generics",
	"WherePredicate",
	"LifetimePredicate",
	"TypePredicate",
	"WhereClause",
	"SelfParam",
	"FnParam",
	"FnQualifiers",
	"MethodSignature",
	"Block",
	"Method",
	"OtherItem",
	"DeclItem",
	"ContractDeclaration",
	"ImplementationDeclaration",
	"Item",
]
