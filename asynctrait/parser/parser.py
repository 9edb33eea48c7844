# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration parser: turns the text of one annotated item into the syntax model.

The grammar lives in `grammar.lark`. Parsing is two-step, like the rest of the
front-end: lark produces a parse tree with positions, then the `_Builder`
walks it into `ast` nodes, slicing verbatim text for everything the expansion
engine must re-emit unchanged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedInput

from asynctrait.core.span import Span

from .ast import (
	ArrayType,
	Attribute,
	BareFnType,
	BindingArg,
	Block,
	Bound,
	ConstArg,
	ConstParam,
	ConstraintArg,
	ContractDeclaration,
	DeclItem,
	FnParam,
	FnQualifiers,
	GenericArg,
	GenericParam,
	Generics,
	ImplementationDeclaration,
	ImplTraitType,
	InferType,
	Item,
	LifetimeArg,
	LifetimeBound,
	LifetimeParam,
	LifetimePredicate,
	MacroType,
	Method,
	MethodSignature,
	NeverType,
	OtherItem,
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
	TypeParam,
	TypePredicate,
	WhereClause,
	WherePredicate,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

# Earley rather than LALR: method signatures mix paths, generic argument lists
# and bounds in ways that are not LALR(1) without a post-lexer, and items are
# small enough that the cost does not matter.
_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="earley",
	lexer="basic",
	start=["item", "type"],
	propagate_positions=True,
	maybe_placeholders=False,
)

_TYPE_RULES = {
	"type_path",
	"qualified_path",
	"ref_type",
	"double_ref_type",
	"ptr_type",
	"unit_type",
	"paren_type",
	"tuple_type",
	"slice_type",
	"array_type",
	"never_type",
	"infer_type",
	"impl_trait_type",
	"dyn_trait_type",
	"bare_fn",
	"macro_type",
}

_DOC_TOKENS = {"DOC_LINE", "DOC_BLOCK"}
_LITERAL_TOKENS = {"STRING", "RAW_STRING", "CHAR"}


class ParseError(ValueError):
	"""
	User-facing parse error for one annotated item.

	Carries the offending span (relative to the parsed text) so the driver can
	turn it into a pinned parser-phase diagnostic.
	"""

	code = "E-PARSE"

	def __init__(self, message: str, *, span: Span) -> None:
		super().__init__(message)
		self.span = span


class MalformedTarget(ParseError):
	"""The attribute was applied to something other than a trait or impl block."""

	code = "E-MALFORMED-TARGET"


def lex(source: str) -> List[Token]:
	"""
	Tokenize `source` with the grammar's lexer.

	Whitespace and ordinary comments are dropped; doc comments are kept as
	`DOC_LINE`/`DOC_BLOCK` tokens. Raises `ParseError` on characters the lexer
	does not know.
	"""
	try:
		return list(_PARSER.lex(source))
	except UnexpectedInput as err:
		raise ParseError(str(err), span=_error_span(source, err)) from err


def is_punct(tok: Token, value: str) -> bool:
	"""True when `tok` is the punctuation `value` (never a literal that spells it)."""
	return tok.type not in _LITERAL_TOKENS and tok.value == value


def parse_item(source: str) -> Item:
	"""
	Parse one trait declaration or impl block (with its outer attributes).

	Raises `MalformedTarget` when the text is some other kind of item and
	`ParseError` when it does not match the grammar.
	"""
	_check_target(source)
	try:
		tree = _PARSER.parse(source, start="item")
	except UnexpectedInput as err:
		raise ParseError(str(err), span=_error_span(source, err)) from err
	return _Builder(source).item(tree)


def parse_type(source: str) -> TypeExpr:
	"""Parse a single type expression."""
	try:
		tree = _PARSER.parse(source, start="type")
	except UnexpectedInput as err:
		raise ParseError(str(err), span=_error_span(source, err)) from err
	return _Builder(source).type(tree)


def _check_target(source: str) -> None:
	"""Reject anything whose head is not `trait`/`impl` before running the grammar."""
	tokens = lex(source)
	i = 0
	while i < len(tokens):
		tok = tokens[i]
		if tok.type in _DOC_TOKENS:
			i += 1
			continue
		if is_punct(tok, "#") and i + 1 < len(tokens) and is_punct(tokens[i + 1], "["):
			i = skip_group(tokens, i + 1) + 1
			continue
		if tok.type == "PUB":
			i += 1
			if i < len(tokens) and is_punct(tokens[i], "("):
				i = skip_group(tokens, i) + 1
			continue
		if tok.type == "UNSAFE":
			i += 1
			continue
		if tok.type in {"TRAIT", "IMPL"}:
			return
		raise MalformedTarget(
			f"`async_trait` can only be applied to a trait declaration or an impl block, found `{tok.value}`",
			span=Span.at(source, tok.start_pos, len(source.rstrip())),
		)
	raise MalformedTarget(
		"`async_trait` can only be applied to a trait declaration or an impl block, found nothing",
		span=Span.at(source, len(source), len(source)),
	)


_OPEN = {"(": ")", "[": "]", "{": "}"}
_CLOSE = {")", "]", "}"}


def skip_group(tokens: List[Token], i: int) -> int:
	"""
	Given the index of an opening delimiter, return the index of its match.

	Raises `ParseError` on unbalanced input.
	"""
	stack: list[str] = []
	start = tokens[i]
	j = i
	while j < len(tokens):
		tok = tokens[j]
		if tok.type not in _LITERAL_TOKENS:
			if tok.value in _OPEN:
				stack.append(_OPEN[tok.value])
			elif tok.value in _CLOSE:
				if not stack or stack[-1] != tok.value:
					raise ParseError(f"mismatched closing delimiter `{tok.value}`", span=Span.from_loc(tok))
				stack.pop()
				if not stack:
					return j
		j += 1
	raise ParseError(f"unclosed delimiter `{start.value}`", span=Span.from_loc(start))


def _error_span(source: str, err: UnexpectedInput) -> Span:
	token = getattr(err, "token", None)
	start = getattr(token, "start_pos", None)
	end = getattr(token, "end_pos", None)
	if start is None:
		start = getattr(err, "pos_in_stream", None)
	# UnexpectedEOF reports -1.
	if start is None or start < 0:
		start = len(source)
		end = None
	if end is None:
		end = min(start + 1, len(source))
	return Span.at(source, start, end)


def _name(node: Tree | Token) -> str:
	if isinstance(node, Tree):
		data = node.data
		if isinstance(data, Token):
			return data.value
		return data
	if isinstance(node, Token):
		return node.type
	return str(node)


def _subtrees(node: Tree, name: Optional[str] = None) -> Iterable[Tree]:
	for child in node.children:
		if isinstance(child, Tree) and (name is None or _name(child) == name):
			yield child


def _subtree(node: Tree, name: str) -> Optional[Tree]:
	return next(_subtrees(node, name), None)


def _tokens(node: Tree, kind: Optional[str] = None) -> List[Token]:
	return [c for c in node.children if isinstance(c, Token) and (kind is None or c.type == kind)]


def _has_token(node: Tree, kind: str) -> bool:
	return any(isinstance(c, Token) and c.type == kind for c in node.children)


def _type_child(node: Tree) -> Optional[Tree]:
	return next((c for c in _subtrees(node) if _name(c) in _TYPE_RULES), None)


class _Builder:
	"""Builds `ast` nodes from a lark parse tree over `source`."""

	def __init__(self, source: str) -> None:
		self.source = source

	def span(self, node: Tree | Token) -> Span:
		if isinstance(node, Token):
			return Span.from_loc(node)
		return Span.from_loc(node.meta)

	def text(self, node: Tree | Token) -> str:
		span = self.span(node)
		if not span.known:
			return ""
		return self.source[span.start : span.end]

	# ---- declarations ----------------------------------------------------

	def item(self, tree: Tree) -> Item:
		attrs = self.attrs(_subtree(tree, "outer_attrs"))
		decl = next(c for c in _subtrees(tree) if _name(c) in {"trait_def", "impl_def"})
		if _name(decl) == "trait_def":
			return self.trait_def(decl, attrs, span=self.span(tree))
		return self.impl_def(decl, attrs, span=self.span(tree))

	def attrs(self, tree: Optional[Tree]) -> List[Attribute]:
		if tree is None:
			return []
		out: List[Attribute] = []
		for child in _subtrees(tree):
			out.append(Attribute(text=self.text(child), span=self.span(child), is_doc=_name(child) == "doc_attr"))
		return out

	def trait_def(self, tree: Tree, attrs: List[Attribute], *, span: Span) -> ContractDeclaration:
		name: Optional[str] = None
		decl = ContractDeclaration(name="", attrs=attrs, items=[], source=self.source, span=span)
		for child in tree.children:
			if isinstance(child, Token):
				if child.type == "UNSAFE":
					decl.is_unsafe = True
				elif child.type == "IDENT" and name is None:
					name = child.value
				continue
			kind = _name(child)
			if kind == "visibility":
				decl.visibility = self.text(child)
			elif kind == "generic_params":
				decl.generics = self.generics(child)
			elif kind == "supertraits":
				bounds = _subtree(child, "bounds")
				decl.supertraits = self.bounds(bounds) if bounds is not None else []
			elif kind == "where_clause":
				decl.where_clause = self.where_clause(child)
			elif kind == "trait_items":
				decl.items = self.decl_items(child)
		if name is None:
			raise ParseError("trait declaration without a name", span=span)
		decl.name = name
		return decl

	def impl_def(self, tree: Tree, attrs: List[Attribute], *, span: Span) -> ImplementationDeclaration:
		self_ty_node = _type_child(tree)
		if self_ty_node is None:
			raise ParseError("impl block without a self type", span=span)
		decl = ImplementationDeclaration(
			self_ty=self.type(self_ty_node),
			attrs=attrs,
			items=[],
			source=self.source,
			is_unsafe=_has_token(tree, "UNSAFE"),
			span=span,
		)
		for child in _subtrees(tree):
			kind = _name(child)
			if kind == "generic_params":
				decl.generics = self.generics(child)
			elif kind == "impl_trait":
				decl.negative = _subtree(child, "negative") is not None
				trait_node = _type_child(child)
				if trait_node is not None:
					decl.trait_ref = self.type(trait_node)
			elif kind == "where_clause":
				decl.where_clause = self.where_clause(child)
			elif kind == "impl_items":
				decl.items = self.decl_items(child)
		return decl

	def decl_items(self, tree: Tree) -> List[DeclItem]:
		items: List[DeclItem] = []
		for child in _subtrees(tree):
			kind = _name(child)
			if kind == "fn_item":
				items.append(self.method(child))
				continue
			name_tok = next(iter(_tokens(child, "IDENT") or _tokens(child, "UNDERSCORE")), None)
			items.append(
				OtherItem(
					kind=kind,
					name=name_tok.value if name_tok is not None and kind != "macro_item" else None,
					text=self.text(child),
					span=self.span(child),
				)
			)
		return items

	# ---- functions -------------------------------------------------------

	def method(self, tree: Tree) -> Method:
		attrs = self.attrs(_subtree(tree, "outer_attrs"))
		sig = self.fn_sig(next(_subtrees(tree, "fn_sig")))
		body_node = tree.children[-1]
		body: Optional[Block] = None
		if isinstance(body_node, Tree) and _name(body_node) == "block":
			body = Block(text=self.text(body_node), span=self.span(body_node))
		return Method(attrs=attrs, sig=sig, body=body, span=self.span(tree))

	def fn_sig(self, tree: Tree) -> MethodSignature:
		quals = FnQualifiers()
		name: Optional[str] = None
		sig = MethodSignature(name="", qualifiers=quals, span=self.span(tree))
		for child in tree.children:
			if isinstance(child, Token):
				if child.type == "IDENT" and name is None:
					name = child.value
				continue
			kind = _name(child)
			if kind == "visibility":
				quals.visibility = self.text(child)
			elif kind == "fn_qualifiers":
				self.qualifiers(child, quals)
			elif kind == "generic_params":
				sig.generics = self.generics(child)
			elif kind == "fn_params":
				self.fn_params(child, sig)
			elif kind == "ret_type":
				sig.output = self.type(_type_child(child))
			elif kind == "where_clause":
				sig.where_clause = self.where_clause(child)
		if name is None:
			raise ParseError("function without a name", span=sig.span)
		sig.name = name
		return sig

	def qualifiers(self, tree: Tree, quals: FnQualifiers) -> None:
		for child in tree.children:
			if isinstance(child, Tree):
				if _name(child) == "abi":
					quals.abi = self.text(child)
				continue
			if child.type == "IDENT":
				if child.value != "default":
					raise ParseError(f"unexpected `{child.value}` before `fn`", span=self.span(child))
				quals.is_default = True
			elif child.type == "CONST":
				quals.is_const = True
			elif child.type == "ASYNC":
				quals.is_async = True
			elif child.type == "UNSAFE":
				quals.is_unsafe = True

	def fn_params(self, tree: Tree, sig: MethodSignature) -> None:
		for child in _subtrees(tree):
			kind = _name(child)
			attrs = self.attrs(_subtree(child, "outer_attrs"))
			if kind == "ref_self":
				lifetime = next(iter(_tokens(child, "LIFETIME")), None)
				sig.receiver = SelfParam(
					kind="ref",
					mutable_ref=_has_token(child, "MUT"),
					lifetime=lifetime.value if lifetime is not None else None,
					attrs=attrs,
					span=self.span(child),
				)
			elif kind == "typed_self":
				sig.receiver = SelfParam(
					kind="typed",
					mut_binding=_has_token(child, "MUT"),
					ty=self.type(_type_child(child)),
					attrs=attrs,
					span=self.span(child),
				)
			elif kind == "value_self":
				sig.receiver = SelfParam(
					kind="value",
					mut_binding=_has_token(child, "MUT"),
					attrs=attrs,
					span=self.span(child),
				)
			elif kind == "param":
				sig.params.append(
					FnParam(
						pattern=self.text(next(_subtrees(child, "pattern"))),
						ty=self.type(_type_child(child)),
						attrs=attrs,
						span=self.span(child),
					)
				)

	# ---- generics --------------------------------------------------------

	def generics(self, tree: Tree) -> Generics:
		params: List[GenericParam] = []
		for child in _subtrees(tree):
			kind = _name(child)
			if kind == "lifetime_param":
				bounds = _subtree(child, "lifetime_bounds")
				params.append(
					LifetimeParam(
						name=_tokens(child, "LIFETIME")[0].value,
						bounds=[t.value for t in _tokens(bounds)] if bounds is not None else [],
						text=self.text(child),
					)
				)
			elif kind == "type_param":
				bounds = _subtree(child, "bounds")
				default = _type_child(child)
				params.append(
					TypeParam(
						name=_tokens(child, "IDENT")[0].value,
						bounds=self.bounds(bounds) if bounds is not None else [],
						default=self.type(default) if default is not None else None,
						text=self.text(child),
					)
				)
			elif kind == "const_param":
				default = _subtree(child, "const_value")
				params.append(
					ConstParam(
						name=_tokens(child, "IDENT")[0].value,
						ty=self.type(_type_child(child)),
						default=self.text(default) if default is not None else None,
						text=self.text(child),
					)
				)
		return Generics(params=params, span=self.span(tree))

	def where_clause(self, tree: Tree) -> WhereClause:
		preds: List[WherePredicate] = []
		preds_node = _subtree(tree, "where_preds")
		if preds_node is not None:
			for child in _subtrees(preds_node):
				if _name(child) == "lifetime_pred":
					bounds = _subtree(child, "lifetime_bounds")
					preds.append(
						LifetimePredicate(
							text=self.text(child),
							span=self.span(child),
							lifetime=_tokens(child, "LIFETIME")[0].value,
							bounds=[t.value for t in _tokens(bounds)] if bounds is not None else [],
						)
					)
				else:
					bounds = _subtree(child, "bounds")
					hrtb = _subtree(child, "for_lifetimes")
					preds.append(
						TypePredicate(
							text=self.text(child),
							span=self.span(child),
							bounded=self.type(_type_child(child)),
							bounds=self.bounds(bounds) if bounds is not None else [],
							for_lifetimes=self.text(hrtb) if hrtb is not None else None,
						)
					)
		return WhereClause(predicates=preds, span=self.span(tree))

	def bounds(self, tree: Tree) -> List[Bound]:
		out: List[Bound] = []
		for child in _subtrees(tree):
			kind = _name(child)
			if kind == "lifetime_bound":
				out.append(LifetimeBound(name=_tokens(child, "LIFETIME")[0].value))
				continue
			hrtb = _subtree(child, "for_lifetimes")
			out.append(
				TraitBound(
					path=self.type_path(next(_subtrees(child, "type_path"))),
					maybe=_subtree(child, "maybe") is not None,
					for_lifetimes=self.text(hrtb) if hrtb is not None else None,
					paren=kind == "paren_trait_bound",
				)
			)
		return out

	# ---- types -----------------------------------------------------------

	def type(self, tree: Optional[Tree]) -> TypeExpr:
		if tree is None:
			raise ParseError("missing type", span=Span())
		kind = _name(tree)
		span = self.span(tree)
		if kind == "type_path":
			return self.type_path(tree)
		if kind == "qualified_path":
			return self.qualified_path(tree)
		if kind in {"ref_type", "double_ref_type"}:
			lifetime = next(iter(_tokens(tree, "LIFETIME")), None)
			ref = RefType(
				inner=self.type(_type_child(tree)),
				lifetime=lifetime.value if lifetime is not None else None,
				mutable=_has_token(tree, "MUT"),
				span=span,
			)
			if kind == "double_ref_type":
				return RefType(inner=ref, span=span)
			return ref
		if kind == "ptr_type":
			return PtrType(inner=self.type(_type_child(tree)), mutable=_has_token(tree, "MUT"), span=span)
		if kind == "unit_type":
			return TupleType(elems=[], span=span)
		if kind == "paren_type":
			return TupleType(elems=[self.type(_type_child(tree))], paren=True, span=span)
		if kind == "tuple_type":
			elems = [self.type(c) for c in _subtrees(tree) if _name(c) in _TYPE_RULES]
			return TupleType(elems=elems, span=span)
		if kind == "slice_type":
			return SliceType(inner=self.type(_type_child(tree)), span=span)
		if kind == "array_type":
			return ArrayType(
				inner=self.type(_type_child(tree)),
				length=self.text(next(_subtrees(tree, "array_len"))),
				span=span,
			)
		if kind == "never_type":
			return NeverType(span=span)
		if kind == "infer_type":
			return InferType(span=span)
		if kind == "impl_trait_type":
			return ImplTraitType(bounds=self.bounds(next(_subtrees(tree, "bounds"))), span=span)
		if kind == "dyn_trait_type":
			return TraitObjectType(bounds=self.bounds(next(_subtrees(tree, "bounds"))), span=span)
		if kind == "bare_fn":
			return BareFnType(text=self.text(tree), span=span)
		if kind == "macro_type":
			return MacroType(text=self.text(tree), span=span)
		raise ParseError(f"unsupported type syntax `{self.text(tree)}`", span=span)

	def type_path(self, tree: Tree) -> PathType:
		segments = [self.segment(c) for c in _subtrees(tree) if _name(c) != "leading_sep"]
		return PathType(
			segments=segments,
			leading_colon=_subtree(tree, "leading_sep") is not None,
			span=self.span(tree),
		)

	def qualified_path(self, tree: Tree) -> PathType:
		qself_ty = self.type(_type_child(tree))
		as_node = _subtree(tree, "qualified_as")
		trait = self.type_path(next(_subtrees(as_node, "type_path"))) if as_node is not None else None
		segments = [
			self.segment(c)
			for c in _subtrees(tree)
			if _name(c) in {"path_segment", "turbofish_segment", "fn_sugar_segment"}
		]
		return PathType(segments=segments, qself=QSelf(ty=qself_ty, trait=trait), span=self.span(tree))

	def segment(self, tree: Tree) -> PathSegment:
		kind = _name(tree)
		name = _tokens(tree)[0].value
		if kind == "fn_sugar_segment":
			args_node = _subtree(tree, "fn_sugar_args")
			ret_node = _subtree(tree, "fn_sugar_ret")
			inputs = [self.type(c) for c in _subtrees(args_node)] if args_node is not None else []
			output = self.type(_type_child(ret_node)) if ret_node is not None else None
			return PathSegment(name=name, fn_inputs=inputs, fn_output=output)
		args_node = _subtree(tree, "generic_args")
		args = self.generic_args(args_node) if args_node is not None else None
		return PathSegment(name=name, args=args, turbofish=kind == "turbofish_segment")

	def generic_args(self, tree: Tree) -> List[GenericArg]:
		args: List[GenericArg] = []
		for child in _subtrees(tree):
			kind = _name(child)
			if kind == "lifetime_arg":
				args.append(LifetimeArg(name=_tokens(child, "LIFETIME")[0].value))
			elif kind == "type_arg":
				args.append(TypeArg(ty=self.type(_type_child(child))))
			elif kind in {"binding_arg", "constraint_arg"}:
				nested = _subtree(child, "generic_args")
				nested_args = self.generic_args(nested) if nested is not None else None
				name = _tokens(child, "IDENT")[0].value
				if kind == "binding_arg":
					args.append(BindingArg(name=name, ty=self.type(_type_child(child)), args=nested_args))
				else:
					args.append(
						ConstraintArg(name=name, bounds=self.bounds(next(_subtrees(child, "bounds"))), args=nested_args)
					)
			elif kind == "const_arg":
				args.append(ConstArg(text=self.text(child)))
		return args


__all__ = [
	"ParseError",
	"MalformedTarget",
	"is_punct",
	"lex",
	"parse_item",
	"parse_type",
	"skip_group",
]
