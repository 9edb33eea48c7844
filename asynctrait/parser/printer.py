# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Render syntax-model types, bounds and generic parameters back to source text.

Only rewritten pieces go through the printer; everything the expansion engine
leaves alone is re-emitted from its original text instead.
"""

from __future__ import annotations

from typing import List

from .ast import (
	ArrayType,
	BareFnType,
	BindingArg,
	Bound,
	ConstArg,
	ConstParam,
	ConstraintArg,
	GenericArg,
	GenericParam,
	ImplTraitType,
	InferType,
	LifetimeArg,
	LifetimeBound,
	LifetimeParam,
	MacroType,
	NeverType,
	PathSegment,
	PathType,
	PtrType,
	RefType,
	SliceType,
	TraitObjectType,
	TupleType,
	TypeArg,
	TypeExpr,
	TypeParam,
)


def render_type(ty: TypeExpr) -> str:
	if isinstance(ty, PathType):
		return render_path(ty)
	if isinstance(ty, RefType):
		out = "&"
		if ty.lifetime is not None:
			out += ty.lifetime + " "
		if ty.mutable:
			out += "mut "
		return out + render_type(ty.inner)
	if isinstance(ty, PtrType):
		return ("*mut " if ty.mutable else "*const ") + render_type(ty.inner)
	if isinstance(ty, TupleType):
		if ty.paren:
			return f"({render_type(ty.elems[0])})"
		if len(ty.elems) == 1:
			return f"({render_type(ty.elems[0])},)"
		return "(" + ", ".join(render_type(e) for e in ty.elems) + ")"
	if isinstance(ty, SliceType):
		return f"[{render_type(ty.inner)}]"
	if isinstance(ty, ArrayType):
		return f"[{render_type(ty.inner)}; {ty.length}]"
	if isinstance(ty, NeverType):
		return "!"
	if isinstance(ty, InferType):
		return "_"
	if isinstance(ty, TraitObjectType):
		return "dyn " + render_bounds(ty.bounds)
	if isinstance(ty, ImplTraitType):
		return "impl " + render_bounds(ty.bounds)
	if isinstance(ty, (BareFnType, MacroType)):
		return ty.text
	raise TypeError(f"cannot render {type(ty).__name__}")


def render_path(path: PathType, *, turbofish: bool = False) -> str:
	"""
	Render a path type.

	With `turbofish=True` every argument list is written `::<..>`, which is the
	form a type path must take in expression position.
	"""
	out = ""
	if path.qself is not None:
		out = "<" + render_type(path.qself.ty)
		if path.qself.trait is not None:
			out += " as " + render_path(path.qself.trait)
		out += ">::"
	elif path.leading_colon:
		out = "::"
	return out + "::".join(render_segment(seg, turbofish=turbofish) for seg in path.segments)


def render_segment(seg: PathSegment, *, turbofish: bool = False) -> str:
	if seg.fn_inputs is not None:
		out = seg.name + "(" + ", ".join(render_type(t) for t in seg.fn_inputs) + ")"
		if seg.fn_output is not None:
			out += " -> " + render_type(seg.fn_output)
		return out
	if seg.args is None:
		return seg.name
	sep = "::" if (turbofish or seg.turbofish) else ""
	return f"{seg.name}{sep}<{', '.join(render_generic_arg(a) for a in seg.args)}>"


def render_generic_arg(arg: GenericArg) -> str:
	if isinstance(arg, LifetimeArg):
		return arg.name
	if isinstance(arg, TypeArg):
		return render_type(arg.ty)
	if isinstance(arg, BindingArg):
		return f"{arg.name}{_nested_args(arg.args)} = {render_type(arg.ty)}"
	if isinstance(arg, ConstraintArg):
		return f"{arg.name}{_nested_args(arg.args)}: {render_bounds(arg.bounds)}"
	if isinstance(arg, ConstArg):
		return arg.text
	raise TypeError(f"cannot render {type(arg).__name__}")


def _nested_args(args: List[GenericArg] | None) -> str:
	if args is None:
		return ""
	return "<" + ", ".join(render_generic_arg(a) for a in args) + ">"


def render_bound(bound: Bound) -> str:
	if isinstance(bound, LifetimeBound):
		return bound.name
	out = ""
	if bound.maybe:
		out += "?"
	if bound.for_lifetimes:
		out += bound.for_lifetimes + " "
	out += render_path(bound.path)
	return f"({out})" if bound.paren else out


def render_bounds(bounds: List[Bound]) -> str:
	return " + ".join(render_bound(b) for b in bounds)


def render_generic_param(param: GenericParam, *, with_default: bool = True) -> str:
	"""
	Render a generic parameter.

	Parameters are re-emitted verbatim unless their default must be dropped
	(defaults are not allowed on function generics).
	"""
	if with_default or isinstance(param, LifetimeParam):
		return param.text
	if isinstance(param, TypeParam):
		if param.default is None:
			return param.text
		return param.name + (": " + render_bounds(param.bounds) if param.bounds else "")
	if isinstance(param, ConstParam):
		if param.default is None:
			return param.text
		return f"const {param.name}: {render_type(param.ty)}"
	raise TypeError(f"cannot render {type(param).__name__}")


__all__ = [
	"render_type",
	"render_path",
	"render_segment",
	"render_generic_arg",
	"render_bound",
	"render_bounds",
	"render_generic_param",
]
