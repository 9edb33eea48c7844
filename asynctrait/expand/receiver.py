# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Receiver shape classification."""

from __future__ import annotations

from enum import Enum, auto
from typing import Optional

from asynctrait.parser.ast import PathType, RefType, SelfParam


class Receiver(Enum):
	BY_VALUE = auto()
	BY_REFERENCE = auto()
	BY_MUT_REFERENCE = auto()
	NONE = auto()


def classify_receiver(param: Optional[SelfParam]) -> Receiver:
	"""
	Classify a method receiver.

	`&self` and `self: &Self` borrow; `&mut self` and `self: &mut Self` borrow
	mutably. Every other explicit type (`Box<Self>`, `Pin<&mut Self>`, ...)
	moves its pointer into the call and counts as by-value.
	"""
	if param is None:
		return Receiver.NONE
	if param.kind == "ref":
		return Receiver.BY_MUT_REFERENCE if param.mutable_ref else Receiver.BY_REFERENCE
	if param.kind == "typed" and isinstance(param.ty, RefType):
		inner = param.ty.inner
		if isinstance(inner, PathType) and inner.is_ident("Self"):
			return Receiver.BY_MUT_REFERENCE if param.ty.mutable else Receiver.BY_REFERENCE
	return Receiver.BY_VALUE


__all__ = ["Receiver", "classify_receiver"]
