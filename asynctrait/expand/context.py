# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Per-item expansion configuration, read from the attribute's argument."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from asynctrait.core.span import Span


class InvalidConfiguration(ValueError):
	"""The attribute argument is not one the expansion understands."""

	code = "E-INVALID-CONFIG"

	def __init__(self, message: str, *, span: Span) -> None:
		super().__init__(message)
		self.span = span
		self.notes = ["the only supported argument is `local`"]


@dataclass(frozen=True)
class ExpansionContext:
	"""
	Configuration for expanding one annotated item.

	`local=True` drops every thread-affinity requirement: no `Send` on the
	returned future and no capability bound on `Self`.
	"""

	local: bool = False

	@classmethod
	def from_attribute_args(cls, args: Optional[str], span: Span = Span()) -> "ExpansionContext":
		"""
		Build a context from the text inside `#[async_trait(...)]`.

		`None` (no parentheses) and empty parentheses give the default context.
		"""
		if args is None or not args.strip():
			return cls()
		if args.strip() == "local":
			return cls(local=True)
		raise InvalidConfiguration(f"unsupported `async_trait` argument `{args.strip()}`", span=span)


__all__ = ["ExpansionContext", "InvalidConfiguration"]
