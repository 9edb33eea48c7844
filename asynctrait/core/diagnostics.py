# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Common diagnostic structure for the parser, expansion engine and driver.

This is deliberately minimal: a message plus optional code/phase/span. Rendering
(human-readable or JSON) is the CLI's job.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .span import Span


@dataclass
class Diagnostic:
	"""Represents a diagnostic (error/warning/etc.) for one annotated item."""

	message: str
	code: str | None = None
	# Which stage produced it: "parser" for grammar/target errors, "expand" for
	# configuration and borrow-scope errors.
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)  # Source location (Span() denotes unknown).
	notes: list[str] = field(default_factory=list)

	def __post_init__(self) -> None:
		if self.span is None:  # type: ignore[unreachable]
			self.span = Span()


def diagnostic_from_error(err: Exception, *, phase: str, span: Span | None = None) -> Diagnostic:
	"""
	Convert one of the package's located errors into a Diagnostic.

	Located errors carry `span`, `code` and optional `notes` attributes; `span`
	may be overridden by the caller (the driver passes a span rebased onto the
	compilation unit).
	"""
	return Diagnostic(
		message=str(err),
		code=getattr(err, "code", None),
		phase=phase,
		severity="error",
		span=span if span is not None else getattr(err, "span", None) or Span(),
		notes=list(getattr(err, "notes", []) or []),
	)


__all__ = ["Diagnostic", "diagnostic_from_error"]
