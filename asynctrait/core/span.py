# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Lightweight source span representation used by diagnostics and the syntax model.

A Span carries best-effort file/line/column info plus absolute character
offsets (`start`/`end`) into the text it was produced from. Offsets are what
the expansion engine splices on; line/column are what humans read.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Span:
	"""Represents a source span (best-effort file/line/column plus offsets)."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None
	end_line: Optional[int] = None
	end_column: Optional[int] = None
	start: Optional[int] = None
	end: Optional[int] = None

	@classmethod
	def from_loc(cls, loc: Any) -> "Span":
		"""
		Construct a Span from a lark `Meta`/`Token` (or anything shaped like one).

		If `loc` is already a Span, it is returned unchanged. Empty lark metas
		(rules that matched nothing) have no position and map to `Span()`.
		"""
		if loc is None:
			return cls()
		if isinstance(loc, cls):
			return loc
		if getattr(loc, "empty", False):
			return cls()
		return cls(
			file=getattr(loc, "file", None) or None,
			line=getattr(loc, "line", None),
			column=getattr(loc, "column", None),
			end_line=getattr(loc, "end_line", None),
			end_column=getattr(loc, "end_column", None),
			start=getattr(loc, "start_pos", None),
			end=getattr(loc, "end_pos", None),
		)

	@classmethod
	def at(cls, source: str, start: int, end: int, *, file: Optional[str] = None) -> "Span":
		"""Build a span for `source[start:end]`, computing 1-based line/column."""
		line, column = _line_col(source, start)
		end_line, end_column = _line_col(source, end)
		return cls(
			file=file,
			line=line,
			column=column,
			end_line=end_line,
			end_column=end_column,
			start=start,
			end=end,
		)

	@property
	def known(self) -> bool:
		return self.start is not None and self.end is not None

	def rebase(self, source: str, offset: int, *, file: Optional[str] = None) -> "Span":
		"""
		Map a span produced from `source[offset:]` back onto `source`.

		The parser sees one item at a time; the driver uses this to report
		positions relative to the whole compilation unit.
		"""
		if not self.known:
			return Span(file=file or self.file)
		return Span.at(source, offset + self.start, offset + self.end, file=file or self.file)


def _line_col(source: str, pos: int) -> tuple[int, int]:
	pos = max(0, min(pos, len(source)))
	line = source.count("\n", 0, pos) + 1
	column = pos - (source.rfind("\n", 0, pos) + 1) + 1
	return line, column


__all__ = ["Span"]
