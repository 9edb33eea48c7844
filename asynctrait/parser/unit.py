# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compilation-unit scanning.

The grammar only knows trait and impl declarations. Everything else in a
source file is handled here at the token level: item boundaries are found by
balancing delimiters, attributes are collected per item, and declarations
that carry scope parameters (`type Foo<'a> = ...`, `struct Bar<'a> {..}`) are
recorded with their arity so the borrow-scope elaborator can spot uses that
hide a reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lark import Token

from asynctrait.core.span import Span

from .parser import ParseError, is_punct, lex, skip_group

ATTRIBUTE_PATHS = frozenset({"async_trait", "async_trait::async_trait", "::async_trait::async_trait"})

# Items that end at `;` even when they contain a brace group (`const X: S = S { .. };`).
_SEMI_ITEMS = {"const", "static", "type", "use", "let"}
_CARRIER_ITEMS = {"type", "struct", "enum", "union"}
_IDENT_ITEMS = {"struct", "enum", "union", "mod", "static", "use", "macro_rules", "let"}
_DOC_TOKENS = {"DOC_LINE", "DOC_BLOCK"}
_LITERAL_TOKENS = {"STRING", "RAW_STRING", "CHAR"}


@dataclass
class AttributeSite:
	"""One outer attribute, as found in the unit."""

	path: str
	start: int
	end: int
	# Offset of the first token after the closing `]`.
	next_start: int
	# Text between the argument delimiters; None when the attribute has none.
	args: Optional[str] = None
	args_span: Span = field(default_factory=Span)


@dataclass
class UnitItem:
	start: int
	end: int
	keyword: Optional[str]
	name: Optional[str]
	attrs: List[AttributeSite] = field(default_factory=list)

	def driving_attribute(self) -> Optional[AttributeSite]:
		return next((a for a in self.attrs if a.path in ATTRIBUTE_PATHS), None)


@dataclass
class UnitScan:
	items: List[UnitItem] = field(default_factory=list)
	# Name -> number of scope parameters, for every local declaration that has any.
	carriers: Dict[str, int] = field(default_factory=dict)

	def annotated(self) -> List[UnitItem]:
		return [it for it in self.items if it.driving_attribute() is not None]


def scan_unit(source: str) -> UnitScan:
	"""
	Split `source` into items (recursing into inline `mod` blocks).

	Raises `ParseError` on unbalanced delimiters or unknown characters.
	"""
	tokens = lex(source)
	scan = UnitScan()
	_scan(source, tokens, 0, len(tokens), scan)
	return scan


def _scan(source: str, tokens: List[Token], i: int, stop: int, scan: UnitScan) -> None:
	while i < stop:
		first = i
		attrs: List[AttributeSite] = []
		while i < stop:
			tok = tokens[i]
			if tok.type in _DOC_TOKENS:
				i += 1
				continue
			if is_punct(tok, "#") and i + 1 < stop and is_punct(tokens[i + 1], "["):
				close = skip_group(tokens, i + 1)
				attrs.append(_attribute_site(source, tokens, i, close))
				i = close + 1
				continue
			break
		if i >= stop:
			return
		tok = tokens[i]
		if is_punct(tok, "#") and i + 2 < stop and is_punct(tokens[i + 1], "!") and is_punct(tokens[i + 2], "["):
			# Inner attribute; belongs to the enclosing module, not an item.
			i = skip_group(tokens, i + 2) + 1
			continue
		if tok.type not in _LITERAL_TOKENS and tok.value in {")", "]", "}"}:
			raise ParseError(f"unexpected closing delimiter `{tok.value}`", span=Span.from_loc(tok))

		keyword: Optional[str] = None
		name: Optional[str] = None
		name_idx: Optional[int] = None
		end_idx: Optional[int] = None
		j = i
		while j < stop:
			tok = tokens[j]
			if keyword is None:
				keyword = _item_keyword(tokens, j, stop)
				if keyword is not None and j + 1 < stop and tokens[j + 1].type == "IDENT":
					name = tokens[j + 1].value
					name_idx = j + 1
			if is_punct(tok, ";"):
				end_idx = j
				break
			if tok.type not in _LITERAL_TOKENS and tok.value in {"(", "[", "{"}:
				close = skip_group(tokens, j)
				if tok.value == "{" and keyword not in _SEMI_ITEMS:
					end_idx = close
					if keyword == "mod":
						_scan(source, tokens, j + 1, close, scan)
					break
				j = close + 1
				continue
			j += 1
		if end_idx is None:
			end_idx = stop - 1

		if keyword in _CARRIER_ITEMS and name is not None and name_idx is not None:
			arity = _scope_arity(tokens, name_idx + 1, end_idx)
			if arity:
				scan.carriers[name] = arity
		scan.items.append(
			UnitItem(
				start=tokens[first].start_pos,
				end=tokens[end_idx].end_pos,
				keyword=keyword,
				name=name,
				attrs=attrs,
			)
		)
		i = end_idx + 1


def _item_keyword(tokens: List[Token], j: int, stop: int) -> Optional[str]:
	tok = tokens[j]
	if tok.type in {"FN", "TRAIT", "IMPL", "TYPE"}:
		return tok.value
	if tok.type == "CONST":
		# `const fn` / `const unsafe fn` are qualifiers, not const items.
		if j + 1 < stop and tokens[j + 1].type in {"IDENT", "UNDERSCORE"}:
			return "const"
		return None
	if tok.type == "IDENT" and tok.value in _IDENT_ITEMS:
		return tok.value
	return None


def _scope_arity(tokens: List[Token], k: int, end: int) -> int:
	"""Count the scope parameters in the `<...>` list starting at `tokens[k]`, if any."""
	if k > end or not is_punct(tokens[k], "<"):
		return 0
	depth = 0
	count = 0
	prev: Optional[Token] = None
	while k <= end:
		tok = tokens[k]
		if is_punct(tok, "<"):
			depth += 1
		elif is_punct(tok, ">"):
			depth -= 1
			if depth == 0:
				break
		elif tok.type == "LIFETIME" and depth == 1 and prev is not None and (is_punct(prev, "<") or is_punct(prev, ",")):
			count += 1
		prev = tok
		k += 1
	return count


def _attribute_site(source: str, tokens: List[Token], hash_idx: int, close_idx: int) -> AttributeSite:
	k = hash_idx + 2
	parts: List[str] = []
	leading = ""
	if k < close_idx and is_punct(tokens[k], "::"):
		leading = "::"
		k += 1
	while k < close_idx:
		tok = tokens[k]
		if tok.type in _LITERAL_TOKENS or not (tok.value.isidentifier() or tok.value.startswith("r#")):
			break
		parts.append(tok.value)
		k += 1
		if k < close_idx and is_punct(tokens[k], "::"):
			k += 1
			continue
		break
	args: Optional[str] = None
	args_span = Span()
	if k < close_idx:
		tok = tokens[k]
		if tok.type not in _LITERAL_TOKENS and tok.value in {"(", "[", "{"}:
			group_close = skip_group(tokens, k)
			args_start, args_end = tok.end_pos, tokens[group_close].start_pos
		else:
			args_start, args_end = tok.start_pos, tokens[close_idx].start_pos
		args = source[args_start:args_end]
		args_span = Span.at(source, args_start, args_end)
	next_start = tokens[close_idx + 1].start_pos if close_idx + 1 < len(tokens) else tokens[close_idx].end_pos
	return AttributeSite(
		path=leading + "::".join(parts),
		start=tokens[hash_idx].start_pos,
		end=tokens[close_idx].end_pos,
		next_start=next_start,
		args=args,
		args_span=args_span,
	)


__all__ = ["ATTRIBUTE_PATHS", "AttributeSite", "UnitItem", "UnitScan", "scan_unit"]
