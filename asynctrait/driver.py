# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Compilation-unit driver and command-line entry point.

`expand_source` plays the host compiler's part: it finds every item carrying
the `#[async_trait]` attribute, hands each one to the parser and expansion
engine with a fresh `ExpansionContext`, and splices the result back in place
of the item (the driving attribute itself is consumed). A failing item is
reported as a diagnostic and left exactly as written; the other items still
expand.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

from asynctrait.core.diagnostics import Diagnostic, diagnostic_from_error
from asynctrait.core.span import Span
from asynctrait.expand import (
	AmbiguousBorrowScope,
	ExpandedItem,
	ExpansionContext,
	InvalidConfiguration,
	expand_item,
)
from asynctrait.parser import ParseError, parse_item, scan_unit

logger = logging.getLogger(__name__)


@dataclass
class ExpandResult:
	text: str
	diagnostics: List[Diagnostic] = field(default_factory=list)
	expanded: List[ExpandedItem] = field(default_factory=list)

	@property
	def ok(self) -> bool:
		return not any(d.severity == "error" for d in self.diagnostics)


def expand_source(source: str, file: Optional[str] = None) -> ExpandResult:
	"""
	Expand every `#[async_trait]` item of one compilation unit.

	Never raises for user input: parse, configuration and borrow-scope
	failures come back as diagnostics with spans relative to `source`.
	"""
	try:
		scan = scan_unit(source)
	except ParseError as err:
		diag = diagnostic_from_error(err, phase="parser", span=err.span.rebase(source, 0, file=file))
		return ExpandResult(text=source, diagnostics=[diag])

	result = ExpandResult(text=source)
	pieces: List[str] = []
	pos = 0
	annotated = sorted(scan.annotated(), key=lambda it: it.start)
	logger.debug("%s: %d annotated item(s)", file or "<source>", len(annotated))
	for unit_item in annotated:
		if unit_item.start < pos:
			continue
		site = unit_item.driving_attribute()
		assert site is not None
		offset = site.next_start
		try:
			ctx = ExpansionContext.from_attribute_args(site.args, site.args_span)
			item = parse_item(source[offset : unit_item.end])
			expanded = expand_item(item, ctx, carriers=scan.carriers)
		except InvalidConfiguration as err:
			result.diagnostics.append(diagnostic_from_error(err, phase="expand", span=replace(err.span, file=file)))
			continue
		except ParseError as err:
			span = err.span.rebase(source, offset, file=file)
			result.diagnostics.append(diagnostic_from_error(err, phase="parser", span=span))
			continue
		except AmbiguousBorrowScope as err:
			span = err.span.rebase(source, offset, file=file)
			result.diagnostics.append(diagnostic_from_error(err, phase="expand", span=span))
			continue
		logger.debug(
			"expanded item at offset %d (%d async method(s), local=%s)",
			unit_item.start,
			len(expanded.methods),
			ctx.local,
		)
		pieces.append(source[pos : site.start])
		pieces.append(expanded.text)
		pos = unit_item.end
		result.expanded.append(expanded)
	pieces.append(source[pos:])
	result.text = "".join(pieces)
	return result


def _diag_to_json(diag: Diagnostic, phase: str, source: Path) -> dict:
	"""Render a Diagnostic to a structured JSON-friendly dict."""
	span = diag.span if diag.span is not None else Span()
	return {
		"phase": diag.phase or phase,
		"code": diag.code,
		"message": diag.message,
		"severity": diag.severity,
		"file": span.file or str(source),
		"line": span.line,
		"column": span.column,
		"notes": list(diag.notes or []),
	}


def _print_diag(diag: Diagnostic, source: Path) -> None:
	loc = f"{diag.span.line if diag.span.line is not None else '?'}:{diag.span.column if diag.span.column is not None else '?'}"
	code = f"[{diag.code}] " if diag.code else ""
	print(f"{diag.span.file or source}:{loc}: {diag.severity}: {code}{diag.message}", file=sys.stderr)
	for note in diag.notes:
		print(f"  note: {note}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
	"""
	Expand `#[async_trait]` items in one or more Rust source files.

	The expanded text goes to stdout unless `-o` or `--in-place` is given. With
	--json, prints structured diagnostics (phase/code/message/severity/file/
	line/column) and an exit_code instead of human-readable messages.
	"""
	parser = argparse.ArgumentParser(prog="asynctrait", description="Expand #[async_trait] items in Rust source files")
	parser.add_argument("source", type=Path, nargs="+", help="Path(s) to Rust source file(s)")
	dest = parser.add_mutually_exclusive_group()
	dest.add_argument("-o", "--output", type=Path, help="Write the expanded source to this path (single source only)")
	dest.add_argument("--in-place", action="store_true", help="Rewrite each source file in place")
	parser.add_argument(
		"--json",
		action="store_true",
		help="Emit diagnostics as JSON (phase/code/message/severity/file/line/column)",
	)
	parser.add_argument("-v", "--verbose", action="store_true", help="Log expansion decisions to stderr")
	args = parser.parse_args(argv)

	if args.output is not None and len(args.source) > 1:
		parser.error("-o/--output takes exactly one source file")
	if args.verbose:
		logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format="%(name)s: %(message)s")

	exit_code = 0
	diagnostics: list[dict] = []
	files: list[dict] = []
	for source_path in args.source:
		try:
			text = source_path.read_text()
		except OSError as err:
			diag = Diagnostic(message=f"cannot read source: {err.strerror or err}", code="E-IO", phase="driver")
			exit_code = 1
			if args.json:
				diagnostics.append(_diag_to_json(diag, "driver", source_path))
			else:
				_print_diag(diag, source_path)
			continue

		result = expand_source(text, file=str(source_path))
		if not result.ok:
			exit_code = 1
		if args.json:
			diagnostics.extend(_diag_to_json(d, "expand", source_path) for d in result.diagnostics)
		else:
			for d in result.diagnostics:
				_print_diag(d, source_path)

		if args.in_place:
			if result.text != text:
				source_path.write_text(result.text)
		elif args.output is not None:
			args.output.write_text(result.text)
		elif not args.json:
			sys.stdout.write(result.text)
		entry = {
			"file": str(source_path),
			"items": len(result.expanded),
			"methods": [m.name for item in result.expanded for m in item.methods],
		}
		if args.json and not args.in_place and args.output is None:
			entry["text"] = result.text
		files.append(entry)

	if args.json:
		print(json.dumps({"exit_code": exit_code, "diagnostics": diagnostics, "files": files}))
	return exit_code


if __name__ == "__main__":  # pragma: no cover
	sys.exit(main())
