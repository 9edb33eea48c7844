# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration parser for `#[async_trait]` targets.

`parse_item` turns the text of one trait declaration or impl block into the
syntax model in `ast`; `scan_unit` splits a whole compilation unit into items
at the token level.
"""

from . import ast
from .parser import MalformedTarget, ParseError, is_punct, lex, parse_item, parse_type, skip_group
from .printer import render_bounds, render_generic_param, render_path, render_type
from .unit import ATTRIBUTE_PATHS, AttributeSite, UnitItem, UnitScan, scan_unit

__all__ = [
	"ast",
	"ParseError",
	"MalformedTarget",
	"is_punct",
	"lex",
	"parse_item",
	"parse_type",
	"skip_group",
	"render_type",
	"render_path",
	"render_bounds",
	"render_generic_param",
	"ATTRIBUTE_PATHS",
	"AttributeSite",
	"UnitItem",
	"UnitScan",
	"scan_unit",
]
