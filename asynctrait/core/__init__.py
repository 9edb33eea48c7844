# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Shared diagnostics and span types."""

from .diagnostics import Diagnostic, diagnostic_from_error
from .span import Span

__all__ = ["Diagnostic", "Span", "diagnostic_from_error"]
