# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Expansion pipeline for `#[async_trait]` items.

`expand_item` drives the receiver classifier and the borrow-scope elaborator
for every async method of a parsed declaration and renders the rewritten
declaration text.
"""

from .context import ExpansionContext, InvalidConfiguration
from .expand import SEND, SYNC, ExpandedItem, ExpandedMethod, capability_bound, expand_item, handle_type
from .lifetime import CALL_SCOPE, AmbiguousBorrowScope, ElaboratedSignature, elaborate, fresh_scope
from .receiver import Receiver, classify_receiver

__all__ = [
	"ExpansionContext",
	"InvalidConfiguration",
	"SEND",
	"SYNC",
	"ExpandedItem",
	"ExpandedMethod",
	"capability_bound",
	"expand_item",
	"handle_type",
	"CALL_SCOPE",
	"AmbiguousBorrowScope",
	"ElaboratedSignature",
	"elaborate",
	"fresh_scope",
	"Receiver",
	"classify_receiver",
]
