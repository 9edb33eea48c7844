# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
asynctrait: source-to-source expansion of `#[async_trait]` traits and impls.

Async methods in annotated trait declarations and impl blocks are rewritten
into plain methods returning boxed, pinned futures, so the result compiles
with a compiler that has no native async trait methods.
"""

from asynctrait.driver import ExpandResult, expand_source

__all__ = ["ExpandResult", "expand_source"]
