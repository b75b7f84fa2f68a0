"""
Extraction context helpers.

We keep a small context (trace_id, document_id, account_id) in ContextVars.
The orchestrator and worker entry points set these values so logs from the
fallback client, the resilience layer and the ledger become correlatable.

Each asyncio task copies the current context, so per-page tasks inherit the
document's values without sharing mutable state.
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any, Dict, Optional


_trace_id: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
_document_id: ContextVar[Optional[str]] = ContextVar("document_id", default=None)
_account_id: ContextVar[Optional[str]] = ContextVar("account_id", default=None)


def set_context(
    *,
    trace_id: Optional[str] = None,
    document_id: Optional[str] = None,
    account_id: Optional[str] = None,
) -> None:
    if trace_id is not None:
        _trace_id.set(trace_id)
    if document_id is not None:
        _document_id.set(document_id)
    if account_id is not None:
        _account_id.set(account_id)


def clear_context() -> None:
    _trace_id.set(None)
    _document_id.set(None)
    _account_id.set(None)


def get_context() -> Dict[str, Any]:
    ctx: Dict[str, Any] = {}
    tid = _trace_id.get()
    did = _document_id.get()
    aid = _account_id.get()

    if tid:
        ctx["trace_id"] = tid
    if did:
        ctx["document_id"] = did
    if aid:
        ctx["account_id"] = aid
    return ctx
