# Middleware package init
"""
ApiCommons — Middleware Package
================================

What:  The request pipeline stages shared by every endpoint.

Middleware Chain (outermost first):
    Request → [Request Context] → [Error Boundary] → [Transaction Scope] → Route Handler

    1. Request Context: correlation ID + access log line (sees final status)
    2. Error Boundary: renders every propagated failure as an envelope
    3. Transaction Scope: commit/rollback around declared endpoints

    Failures travel the chain in reverse: the transaction scope rolls back
    first, then the error boundary renders.
"""
