"""
ApiCommons — Package Initializer
=================================

What:  Cross-cutting request machinery for FastAPI services: a typed
       success-or-failure Result, the uniform ApiResponse envelope, and the
       middleware pipeline that scopes declared transactions and renders
       every failure.

Architecture Note:

    ┌─────────────────────────────────────┐
    │   Pipeline (middleware/, pipeline)  │  ← error boundary, transactions
    ├─────────────────────────────────────┤
    │   Envelope (schemas/response)       │  ← wire contract
    ├─────────────────────────────────────┤
    │   Result (result)                   │  ← domain outcomes
    ├─────────────────────────────────────┤
    │   Resources (container, database)   │  ← request-scoped units of work
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
