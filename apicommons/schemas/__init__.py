# Schemas package init
"""
ApiCommons — Schemas Package
=============================

What:  Pydantic models that define the wire contract with API clients.

Schema Inventory:
    - response.py:    ApiResponse envelope + envelope_response()/respond()
    - pagination.py:  PagedRequest / PagedResult payloads
"""
