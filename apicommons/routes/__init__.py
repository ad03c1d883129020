# Routes package init
"""
ApiCommons — Routes Package
============================

Route Inventory:
    - health.py:  GET /health   (pipeline and database status, as an envelope)
"""
