# Routes package init
"""
Faultline: Reference App Routes
===============================

Route Inventory:
    - health.py:  GET /health   (service and collector status)
"""
