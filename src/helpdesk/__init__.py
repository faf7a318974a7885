"""
Helpdesk SLA
============

Service Level Agreement tracking for a multi-tenant helpdesk, built as a
Clean Architecture modular monolith.
"""

__version__ = "1.0.0"
