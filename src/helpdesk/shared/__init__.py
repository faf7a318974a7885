"""
Shared Kernel Module
====================

Shared infrastructure used across bounded contexts: structured logging,
API middleware and exception handlers.

DO NOT add SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
