"""
Infrastructure Layer
=====================

Low-level technical concerns shared by the modules:
- Database engine and session management
"""
