"""
SIP Kernel - persistence and infrastructure for recurring investment plans.

Provides:
- ORM models for investment plans and their append-only transaction trail
- Plan and audit-trail stores
- The price source port
- Injectable clocks, structured logging and typed exceptions
"""

__version__ = "0.1.0"
