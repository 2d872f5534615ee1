"""
Incentive Kernel

Shared foundation for the incentive payout engine:
- Structured JSON logging with request-scoped context
- Typed exception hierarchy with machine-readable codes
- Injectable clock
- SQLAlchemy declarative base, engine and ORM models
- Frozen domain DTOs for plans, transactional records and payouts
"""

__version__ = "0.1.0"
