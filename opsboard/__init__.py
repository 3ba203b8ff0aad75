"""
opsboard package.

FastAPI backend for the operations dashboard: chat analysis, complaint-derived
sales, NPS, P&L and agent delay times.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, blob storage, advisory locks and dependencies
    - models: Enums and Pydantic schemas
    - services: Entity resolution, sale deduplication, metrics and persistence
"""

__version__ = "1.0.0"
