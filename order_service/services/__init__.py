"""
                        Services Module

Business logic and the clients of the sibling services, each with an
in-memory (development) and an HTTP (production) implementation.

Services:
    - directory: restaurant, item and user lookups
    - ledger: Delivery Ledger (courier assignments)
    - notifications: Notification Dispatcher
    - events: outbound event publishing
    - orchestrator: the order lifecycle orchestrator
"""

from order_service.services.orchestrator import OrderOrchestrator, ReconcileReport

__all__ = ["OrderOrchestrator", "ReconcileReport"]
