"""
                Order Lifecycle Orchestrator

Order service of the food-ordering marketplace. Owns the order status
state machine, drives delivery and notification side effects and serves
enriched order views aggregated from the sibling services.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
