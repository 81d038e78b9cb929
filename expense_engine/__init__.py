"""
Expense Engine - Source Package

Local data and synchronization engine for a wearable expense tracker.

DESIGN PRINCIPLES:
1. The local store is the source of truth (offline first)
2. Journal sync is fire-and-forget and observable only through events
3. Inference requests are asynchronous and matched by correlation ID
4. No global singletons - components are wired explicitly at startup
5. Storage backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Expense Engine Team"
