"""API Routes Package."""

from api.routes import health, dia, transactions, settings

__all__ = [
    "health",
    "dia",
    "transactions",
    "settings",
]
