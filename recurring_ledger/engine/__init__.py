"""
Engine Package

Writes scheduled occurrences into storage.
"""

from recurring_ledger.engine.materializer import IdempotentMaterializer

__all__ = [
    "IdempotentMaterializer",
]
