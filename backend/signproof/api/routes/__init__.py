from . import contracts, health, signatures

__all__ = [
    "contracts",
    "health",
    "signatures",
]
