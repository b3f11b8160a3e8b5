from signproof.schemas import common, contract, evidence

__all__ = [
    "common",
    "contract",
    "evidence",
]
