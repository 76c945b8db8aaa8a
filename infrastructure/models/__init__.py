"""Infrastructure models package exports."""
from .base import Base, metadata
from .invoice import InvoiceModel

__all__ = [
    "Base",
    "metadata",
    "InvoiceModel",
]
