"""mintgate: inspection batches and mint requests for manufactured units."""

__version__ = "0.1.0"
