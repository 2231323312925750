"""Restaurant order lifecycle and kitchen fulfillment backend."""

__version__ = "1.0.0"
