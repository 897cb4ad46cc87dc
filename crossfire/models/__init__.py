"""Generation backends and the model fallback chain."""

from .fallback import ModelFallbackInvoker

__all__ = ["ModelFallbackInvoker"]
