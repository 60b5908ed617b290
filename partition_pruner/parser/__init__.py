"""SQL parsing and binding."""

from .parser import Parser
from .binder import Binder, BindingError

__all__ = ["Parser", "Binder", "BindingError"]
