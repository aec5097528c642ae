"""Built-in generation targets for the azmp generator.

Provides the host's native template types and Handlebars helpers. They
are seeded into the registries before any plugin loads.
"""

from .helpers import BUILTIN_HELPERS
from .templates import BUILTIN_TEMPLATES, STORAGE_TEMPLATE

__all__ = [
    "BUILTIN_HELPERS",
    "BUILTIN_TEMPLATES",
    "STORAGE_TEMPLATE",
]
