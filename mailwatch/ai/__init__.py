"""Language-model collaborators: message normalization, client cache, Claude wrapper."""

from .client_cache import ClientCache
from .messages import fix_messages

__all__ = ["ClientCache", "fix_messages"]
