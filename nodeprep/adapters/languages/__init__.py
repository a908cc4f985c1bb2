"""Language adapters — node."""

from nodeprep.adapters.languages.node import NodeAdapter

__all__ = ["NodeAdapter"]
