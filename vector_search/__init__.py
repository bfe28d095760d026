"""
Semantic similarity search over text embeddings.
"""

from .core.config import VERSION as __version__
