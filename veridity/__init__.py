"""
Veridity: privacy-preserving attribute verification.

This package holds the zero-knowledge orchestration layer (``veridity.zk``)
and the shared primitives it builds on (``veridity.core``,
``veridity.schema``).
"""

__version__ = "1.0.0"
