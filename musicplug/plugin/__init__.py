"""
musicplug Plugin System - installation, identity and dispatch.

This package handles:
- Source fetching (local files, URLs, subscription manifests)
- Sandboxed evaluation and load classification
- Content-hash identity and update resolution
- Ordered registry with persisted metadata
- Optional capability dispatch
"""

__all__ = []
