"""
zen - developer workflow CLI

Keeps local task records in sync with an external task system and manages
the provider runtime (binary discovery, sandboxed execution, file cache).
"""

__version__ = "0.4.0"

# Re-export core models for convenience
from zen.core.config.models import ZenConfig
from zen.core.sync.models import SyncOptions, SyncRecord, SyncResult

__all__ = ["SyncOptions", "SyncRecord", "SyncResult", "ZenConfig", "__version__"]
