"""Cache providers.

In-memory TTL cache of keyword-volume answers so that re-validating the same
keyword within a run (resume after a crash, a VALIDATE job right after a
GROW job) does not spend provider quota twice.

MemoryVolumeCache is process-local.  For multi-worker deployments, swap in
a shared adapter implementing IVolumeCacheProvider without changing the
client.
"""

from src.providers.cache.memory_volume_cache import MemoryVolumeCache

__all__ = ["MemoryVolumeCache"]
