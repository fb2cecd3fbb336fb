"""Public interface definitions for every external dependency.

Every keyword-data API and storage backend in the demandCorpus pipeline is
accessed exclusively through the abstract base classes defined in this
package.  Concrete adapters live in ``src/providers/`` and are wired in
``src/main.py``; unit tests inject fakes or the in-memory implementations.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    IKeywordVolumeProvider     →  DataForSeoProxyProvider
    ISnapshotStore             →  SQLiteSnapshotStore, MemorySnapshotStore
    IJobStore                  →  SQLiteJobStore, MemoryJobStore
    IVolumeCacheProvider       →  MemoryVolumeCache
"""

from src.interfaces.job_store import IJobStore
from src.interfaces.keyword_volume_provider import IKeywordVolumeProvider, KeywordVolume
from src.interfaces.snapshot_store import ISnapshotStore
from src.interfaces.volume_cache_provider import IVolumeCacheProvider

__all__ = [
    "IJobStore",
    "IKeywordVolumeProvider",
    "ISnapshotStore",
    "IVolumeCacheProvider",
    "KeywordVolume",
]
