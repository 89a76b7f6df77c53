"""
settings_sync — Local/remote replication of the user configuration.

Public API
----------
    from settings_sync import ConfigReplicator, SupabaseSettingsStore
"""

from settings_sync.remote_store import (
    AuthRequiredError,
    RemoteSettingsStore,
    RemoteSyncError,
    RemoteUnavailableError,
    SupabaseSettingsStore,
)
from settings_sync.replicator import (
    ConfigReplicator,
    InvalidConfigImport,
    PermanentListError,
    SyncStatus,
)

__all__ = [
    "AuthRequiredError",
    "ConfigReplicator",
    "InvalidConfigImport",
    "PermanentListError",
    "RemoteSettingsStore",
    "RemoteSyncError",
    "RemoteUnavailableError",
    "SupabaseSettingsStore",
    "SyncStatus",
]
