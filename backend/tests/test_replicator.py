"""
tests/test_replicator.py
─────────────────────────
Last-write-wins replication in :class:`ConfigReplicator`.

The shared ``replicator`` fixture runs against :class:`fakes.FakeRemoteStore`
with a 1.5 s debounce; pushes only happen when the test advances the
:class:`fakes.ManualScheduler`.
"""

import errno
import json

import pytest

import core.storage
from core.storage import FileLocalStore, MemoryLocalStore
from schemas.app_config import GENERAL_LIST_ID, TO_ATH_LIST_ID, AppConfig, PreferencesPatch
from settings_sync.remote_store import AuthRequiredError, RemoteUnavailableError
from settings_sync.replicator import (
    CLIENT_ID_KEY,
    SETTINGS_KEY,
    ConfigReplicator,
    InvalidConfigImport,
    PermanentListError,
    SyncStatus,
)


def _remote_doc(timestamp: int, theme: str = "dark") -> dict:
    return AppConfig(theme=theme, logical_timestamp=timestamp).to_wire()


class TestLocalPersistence:
    """Loading and saving through the local store."""

    def test_defaults_when_nothing_stored(self, replicator) -> None:
        assert replicator.config == AppConfig()

    def test_mutation_persists_immediately(self, replicator, store) -> None:
        replicator.mutate({"theme": "dark"})

        stored = json.loads(store.get(SETTINGS_KEY))
        assert stored["theme"] == "dark"
        assert stored["lastUpdated"] == replicator.config.logical_timestamp

    def test_reload_sees_persisted_config(self, replicator, store, remote, scheduler, clock) -> None:
        replicator.hide_item("tether")

        fresh = ConfigReplicator(store, remote, scheduler, clock, client_id="client-test")
        fresh.load_local()

        assert fresh.config.hidden_item_ids == ["tether"]

    def test_invalid_local_payload_falls_back_to_defaults(self, store, remote, scheduler, clock) -> None:
        store.set(SETTINGS_KEY, '{"gridColumns": 99}')
        rep = ConfigReplicator(store, remote, scheduler, clock, client_id="c")

        assert rep.load_local() == AppConfig()

    def test_legacy_local_payload_is_migrated(self, store, remote, scheduler, clock) -> None:
        store.set(SETTINGS_KEY, json.dumps({"favorites": ["bitcoin"], "lastUpdated": 3}))
        rep = ConfigReplicator(store, remote, scheduler, clock, client_id="c")

        config = rep.load_local()

        assert config.get_list(GENERAL_LIST_ID).item_ids == ["bitcoin"]
        assert config.get_list(TO_ATH_LIST_ID).item_ids == []

    def test_disk_full_keeps_config_in_memory(self, remote, scheduler, clock, tmp_path, monkeypatch) -> None:
        def _no_space(src, dst):
            raise OSError(errno.ENOSPC, "No space left on device")

        rep = ConfigReplicator(FileLocalStore(tmp_path), remote, scheduler, clock, client_id="c")
        rep.load_local()
        monkeypatch.setattr(core.storage.os, "replace", _no_space)

        config = rep.mutate({"theme": "dark"})

        assert config.theme == "dark"
        assert rep.config.theme == "dark"
        assert rep.status is SyncStatus.PENDING


class TestClientId:
    """Identity of the remote row."""

    def test_generated_once_and_persisted(self, remote, scheduler, clock) -> None:
        store = MemoryLocalStore()
        first = ConfigReplicator(store, remote, scheduler, clock)
        second = ConfigReplicator(store, remote, scheduler, clock)

        assert first.client_id
        assert first.client_id == second.client_id == store.get(CLIENT_ID_KEY)

    def test_pinned_client_id_wins(self, store, remote, scheduler, clock) -> None:
        rep = ConfigReplicator(store, remote, scheduler, clock, client_id="shared-row")
        assert rep.client_id == "shared-row"


class TestTimestamps:
    """Logical timestamps on mutation."""

    def test_mutation_uses_wall_clock_millis(self, replicator, clock) -> None:
        replicator.mutate({"theme": "dark"})
        assert replicator.config.logical_timestamp == int(clock.now() * 1000)

    def test_timestamp_strictly_increases_without_clock_movement(self, replicator) -> None:
        replicator.mutate({"theme": "dark"})
        first = replicator.config.logical_timestamp
        replicator.mutate({"theme": "light"})

        assert replicator.config.logical_timestamp == first + 1

    def test_timestamp_survives_clock_going_backwards(self, replicator, clock) -> None:
        replicator.mutate({"theme": "dark"})
        first = replicator.config.logical_timestamp
        clock.advance(-3600)
        replicator.mutate({"theme": "light"})

        assert replicator.config.logical_timestamp > first

    def test_function_patch_sees_current_config(self, replicator) -> None:
        replicator.mutate(lambda c: {"show_all_charts": not c.show_all_charts})
        assert replicator.config.show_all_charts is True


class TestDebouncedPush:
    """Remote writes are debounced and never stacked."""

    async def test_rapid_mutations_push_once(self, replicator, remote, scheduler) -> None:
        replicator.mutate({"theme": "dark"})
        await scheduler.advance(1.0)
        replicator.mutate({"timeframe": "W"})
        await scheduler.advance(1.0)

        assert remote.upserts == []
        assert replicator.status is SyncStatus.PENDING
        assert len(scheduler.pending) == 1

        await scheduler.advance(1.0)

        assert len(remote.upserts) == 1
        assert remote.upserts[0]["theme"] == "dark"
        assert remote.upserts[0]["timeframe"] == "W"
        assert remote.rows["client-test"] == remote.upserts[0]
        assert replicator.status is SyncStatus.SYNCED

    async def test_push_failure_is_non_fatal(self, replicator, remote, scheduler) -> None:
        remote.fail_with = RemoteUnavailableError("connection refused")
        replicator.hide_item("tether")

        await scheduler.advance(2.0)

        assert replicator.status is SyncStatus.ERROR
        assert replicator.config.hidden_item_ids == ["tether"]

        remote.fail_with = None
        replicator.hide_item("dogecoin")
        await scheduler.advance(2.0)

        assert replicator.status is SyncStatus.SYNCED
        assert remote.upserts[-1]["hiddenCoins"] == ["tether", "dogecoin"]

    async def test_auth_failure_sets_error(self, replicator, remote, scheduler) -> None:
        remote.fail_with = AuthRequiredError("JWT expired")
        replicator.clear_hidden()

        await scheduler.advance(2.0)

        assert replicator.status is SyncStatus.ERROR

    async def test_flush_pushes_pending_change_now(self, replicator, remote, scheduler) -> None:
        replicator.mutate({"theme": "dark"})

        await replicator.flush()

        assert len(remote.upserts) == 1
        assert scheduler.pending == []

    async def test_flush_without_pending_change_does_nothing(self, replicator, remote) -> None:
        await replicator.flush()
        assert remote.upserts == []

    def test_offline_without_remote(self, store, scheduler, clock) -> None:
        rep = ConfigReplicator(store, None, scheduler, clock, client_id="c")
        rep.mutate({"theme": "dark"})

        assert rep.status is SyncStatus.OFFLINE
        assert scheduler.pending == []
        assert json.loads(store.get(SETTINGS_KEY))["theme"] == "dark"


class TestPullAndMerge:
    """Last-write-wins precedence."""

    async def test_newer_remote_replaces_local(self, replicator, remote) -> None:
        replicator.mutate({"theme": "light"})
        local_ts = replicator.config.logical_timestamp
        remote.rows["client-test"] = _remote_doc(local_ts + 10, theme="dark")

        assert await replicator.pull() is True

        assert replicator.config.theme == "dark"
        assert replicator.config.logical_timestamp == local_ts + 10

    async def test_older_remote_is_ignored_and_overwritten(self, replicator, remote, scheduler) -> None:
        replicator.mutate({"theme": "light"})
        await scheduler.advance(2.0)
        remote.rows["client-test"] = _remote_doc(1, theme="dark")
        pushes = len(remote.upserts)

        assert await replicator.pull() is False
        assert replicator.config.theme == "light"

        await scheduler.advance(2.0)
        assert len(remote.upserts) == pushes + 1
        assert remote.rows["client-test"]["theme"] == "light"

    async def test_equal_timestamps_keep_local(self, replicator) -> None:
        replicator.mutate({"theme": "light"})
        ts = replicator.config.logical_timestamp

        adopted = replicator.merge(AppConfig(theme="dark", logical_timestamp=ts))

        assert adopted is False
        assert replicator.config.theme == "light"

    async def test_missing_row_is_synced(self, replicator, remote) -> None:
        assert await replicator.pull() is False
        assert replicator.status is SyncStatus.SYNCED
        assert remote.fetch_calls == ["client-test"]

    async def test_missing_row_with_local_changes_schedules_push(self, replicator, remote, scheduler) -> None:
        replicator.mutate({"theme": "dark"})
        await replicator.flush()
        remote.rows.clear()

        await replicator.pull()

        assert replicator.status is SyncStatus.PENDING

    async def test_pull_failure_keeps_local(self, replicator, remote) -> None:
        replicator.mutate({"theme": "dark"})
        remote.fail_with = RemoteUnavailableError("timeout")

        assert await replicator.pull() is False
        assert replicator.status is SyncStatus.ERROR
        assert replicator.config.theme == "dark"

    async def test_adopted_remote_is_persisted_locally(self, replicator, remote, store) -> None:
        remote.rows["client-test"] = _remote_doc(10**13)

        await replicator.pull()

        assert json.loads(store.get(SETTINGS_KEY))["theme"] == "dark"

    async def test_legacy_remote_row_is_migrated(self, replicator, remote) -> None:
        remote.rows["client-test"] = {"favorites": ["bitcoin"], "lastUpdated": 10**13}

        await replicator.pull()

        assert replicator.config.get_list(GENERAL_LIST_ID).item_ids == ["bitcoin"]


class TestUserOperations:
    """Operations layered on ``mutate``."""

    def test_create_and_delete_list(self, replicator) -> None:
        new_list = replicator.create_list("  Alts ")
        assert replicator.config.get_list(new_list.id).name == "Alts"

        replicator.delete_list(new_list.id)

        with pytest.raises(KeyError):
            replicator.config.get_list(new_list.id)

    def test_deleting_active_list_falls_back_to_general(self, replicator) -> None:
        new_list = replicator.create_list("Alts")
        replicator.set_active_list(new_list.id)

        replicator.delete_list(new_list.id)

        assert replicator.config.active_list_id == GENERAL_LIST_ID

    @pytest.mark.parametrize("list_id", ["list_general", "list_to_ath", "list_performance"])
    def test_permanent_lists_cannot_be_deleted(self, replicator, list_id) -> None:
        with pytest.raises(PermanentListError):
            replicator.delete_list(list_id)

    def test_deleting_unknown_list_raises(self, replicator) -> None:
        with pytest.raises(KeyError):
            replicator.delete_list("list_user_nope")

    def test_toggle_item_in_list(self, replicator) -> None:
        assert replicator.toggle_item_in_list(GENERAL_LIST_ID, "bitcoin") is True
        assert replicator.config.get_list(GENERAL_LIST_ID).item_ids == ["bitcoin"]

        assert replicator.toggle_item_in_list(GENERAL_LIST_ID, "bitcoin") is False
        assert replicator.config.get_list(GENERAL_LIST_ID).item_ids == []

    def test_toggle_in_unknown_list_raises(self, replicator) -> None:
        with pytest.raises(KeyError):
            replicator.toggle_item_in_list("missing", "bitcoin")

    def test_set_unknown_active_list_raises(self, replicator) -> None:
        with pytest.raises(KeyError):
            replicator.set_active_list("missing")

    def test_hide_unhide_clear(self, replicator) -> None:
        replicator.hide_item("a")
        replicator.hide_item("b")
        replicator.hide_item("a")
        assert replicator.config.hidden_item_ids == ["a", "b"]

        replicator.unhide_item("a")
        assert replicator.config.hidden_item_ids == ["b"]

        replicator.clear_hidden()
        assert replicator.config.hidden_item_ids == []

    def test_toggle_restored_global(self, replicator) -> None:
        assert replicator.toggle_restored_global("tether") is True
        assert replicator.config.restored_global_ids == ["tether"]
        assert replicator.toggle_restored_global("tether") is False
        assert replicator.config.restored_global_ids == []

    def test_update_preferences_applies_only_given_fields(self, replicator) -> None:
        replicator.update_preferences(PreferencesPatch(theme="dark"))

        assert replicator.config.theme == "dark"
        assert replicator.config.timeframe == "M"

    def test_empty_preferences_patch_is_not_a_mutation(self, replicator, scheduler) -> None:
        replicator.update_preferences(PreferencesPatch())

        assert replicator.config.logical_timestamp == 0
        assert scheduler.pending == []


class TestImportExport:
    """Settings files."""

    def test_export_then_import_restores_lists(self, replicator, store, remote, scheduler, clock) -> None:
        replicator.toggle_item_in_list(GENERAL_LIST_ID, "bitcoin")
        exported = replicator.export_json()

        other = ConfigReplicator(MemoryLocalStore(), remote, scheduler, clock, client_id="other")
        other.import_json(exported)

        assert other.config.get_list(GENERAL_LIST_ID).item_ids == ["bitcoin"]

    def test_import_bumps_timestamp(self, replicator) -> None:
        replicator.mutate({"theme": "dark"})
        before = replicator.config.logical_timestamp

        replicator.import_json({"favoriteLists": [], "lastUpdated": 1})

        assert replicator.config.logical_timestamp > before

    def test_import_legacy_favorites(self, replicator) -> None:
        replicator.import_json('{"favorites": ["solana"]}')

        assert replicator.config.get_list(GENERAL_LIST_ID).item_ids == ["solana"]
        assert replicator.config.get_list(TO_ATH_LIST_ID).item_ids == []

    @pytest.mark.parametrize(
        "document",
        ["not json", "[1, 2]", '{"theme": "dark"}', '{"favoriteLists": "nope"}'],
    )
    def test_invalid_documents_rejected(self, replicator, document) -> None:
        with pytest.raises(InvalidConfigImport):
            replicator.import_json(document)
        assert replicator.config.logical_timestamp == 0
