"""Tests for the sync engine."""

import asyncio
from datetime import timedelta

import pytest

from profit_sync.auth import AuthSession, AuthUser
from profit_sync.core import ConflictChoice, FixedChoiceResolver, LoggingNotifier
from profit_sync.core.sync import ENTRY_SPACE, SyncEngine, SyncResult, SyncState
from profit_sync.database import (
    LAST_SYNC_STATE,
    DatabaseService,
    LocalStore,
    Namespace,
)
from profit_sync.models import OfflineAction
from profit_sync.remote import ChangeKind, Collection, RemoteChange
from profit_sync.utils.timestamps import parse_timestamp, to_iso

from conftest import START, USER_ID, UndecidedResolver


def seed_local(local_store, *documents, namespace=Namespace.ENTRIES):
    """Place documents in the local store."""

    async def run():
        for doc in documents:
            await local_store.upsert(namespace, doc)

    asyncio.run(run())


class TestSyncResult:
    """Test SyncResult summaries."""

    def test_summary_counts(self):
        """Test the notification line of a completed pass."""
        result = SyncResult(mode="full", uploaded=2, downloaded=1, conflicts=1)
        assert result.summary() == (
            "Sync complete: 2 uploaded, 1 downloaded, 1 conflict resolved"
        )
        assert result.success

    def test_summary_with_failures(self):
        """Test that failed records are reported as queued."""
        result = SyncResult(mode="incremental", failed=1, outbox_failed=2)
        assert "3 queued for retry" in result.summary()
        assert not result.success

    def test_skipped_summary(self):
        """Test the summary of a pass that did not run."""
        result = SyncResult(mode="full", skipped_reason="offline")
        assert result.skipped
        assert result.summary() == "Sync skipped (offline)"
        assert not result.success


class TestFullSync:
    """Test full passes on sign-in."""

    def test_local_only_entry_uploaded_on_sign_in(
        self, engine, auth, user, local_store, remote, notifier, make_entry
    ):
        """Test bootstrap upload when the cloud is empty."""
        seed_local(local_store, make_entry("2026-03-01", 10.0, START))

        async def run():
            await auth.sign_in(user)
            mirror = await local_store.get(Namespace.ENTRIES, "2026-03-01")
            subscribers = remote.subscriber_count(Collection.ENTRIES, USER_ID)
            await engine.close()
            return mirror, subscribers

        mirror, subscribers = asyncio.run(run())

        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert cloud["2026-03-01"]["points"] == 10.0
        assert mirror["remoteUpdatedAt"] == cloud["2026-03-01"]["remoteUpdatedAt"]
        assert notifier.messages == [("Sync complete: 1 uploaded, 0 downloaded", False)]
        assert engine.state == SyncState.IDLE
        assert subscribers == 1

    def test_bootstrap_download(
        self, engine, auth, user, local_store, remote, make_entry
    ):
        """Test that an empty mirror is filled from the cloud."""
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-01", 1.0, START))
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-02", 2.0, START))
        auth.restore(user)

        async def run():
            result = await engine.on_user_sign_in(user)
            entries = await engine.get_entries()
            await engine.close()
            return result, entries

        result, entries = asyncio.run(run())

        assert result.mode == "bootstrap_download"
        assert result.downloaded == 2
        assert [e.date for e in entries] == ["2026-03-01", "2026-03-02"]
        assert remote.total_writes == 0

    def test_merge_resolves_each_key(
        self, engine, auth, user, local_store, remote, clock, make_entry
    ):
        """Test per-key last-write-wins when both sides have data."""
        t0 = START
        # Local edit newer than the cloud
        seed_local(local_store, make_entry("2026-03-01", 12.0, t0 + timedelta(hours=2)))
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-01", 5.0, t0))
        # Cloud edit newer than the clean local copy
        seed_local(local_store, make_entry("2026-03-02", 3.0, t0, remote_updated_at=t0))
        remote.seed(
            Collection.ENTRIES,
            USER_ID,
            make_entry("2026-03-02", 8.0, t0 + timedelta(hours=1)),
        )
        # Identical on both sides
        seed_local(local_store, make_entry("2026-03-03", 4.0, t0, remote_updated_at=t0))
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-03", 4.0, t0))
        clock.advance(hours=3)
        auth.restore(user)

        async def run():
            result = await engine.perform_full_sync()
            local = await local_store.get(Namespace.ENTRIES, "2026-03-02")
            return result, local

        result, local = asyncio.run(run())

        assert result.uploaded == 1
        assert result.downloaded == 1
        assert result.conflicts == 0
        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert cloud["2026-03-01"]["points"] == 12.0
        assert local["points"] == 8.0
        assert remote.write_counts[Collection.ENTRIES] == 1

    def test_equal_timestamps_ask_and_keep_cloud(
        self, engine, auth, user, local_store, remote, resolver, make_entry
    ):
        """Test that a tie with different content asks the user."""
        seed_local(local_store, make_entry("2026-03-01", 10.0, START))
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-01", 20.0, START))
        auth.restore(user)

        async def run():
            result = await engine.perform_full_sync()
            local = await local_store.get(Namespace.ENTRIES, "2026-03-01")
            return result, local

        result, local = asyncio.run(run())

        assert resolver.asked == ["2026-03-01"]
        assert result.conflicts == 1
        assert result.downloaded == 1
        assert local["points"] == 20.0
        assert result.summary() == (
            "Sync complete: 0 uploaded, 1 downloaded, 1 conflict resolved"
        )

    def test_equal_timestamps_keep_local(
        self, local_store, remote, auth, user, notifier, clock, make_entry
    ):
        """Test that choosing this device uploads the local version."""
        engine = SyncEngine(
            local_store,
            remote,
            auth,
            notifier,
            FixedChoiceResolver(ConflictChoice.KEEP_LOCAL),
            clock=clock,
        )
        seed_local(local_store, make_entry("2026-03-01", 10.0, START))
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-01", 20.0, START))
        clock.advance(minutes=1)
        auth.restore(user)

        result = asyncio.run(engine.perform_full_sync())

        assert result.uploaded == 1
        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert cloud["2026-03-01"]["points"] == 10.0

    def test_settings_reconciled(self, engine, auth, user, local_store, remote, clock):
        """Test that newer local settings are uploaded."""
        seed_local(
            local_store,
            {
                "name": "rates",
                "pointRate": 7.25,
                "modifiedAt": to_iso(START + timedelta(hours=1)),
            },
            namespace=Namespace.SETTINGS,
        )
        remote.seed(
            Collection.SETTINGS,
            USER_ID,
            {"name": "rates", "pointRate": 6.5, "modifiedAt": to_iso(START)},
        )
        clock.advance(hours=2)
        auth.restore(user)

        result = asyncio.run(engine.perform_full_sync())

        assert result.settings == "local"
        cloud = remote.snapshot(Collection.SETTINGS, USER_ID)
        assert cloud["rates"]["pointRate"] == 7.25

    def test_remote_settings_downloaded(self, engine, auth, user, remote):
        """Test that cloud settings fill an empty mirror."""
        remote.seed(
            Collection.SETTINGS,
            USER_ID,
            {"name": "rates", "pointRate": 9.0, "modifiedAt": to_iso(START)},
        )
        auth.restore(user)

        async def run():
            result = await engine.perform_full_sync()
            return result, await engine.get_settings()

        result, settings = asyncio.run(run())
        assert result.settings == "remote"
        assert settings.point_rate == 9.0

    def test_default_settings(self, engine):
        """Test defaults when no settings were ever saved."""
        settings = asyncio.run(engine.get_settings())
        assert settings.point_rate == 6.50

    def test_manual_sync_all_resets_watermark(self, engine, auth, user, local_store):
        """Test that a manual sync forgets the watermark first."""
        auth.restore(user)

        async def run():
            await local_store.set_state(LAST_SYNC_STATE, "2030-01-01T00:00:00Z")
            result = await engine.perform_manual_sync_all()
            return result, await local_store.get_state(LAST_SYNC_STATE)

        result, watermark = asyncio.run(run())
        assert not result.skipped
        assert parse_timestamp(watermark) == START


    def test_queued_delete_not_restored_by_bootstrap_download(
        self, engine, auth, user, local_store, remote, clock, make_entry
    ):
        """Test that an entry deleted offline stays deleted."""
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-01", 1.0, START))
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-02", 2.0, START))
        clock.advance(hours=1)
        auth.restore(user)

        async def run():
            await engine.outbox.enqueue(
                ENTRY_SPACE,
                {"date": "2026-03-01", "modifiedAt": to_iso(clock())},
                OfflineAction.DELETE,
            )
            remote.fail_key("2026-03-01")
            clock.advance(hours=1)
            first = await engine.perform_full_sync()
            mirror = await local_store.get(Namespace.ENTRIES, "2026-03-01")

            remote.clear_failures()
            clock.advance(minutes=5)
            await engine.sync_when_online()
            clock.advance(minutes=5)
            last = await engine.perform_full_sync()
            return first, mirror, last, await engine.outbox.count()

        first, mirror, last, remaining = asyncio.run(run())

        assert first.mode == "bootstrap_download"
        assert first.downloaded == 1
        assert first.outbox_failed == 1
        assert mirror is None
        assert last.uploaded == 0
        assert remaining == 0
        assert sorted(remote.snapshot(Collection.ENTRIES, USER_ID)) == ["2026-03-02"]

    def test_bootstrap_upload_then_download_on_new_device(
        self, engine, auth, user, local_store, remote, clock, tmp_path, make_entry
    ):
        """Test that both bootstrap directions end with the same record set."""
        dates = [f"2026-03-0{day}" for day in range(1, 6)]
        seed_local(
            local_store,
            *(make_entry(date, float(i), START) for i, date in enumerate(dates)),
        )
        clock.advance(hours=1)
        auth.restore(user)

        other_db = DatabaseService(db_path=tmp_path / "other-device.db")
        other_store = LocalStore(other_db)
        other_auth = AuthSession()
        other_auth.restore(user)
        other_engine = SyncEngine(
            other_store,
            remote,
            other_auth,
            LoggingNotifier(),
            FixedChoiceResolver(),
            clock=clock,
        )

        async def run():
            uploaded = await engine.perform_full_sync()
            clock.advance(minutes=1)
            downloaded = await other_engine.perform_full_sync()
            return (
                uploaded,
                downloaded,
                await local_store.get_all(Namespace.ENTRIES),
                await other_store.get_all(Namespace.ENTRIES),
            )

        try:
            uploaded, downloaded, first_docs, second_docs = asyncio.run(run())
        finally:
            other_db.close()

        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert uploaded.mode == "bootstrap_upload"
        assert uploaded.uploaded == 5
        assert downloaded.mode == "bootstrap_download"
        assert downloaded.downloaded == 5
        assert sorted(cloud) == dates
        assert remote.write_counts[Collection.ENTRIES] == 5
        for docs in (first_docs, second_docs):
            assert {
                doc["date"]: (doc["points"], doc["remoteUpdatedAt"]) for doc in docs
            } == {
                key: (doc["points"], doc["remoteUpdatedAt"])
                for key, doc in cloud.items()
            }

    def test_identical_content_not_uploaded_again(
        self, engine, auth, user, local_store, remote, make_entry
    ):
        """Test that a newer local stamp alone does not cause an upload."""
        seed_local(
            local_store,
            make_entry("2026-03-01", 4.0, START + timedelta(seconds=1)),
        )
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-01", 4.0, START))
        auth.restore(user)

        result = asyncio.run(engine.perform_full_sync())

        assert result.uploaded == 0
        assert result.downloaded == 0
        assert remote.total_writes == 0

    def test_unanswered_conflict_leaves_both_versions(
        self, local_store, remote, auth, user, notifier, clock, make_entry
    ):
        """Test that a dismissed conflict dialog changes nothing."""
        undecided = UndecidedResolver()
        engine = SyncEngine(local_store, remote, auth, notifier, undecided, clock=clock)
        seed_local(local_store, make_entry("2026-03-01", 10.0, START))
        remote.seed(Collection.ENTRIES, USER_ID, make_entry("2026-03-01", 20.0, START))
        auth.restore(user)

        async def run():
            result = await engine.perform_full_sync()
            return result, await local_store.get(Namespace.ENTRIES, "2026-03-01")

        result, local = asyncio.run(run())

        assert undecided.asked == ["2026-03-01"]
        assert result.conflicts == 0
        assert result.failed == 1
        assert "not resolved" in result.errors[0]
        assert local["points"] == 10.0
        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert cloud["2026-03-01"]["points"] == 20.0
        assert remote.total_writes == 0


class TestIncrementalSync:
    """Test incremental passes and the watermark."""

    def test_only_changes_since_watermark_uploaded(
        self, engine, auth, user, local_store, remote, clock, make_entry
    ):
        """Test that old and clean records are not uploaded."""
        t0 = START
        seed_local(
            local_store,
            make_entry("2026-02-28", 1.0, t0 - timedelta(hours=1)),
            make_entry("2026-03-01", 2.0, t0 + timedelta(hours=1)),
            make_entry(
                "2026-03-02",
                3.0,
                t0 + timedelta(hours=1),
                remote_updated_at=t0 + timedelta(hours=1),
            ),
        )
        clock.advance(hours=2)
        auth.restore(user)

        async def run():
            await local_store.set_state(LAST_SYNC_STATE, to_iso(t0))
            return await engine.sync_when_online()

        result = asyncio.run(run())

        assert result.mode == "incremental"
        assert result.uploaded == 1
        assert list(remote.snapshot(Collection.ENTRIES, USER_ID)) == ["2026-03-01"]
        assert engine.last_sync_time == clock.now

    def test_watermark_never_moves_backwards(self, engine, auth, user, local_store):
        """Test that a pass starting before the stored watermark keeps it."""
        future = START + timedelta(hours=10)
        auth.restore(user)

        async def run():
            await local_store.set_state(LAST_SYNC_STATE, to_iso(future))
            await engine.sync_when_online()
            return await local_store.get_state(LAST_SYNC_STATE)

        stored = asyncio.run(run())
        assert parse_timestamp(stored) == future
        assert engine.last_sync_time == future

    def test_overlapping_passes_are_skipped(self, engine, auth, user):
        """Test that a trigger during a running pass is ignored."""
        auth.restore(user)

        async def run():
            return await asyncio.gather(
                engine.sync_when_online(), engine.sync_when_online()
            )

        first, second = asyncio.run(run())
        assert not first.skipped
        assert second.skipped_reason == "sync already running"
        assert not engine.is_syncing

    def test_unverified_email_skips_sync(self, engine, auth):
        """Test that sync needs a verified email."""
        unverified = AuthUser(uid=USER_ID, email_verified=False)
        auth.restore(unverified)

        async def run():
            return (
                await engine.on_user_sign_in(unverified),
                await engine.sync_when_online(),
            )

        on_sign_in, incremental = asyncio.run(run())
        assert on_sign_in.skipped_reason == "email not verified"
        assert incremental.skipped_reason == "email not verified"

    def test_not_signed_in_skips_sync(self, engine):
        """Test that sync needs a user."""
        result = asyncio.run(engine.sync_when_online())
        assert result.skipped_reason == "not signed in"


class TestOfflineWrites:
    """Test cloud-first writes, the outbox and reconnection."""

    def test_save_online_writes_through(self, engine, auth, user, remote):
        """Test that a save goes straight to the cloud."""
        auth.restore(user)

        async def run():
            saved = await engine.save_entry({"date": "2026-03-01", "points": 6})
            return saved, await engine.outbox.count()

        saved, queued = asyncio.run(run())

        assert saved["remoteUpdatedAt"]
        assert queued == 0
        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert cloud["2026-03-01"]["points"] == 6

    def test_save_keeps_created_at(self, engine, auth, user, clock, local_store):
        """Test that editing an entry keeps its creation time."""
        auth.restore(user)

        async def run():
            await engine.save_entry({"date": "2026-03-01", "points": 1})
            clock.advance(hours=1)
            await engine.save_entry({"date": "2026-03-01", "points": 2})
            return await local_store.get(Namespace.ENTRIES, "2026-03-01")

        stored = asyncio.run(run())
        assert parse_timestamp(stored["createdAt"]) == START
        assert parse_timestamp(stored["modifiedAt"]) == START + timedelta(hours=1)

    def test_offline_save_replayed_on_reconnect(
        self, engine, auth, user, remote, clock, local_store
    ):
        """Test that writes made offline reach the cloud after reconnecting."""
        auth.restore(user)

        async def run():
            await engine.set_online(False)
            remote.set_online(False)
            state_offline = engine.state
            await engine.save_entry({"date": "2026-03-02", "points": 7})
            queued = await engine.outbox.count()
            mirror = await local_store.get(Namespace.ENTRIES, "2026-03-02")

            remote.set_online(True)
            clock.advance(minutes=5)
            result = await engine.set_online(True)
            return state_offline, queued, mirror, result, await engine.outbox.count()

        state_offline, queued, mirror, result, remaining = asyncio.run(run())

        assert state_offline == SyncState.OFFLINE
        assert queued == 1
        assert mirror["points"] == 7
        assert result.outbox_replayed == 1
        assert remaining == 0
        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert cloud["2026-03-02"]["points"] == 7
        assert engine.state == SyncState.IDLE

    def test_network_failure_queues_write(self, engine, auth, user, remote):
        """Test that a failed remote write lands in the outbox."""
        auth.restore(user)
        remote.fail_key("2026-03-01")

        async def run():
            saved = await engine.save_entry({"date": "2026-03-01", "points": 1})
            pending = await engine.outbox.pending()
            return saved, pending

        saved, pending = asyncio.run(run())
        assert "remoteUpdatedAt" not in saved
        assert [item["offlineAction"] for _, item in pending] == ["save"]

    def test_replay_failure_keeps_item_queued(
        self, engine, auth, user, remote, clock
    ):
        """Test three queued writes where one keeps failing."""
        auth.restore(user)

        async def run():
            await engine.set_online(False)
            for date in ("2026-03-01", "2026-03-02", "2026-03-03"):
                await engine.save_entry({"date": date, "points": 1})
                clock.advance(seconds=1)
            remote.fail_key("2026-03-02")
            first = await engine.set_online(True)
            remaining = await engine.outbox.pending()

            remote.clear_failures()
            second = await engine.set_online(True)
            return first, remaining, second, await engine.outbox.count()

        first, remaining, second, final_count = asyncio.run(run())

        assert first.outbox_replayed == 2
        assert first.outbox_failed == 1
        assert first.outbox_remaining == 1
        assert [item["date"] for _, item in remaining] == ["2026-03-02"]
        assert second.outbox_replayed == 1
        assert final_count == 0
        assert sorted(remote.snapshot(Collection.ENTRIES, USER_ID)) == [
            "2026-03-01",
            "2026-03-02",
            "2026-03-03",
        ]

    def test_delete_offline_replayed(self, engine, auth, user, remote, local_store):
        """Test that a delete made offline removes the cloud copy later."""
        auth.restore(user)

        async def run():
            await engine.save_entry({"date": "2026-03-01", "points": 1})
            await engine.set_online(False)
            await engine.delete_entry("2026-03-01")
            local = await local_store.get(Namespace.ENTRIES, "2026-03-01")
            in_cloud = "2026-03-01" in remote.snapshot(Collection.ENTRIES, USER_ID)
            await engine.set_online(True)
            return local, in_cloud

        local, in_cloud_while_offline = asyncio.run(run())

        assert local is None
        assert in_cloud_while_offline
        assert remote.snapshot(Collection.ENTRIES, USER_ID) == {}

    def test_delete_online(self, engine, auth, user, remote):
        """Test that deletes are written through."""
        auth.restore(user)

        async def run():
            await engine.save_entry({"date": "2026-03-01", "points": 1})
            await engine.delete_entry("2026-03-01")
            return await engine.outbox.count()

        assert asyncio.run(run()) == 0
        assert remote.snapshot(Collection.ENTRIES, USER_ID) == {}

    def test_save_settings_offline(self, engine, auth, user, local_store):
        """Test that settings saved offline are queued."""
        auth.restore(user)

        async def run():
            await engine.set_online(False)
            await engine.save_settings({"pointRate": 8.0, "techCode": "c123"})
            return (
                await local_store.get(Namespace.OUTBOX_SETTINGS, "rates"),
                await engine.get_settings(),
            )

        queued, settings = asyncio.run(run())
        assert queued["pointRate"] == 8.0
        assert settings.tech_code == "C123"


    def test_write_delivered_twice_leaves_one_record(
        self, engine, auth, user, remote, clock
    ):
        """Test that replaying the same queued write twice is harmless."""
        auth.restore(user)
        document = {
            "date": "2026-03-01",
            "points": 4,
            "createdAt": to_iso(START),
            "modifiedAt": to_iso(START),
        }

        async def run():
            replayed = []
            for _ in range(2):
                await engine.outbox.enqueue(ENTRY_SPACE, document, OfflineAction.SAVE)
                clock.advance(seconds=1)
                result = await engine.sync_when_online()
                replayed.append(result.outbox_replayed)
            return replayed, await engine.outbox.count()

        replayed, remaining = asyncio.run(run())

        cloud = remote.snapshot(Collection.ENTRIES, USER_ID)
        assert replayed == [1, 1]
        assert remaining == 0
        assert list(cloud) == ["2026-03-01"]
        assert cloud["2026-03-01"]["points"] == 4
        assert remote.write_counts[Collection.ENTRIES] == 2


class TestPermissionDenied:
    """Test local-only mode after the cloud rejects the account."""

    def test_permission_error_blocks_and_notifies_once(
        self, engine, auth, user, remote, notifier, local_store
    ):
        """Test that the engine keeps working locally after a denial."""
        remote.deny_access()

        async def run():
            await auth.sign_in(user)
            blocked_state = engine.state
            subscribers = remote.subscriber_count(Collection.ENTRIES, USER_ID)
            await engine.save_entry({"date": "2026-03-01", "points": 1})
            await engine.save_entry({"date": "2026-03-02", "points": 2})
            skipped = await engine.sync_when_online()
            queued = await engine.outbox.count()

            remote.deny_access(False)
            await auth.sign_in(user)
            await engine.close()
            return blocked_state, subscribers, skipped, queued

        blocked_state, subscribers, skipped, queued = asyncio.run(run())

        assert blocked_state == SyncState.PERMISSION_BLOCKED
        assert subscribers == 0
        assert skipped.skipped_reason == "permission denied"
        assert queued == 2
        errors = [message for message, is_error in notifier.messages if is_error]
        assert len(errors) == 1
        assert "permission denied" in errors[0]
        # A new sign-in clears the block and replays the queued writes
        assert engine.state == SyncState.IDLE
        assert sorted(remote.snapshot(Collection.ENTRIES, USER_ID)) == [
            "2026-03-01",
            "2026-03-02",
        ]

    def test_status_reports_permission_error(self, engine, auth, user, remote):
        """Test the status snapshot of a blocked engine."""
        remote.deny_access()
        auth.restore(user)

        asyncio.run(engine.perform_full_sync())
        status = engine.get_sync_status()

        assert status.state == "permission_blocked"
        assert status.has_permission_error
        assert status.is_signed_in


class TestRemotePushes:
    """Test changes pushed by the remote subscription."""

    def test_other_device_changes_applied(
        self, engine, auth, user, remote, local_store
    ):
        """Test that writes from another device reach the mirror."""

        async def run():
            await auth.sign_in(user)
            await remote.put(
                Collection.ENTRIES, USER_ID, "2026-03-05", {"points": 4.0}
            )
            await engine.wait_for_remote_updates()
            pushed = await local_store.get(Namespace.ENTRIES, "2026-03-05")

            await remote.delete(Collection.ENTRIES, USER_ID, "2026-03-05")
            await engine.wait_for_remote_updates()
            deleted = await local_store.get(Namespace.ENTRIES, "2026-03-05")
            await engine.close()
            return pushed, deleted

        pushed, deleted = asyncio.run(run())
        assert pushed["points"] == 4.0
        assert deleted is None

    def test_push_ignored_while_write_queued(
        self, engine, auth, user, local_store, make_entry
    ):
        """Test that a pending local write is not overwritten by a push."""
        auth.restore(user)
        local = make_entry("2026-03-01", 1.0, START)
        seed_local(local_store, local)

        async def run():
            await engine.outbox.enqueue(ENTRY_SPACE, local, OfflineAction.SAVE)
            remote_doc = make_entry(
                "2026-03-01",
                9.0,
                START,
                remote_updated_at=START + timedelta(hours=1),
            )
            applied = await engine.apply_remote_changes(
                ENTRY_SPACE,
                [RemoteChange(ChangeKind.UPSERT, "2026-03-01", remote_doc)],
            )
            return applied, await local_store.get(Namespace.ENTRIES, "2026-03-01")

        applied, stored = asyncio.run(run())
        assert applied == 0
        assert stored["points"] == 1.0


class TestSignOut:
    """Test sign-out handling."""

    def test_sign_out_stops_listening(self, engine, auth, user, remote, local_store):
        """Test that sign-out unsubscribes and forgets the watermark."""

        async def run():
            await auth.sign_in(user)
            await auth.sign_out()
            return await local_store.get_state(LAST_SYNC_STATE)

        watermark = asyncio.run(run())

        assert watermark is None
        assert engine.last_sync_time is None
        assert remote.subscriber_count(Collection.ENTRIES, USER_ID) == 0
        assert engine.state == SyncState.IDLE


@pytest.mark.parametrize("online", [True, False])
def test_status_snapshot(engine, auth, user, online):
    """Test the status exposed to the UI."""
    auth.restore(user)
    asyncio.run(engine.set_online(online))
    status = engine.get_sync_status()
    assert status.is_online is online
    assert status.state == ("idle" if online else "offline")
