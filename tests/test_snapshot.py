"""Tests for snapshot export and import."""

from __future__ import annotations

import json
from datetime import date

import pytest

from staysync_storage.exceptions import InvalidFormatError
from staysync_storage.remote import RemoteConfig
from staysync_storage.schema import ALL_COLLECTIONS, Collection
from staysync_storage.settings import AppSettings
from staysync_storage.snapshot import (
    SNAPSHOT_VERSION,
    Snapshot,
    default_backup_name,
    parse_snapshot,
)

from conftest import TEST_ENDPOINT


def by_id(records):
    return {r["id"]: r for r in records}


async def populate(engine):
    """Seed demo collections and add records to a few non-demo ones."""
    for getter in (engine.get_rooms, engine.get_guests, engine.get_staff, engine.get_history):
        await getter()
    await engine.save_documents([{"id": "d1", "category": "Policy", "title": "Check-in"}])
    await engine.save_dnr([{"id": "n1", "name": "Banned Person"}])


class TestExport:
    async def test_export_reads_every_collection(self, engine, local_store):
        await populate(engine)
        snapshot = await engine.export_snapshot()

        assert snapshot.version == SNAPSHOT_VERSION
        assert set(snapshot.data) == {c.key for c in ALL_COLLECTIONS}
        assert len(snapshot.data["rooms"]) == 8
        assert snapshot.data["documents"][0]["id"] == "d1"
        assert snapshot.data["attendance"] == []

    async def test_export_redacts_secrets(self, engine, registry):
        await registry.save_settings(
            AppSettings(
                api_key="relay-secret",
                remote=RemoteConfig(endpoint=TEST_ENDPOINT, key="cosmos-secret"),
            )
        )
        snapshot = await engine.export_snapshot()
        text = json.dumps(snapshot.to_dict())

        assert "relay-secret" not in text
        assert "cosmos-secret" not in text
        assert snapshot.settings["remote"]["endpoint"] == TEST_ENDPOINT

    async def test_export_ignores_remote(self, cloud_engine, remote_factory, local_store):
        remote_factory.data[Collection.ROOMS] = [{"id": "remote-only"}]
        await local_store.bulk_add(Collection.ROOMS, [{"id": "local-only"}])

        snapshot = await cloud_engine.export_snapshot()
        assert snapshot.data["rooms"] == [{"id": "local-only"}]

    def test_to_dict_is_a_copy(self):
        snapshot = Snapshot("2.0", "2024-01-01T00:00:00+00:00", {"rooms": [{"id": "1"}]})
        snapshot.to_dict()["data"]["rooms"].clear()
        assert snapshot.data["rooms"] == [{"id": "1"}]

    def test_default_backup_name(self):
        assert default_backup_name(date(2024, 3, 9)) == "staysync_backup_2024-03-09.json"


class TestImport:
    async def test_export_clear_import_restores_everything(self, engine, local_store):
        await populate(engine)
        before = {c: await local_store.to_array(c) for c in ALL_COLLECTIONS}

        snapshot = await engine.export_snapshot()
        await engine.clear_all_data()
        await engine.import_snapshot(snapshot)

        for coll in ALL_COLLECTIONS:
            assert by_id(await local_store.to_array(coll)) == by_id(before[coll])

    async def test_import_accepts_plain_dict(self, engine, local_store):
        await engine.import_snapshot(
            {
                "version": "2.0",
                "timestamp": "2024-01-01T00:00:00+00:00",
                "data": {"rooms": [{"id": "101"}], "parking": [{"id": "p1"}]},
            }
        )
        assert await local_store.to_array(Collection.ROOMS) == [{"id": "101"}]

    async def test_absent_collections_are_cleared(self, engine, local_store):
        await populate(engine)
        await engine.import_snapshot(
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": {"rooms": []}}
        )
        for coll in ALL_COLLECTIONS:
            assert await local_store.count(coll) == 0

    async def test_import_does_not_apply_settings(self, engine, registry):
        await registry.save_settings(AppSettings(hotel_name="Seaside"))
        await engine.import_snapshot(
            {
                "version": "2.0",
                "timestamp": "2024-01-01T00:00:00",
                "data": {},
                "settings": {"hotelName": "Elsewhere"},
            }
        )
        assert (await registry.get_settings()).hotel_name == "Seaside"

    async def test_import_notifies_subscribers(self, engine):
        seen = []
        engine.hub.subscribe(Collection.ROOMS, lambda coll, items: seen.append(items))
        await engine.import_snapshot(
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": {"rooms": [{"id": "1"}]}}
        )
        assert seen == [[{"id": "1"}]]

    @pytest.mark.parametrize(
        "bundle",
        [
            [],
            {"timestamp": "2024-01-01T00:00:00", "data": {}},
            {"version": "2.0", "data": {}},
            {"version": "2.0", "timestamp": "yesterday", "data": {}},
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00"},
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": []},
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": {"rooms": {}}},
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": {"rooms": [{"x": 1}]}},
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": {"rooms": [{"id": None}]}},
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": {"rooms": [{"id": ""}]}},
            {
                "version": "2.0",
                "timestamp": "2024-01-01T00:00:00",
                "data": {"rooms": [{"id": "1"}, {"id": "1"}]},
            },
        ],
    )
    def test_malformed_bundles_rejected(self, bundle):
        with pytest.raises(InvalidFormatError):
            parse_snapshot(bundle)

    async def test_failed_import_changes_nothing(self, engine, local_store):
        await populate(engine)
        before = {c: await local_store.to_array(c) for c in ALL_COLLECTIONS}

        with pytest.raises(InvalidFormatError):
            await engine.import_snapshot(
                {
                    "version": "2.0",
                    "timestamp": "2024-01-01T00:00:00",
                    "data": {"rooms": [], "guests": "not a list"},
                }
            )

        for coll in ALL_COLLECTIONS:
            assert await local_store.to_array(coll) == before[coll]

    async def test_import_never_touches_remote(self, cloud_engine, remote_factory):
        await cloud_engine.import_snapshot(
            {"version": "2.0", "timestamp": "2024-01-01T00:00:00", "data": {"rooms": [{"id": "1"}]}}
        )
        assert remote_factory.latest.writes == []


class TestSnapshotFiles:
    async def test_file_round_trip(self, engine, local_store, tmp_path):
        await populate(engine)
        before = {c: await local_store.to_array(c) for c in ALL_COLLECTIONS}

        path = await engine.export_snapshot_to_file(tmp_path / "backup.json")
        await engine.clear_all_data()
        await engine.import_snapshot_from_file(path)

        for coll in ALL_COLLECTIONS:
            assert by_id(await local_store.to_array(coll)) == by_id(before[coll])

    async def test_directory_gets_default_name(self, engine, tmp_path):
        path = await engine.export_snapshot_to_file(tmp_path)
        assert path.parent == tmp_path
        assert path.name.startswith("staysync_backup_")
        assert json.loads(path.read_text())["version"] == SNAPSHOT_VERSION

    async def test_invalid_json_file(self, engine, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(InvalidFormatError):
            await engine.import_snapshot_from_file(path)

    async def test_non_utf8_file(self, engine, local_store, tmp_path):
        await engine.save_rooms([{"id": "101"}])
        path = tmp_path / "binary.json"
        path.write_bytes(b"\xff\xfe{}")

        with pytest.raises(InvalidFormatError):
            await engine.import_snapshot_from_file(path)
        assert await local_store.to_array(Collection.ROOMS) == [{"id": "101"}]
