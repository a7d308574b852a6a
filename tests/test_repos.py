from datetime import datetime

import pytest

import repos
import storage
import utils
from geometry import measure_ring
from models import SoilType
from repos import FARMERS, HISTORY, LANDS, RecordStore, UnknownFarmerError


def _form(farmer_id=None, land_id=None, crop="Wheat", area=10.0):
    form = {"cropType": crop, "area": area, "fieldShape": "{}"}
    if farmer_id:
        form["farmerId"] = farmer_id
    if land_id:
        form["landId"] = land_id
    return form


_RESULT = {"predictedYield": 3.1, "yieldUnit": "tons/hectare", "summary": "ok"}


# -------------------------
# Seeding
# -------------------------
def test_first_run_seeds_default_dataset_once(store):
    assert store.initialize() is True
    names = [f.name for f in store.list_farmers()]
    assert names == ["John Appleseed", "Maria Garcia"]
    assert len(store.list_lands()) == 3
    history = store.list_history()
    assert [e.land_id for e in history] == [l.id for l in store.list_lands()]
    assert [e.id for e in history] == sorted((e.id for e in history), reverse=True)

    assert store.initialize() is False
    assert len(store.list_farmers()) == 2
    assert len(store.list_history()) == 3


def test_seeded_plots_predate_seeded_history(store):
    store.initialize()
    newest_plot = max(l.id for l in store.list_lands())
    oldest_entry = min(e.id for e in store.list_history())
    plot_micros = int(newest_plot.split("-")[0])
    entry_micros = utils.instant_micros(datetime.fromisoformat(oldest_entry.replace("Z", "+00:00")))
    assert plot_micros < entry_micros


def test_no_reseed_when_any_collection_exists(store):
    store.create_farmer("Alice")
    assert store.initialize() is False
    assert [f.name for f in store.list_farmers()] == ["Alice"]


# -------------------------
# Scenario: create, measure, cascade
# -------------------------
def test_alice_scenario(store, equator_square):
    alice = store.create_farmer("Alice").record
    boundary = measure_ring(equator_square)
    land = store.create_land(alice.id, boundary.area_hectares, boundary.payload, SoilType.LOAMY).record

    assert land.area == pytest.approx(100.0, rel=0.01)
    assert store.lands_for_farmer(alice.id) == [land]

    outcome = store.delete_farmer(alice.id)

    assert outcome.complete and outcome.farmer_removed
    assert outcome.lands_removed == 1
    assert store.list_lands() == []
    assert store.list_farmers() == []


def test_cascade_removes_only_the_farmers_children(store):
    store.initialize()
    (johns,) = store.lands_for_farmer("farmer-1")
    store.add_history(_form("farmer-1", johns.id), _RESULT)

    outcome = store.delete_farmer("farmer-1")

    assert outcome.history_removed == 2
    assert all(l.farmer_id != "farmer-1" for l in store.list_lands())
    assert all(e.farmer_id != "farmer-1" for e in store.list_history())
    assert [f.id for f in store.list_farmers()] == ["farmer-2"]
    assert len(store.list_lands()) == 2
    assert [e.land_id for e in store.list_history()] == [l.id for l in store.lands_for_farmer("farmer-2")]


def test_cascade_completeness_for_every_farmer(store):
    store.initialize()
    for farmer in store.list_farmers():
        store.create_land(farmer.id, 1.0)
        store.add_history(_form(farmer.id), _RESULT)
    for farmer in store.list_farmers():
        store.delete_farmer(farmer.id)
        assert not [l for l in store.list_lands() if l.farmer_id == farmer.id]
        assert not [e for e in store.list_history() if e.farmer_id == farmer.id]


def test_deleting_unknown_farmer_is_a_noop(store):
    store.initialize()
    rev = {c: store.revision(c) for c in (FARMERS, LANDS, HISTORY)}
    outcome = store.delete_farmer("nobody")
    assert outcome.complete and not outcome.farmer_removed
    assert {c: store.revision(c) for c in (FARMERS, LANDS, HISTORY)} == rev


def test_failed_lands_stage_keeps_the_farmer(store, monkeypatch):
    store.initialize()
    real_write = storage.write_collection

    def flaky(client, key, items, expected_revision=None):
        if key == store.keys[LANDS]:
            return storage.WriteResult(ok=False, error=storage.ERROR_STORAGE)
        return real_write(client, key, items, expected_revision=expected_revision)

    monkeypatch.setattr(storage, "write_collection", flaky)
    outcome = store.delete_farmer("farmer-2")

    assert outcome.failed_stage == LANDS
    assert not outcome.farmer_removed
    # history stage already ran and is not rolled back
    assert all(e.farmer_id != "farmer-2" for e in store.list_history())
    assert "farmer-2" in [f.id for f in store.list_farmers()]
    assert len(store.lands_for_farmer("farmer-2")) == 2


def test_failed_history_stage_does_not_stop_cascade(store, monkeypatch):
    store.initialize()
    real_write = storage.write_collection

    def flaky(client, key, items, expected_revision=None):
        if key == store.keys[HISTORY]:
            return storage.WriteResult(ok=False, error=storage.ERROR_STORAGE)
        return real_write(client, key, items, expected_revision=expected_revision)

    monkeypatch.setattr(storage, "write_collection", flaky)
    outcome = store.delete_farmer("farmer-1")

    assert outcome.failed_stage == HISTORY
    assert outcome.farmer_removed
    assert store.lands_for_farmer("farmer-1") == []


# -------------------------
# Creates
# -------------------------
def test_ids_are_pairwise_distinct(store):
    farmer_ids = [store.create_farmer(f"F{i}").record.id for i in range(50)]
    land_ids = [store.create_land(farmer_ids[0], 1.0).record.id for _ in range(50)]
    history_ids = [store.add_history(_form(), _RESULT).record.id for _ in range(50)]
    for ids in (farmer_ids, land_ids, history_ids):
        assert len(set(ids)) == len(ids)


def test_farmers_and_lands_list_in_creation_order(store):
    a = store.create_farmer("A").record
    b = store.create_farmer("B").record
    l1 = store.create_land(b.id, 1.0).record
    l2 = store.create_land(a.id, 2.0).record
    l3 = store.create_land(b.id, 3.0).record
    assert store.list_farmers() == [a, b]
    assert store.list_lands() == [l1, l2, l3]
    assert store.lands_for_farmer(b.id) == [l1, l3]


def test_history_lists_newest_first(store):
    created = [store.add_history(_form(area=i + 1), _RESULT).record.id for i in range(5)]
    listed = [e.id for e in store.list_history()]
    assert listed == list(reversed(created))
    assert listed == sorted(listed, reverse=True)


def test_land_for_unknown_farmer_is_rejected(store):
    with pytest.raises(UnknownFarmerError):
        store.create_land("ghost", 1.0)
    assert store.list_lands() == []


def test_land_for_farmer_is_refused_while_storage_is_down(store, monkeypatch):
    store.initialize()
    real_load = store.load

    def load(collection):
        if collection == FARMERS:
            return storage.CollectionRead(status=storage.STATUS_UNAVAILABLE, error="connection refused")
        return real_load(collection)

    monkeypatch.setattr(store, "load", load)
    with pytest.raises(repos.StoreUnavailableError):
        store.create_land("farmer-1", 1.0)
    assert len(real_load(LANDS).items) == 3


def test_land_area_is_rounded_and_soil_validated(store):
    farmer = store.create_farmer("A").record
    land = store.create_land(farmer.id, 12.34567, soil_type="Clay").record
    assert land.area == 12.35
    assert land.soil_type is SoilType.CLAY
    with pytest.raises(ValueError):
        store.create_land(farmer.id, 1.0, soil_type="Gravel")
    with pytest.raises(ValueError):
        store.create_land(farmer.id, -1.0)


def test_failed_write_still_returns_the_record(store, monkeypatch):
    monkeypatch.setattr(storage, "write_collection",
                        lambda *a, **kw: storage.WriteResult(ok=False, error=storage.ERROR_STORAGE))
    outcome = store.create_farmer("Lost")
    assert outcome.record.name == "Lost"
    assert not outcome.persisted
    assert outcome.error == storage.ERROR_STORAGE
    assert store.list_farmers() == []


def test_concurrent_writer_is_detected(redis_client):
    tab_a = RecordStore(redis_client, prefix="shared")
    tab_b = RecordStore(redis_client, prefix="shared")
    tab_a.create_farmer("First")

    real_load = tab_b.load

    def load_then_race(collection):
        read = real_load(collection)
        tab_a.create_farmer("Sneaky")
        return read

    tab_b.load = load_then_race
    outcome = tab_b.create_farmer("Clobberer")

    assert not outcome.persisted
    assert outcome.error == storage.ERROR_STALE
    assert [f.name for f in tab_a.list_farmers()] == ["First", "Sneaky"]


# -------------------------
# Reads
# -------------------------
def test_reads_are_idempotent(store):
    store.initialize()
    assert store.list_farmers() == store.list_farmers()
    assert store.list_lands() == store.list_lands()
    assert store.list_history() == store.list_history()


def test_malformed_collection_reads_empty(store, redis_client):
    redis_client.set(store.keys[LANDS], "garbage")
    assert store.list_lands() == []


def test_malformed_records_are_skipped(store, redis_client):
    storage.write_collection(redis_client, store.keys[FARMERS], [{"id": "ok", "name": "Fine"}, {"name": "no id"}])
    assert [f.id for f in store.list_farmers()] == ["ok"]


def test_reads_see_writes_from_other_store_instances(redis_client):
    one = RecordStore(redis_client, prefix="shared")
    two = RecordStore(redis_client, prefix="shared")
    one.create_farmer("Seen")
    assert [f.name for f in two.list_farmers()] == ["Seen"]


def test_get_helpers(store):
    store.initialize()
    assert store.get_farmer("farmer-2").name == "Maria Garcia"
    assert store.get_farmer("missing") is None
    _, second = store.lands_for_farmer("farmer-2")
    assert store.get_land(second.id).soil_type is SoilType.CLAY
    assert store.get_land("missing") is None


def test_history_for_land_is_newest_first(store):
    store.initialize()
    (land,) = store.lands_for_farmer("farmer-1")
    seeded = store.history_for_land(land.id)
    assert len(seeded) == 1
    newer = store.add_history(_form("farmer-1", land.id), _RESULT).record
    entries = store.history_for_land(land.id)
    assert [e.id for e in entries] == [newer.id, seeded[0].id]


# -------------------------
# History clears
# -------------------------
def test_clear_history(store):
    store.initialize()
    assert store.clear_history().ok
    assert store.list_history() == []
    assert len(store.list_farmers()) == 2


def test_delete_history_for_farmer(store):
    store.initialize()
    removed, res = store.delete_history_for_farmer("farmer-2")
    assert removed == 2 and res.ok
    assert [e.farmer_id for e in store.list_history()] == ["farmer-1"]
    assert store.delete_history_for_farmer("farmer-2") == (0, None)


def test_save_history_entry_prepends_verbatim(store):
    entry = {"id": "custom", "timestamp": "then", "formData": {"cropType": "Rice", "extra": 1}, "result": _RESULT}
    store.add_history(_form(), _RESULT)
    store.save_history_entry(entry)
    first = store.list_history()[0]
    assert first.to_dict() == entry


def test_store_uses_configured_prefix_by_default(redis_client, monkeypatch):
    monkeypatch.setattr(storage.config, "STORE_KEY_PREFIX", "farmapp")
    assert RecordStore(redis_client).keys[repos.FARMERS] == "farmapp:farmers"
