"""Tests for route artifact persistence."""

import json

from route_collector.services.record_store import RecordStore


def test_save_writes_document_and_geojson(store):
    json_path, geojson_path = store.save(
        "  Samarkand ",
        {"result": {"items": []}, "additional_info": {"name": "Маршрут 12"}},
        {"type": "FeatureCollection", "features": []},
        "12",
    )

    assert json_path == store.root / "samarkand" / "12.json"
    assert geojson_path == store.root / "samarkand" / "12.geojson"
    # Non-ASCII text is written as-is.
    assert "Маршрут 12" in json_path.read_text(encoding="utf-8")
    assert json.loads(geojson_path.read_text(encoding="utf-8"))["type"] == "FeatureCollection"


def test_save_is_idempotent_on_existing_directory(store):
    store.city_dir("tashkent").mkdir(parents=True)

    store.save("tashkent", {"a": 1}, {"type": "FeatureCollection", "features": []}, "7")

    assert (store.city_dir("tashkent") / "7.json").exists()


def test_name_collision_last_write_wins(store):
    empty = {"type": "FeatureCollection", "features": []}
    store.save("samarkand", {"version": "first"}, empty, "12")
    first = (store.city_dir("samarkand") / "12.json").read_text(encoding="utf-8")

    store.save("samarkand", {"version": "second"}, empty, "12")
    second = (store.city_dir("samarkand") / "12.json").read_text(encoding="utf-8")

    assert first != second
    assert json.loads(second) == {"version": "second"}
    assert sorted(p.name for p in store.city_dir("samarkand").iterdir()) == ["12.geojson", "12.json"]


def test_safe_name():
    assert RecordStore.safe_name("12") == "12"
    assert RecordStore.safe_name("12/A") == "12_A"
    assert RecordStore.safe_name('a:b*c?"d<e>f|g\\h') == "a_b_c__d_e_f_g_h"
    assert RecordStore.safe_name("") == "unknown"
    assert RecordStore.safe_name(None) == "unknown"
    assert RecordStore.safe_name("..") == "unknown"
