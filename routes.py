# routes.py
import json

from flask import Blueprint, jsonify, request, current_app

import forecast
import storage
from geometry import measure_geojson, measure_ring
from history_index import HistoryIndex
from repos import COLLECTIONS, RecordStore, StoreUnavailableError, UnknownFarmerError

STORE_EXTENSION = "record_store"

api = Blueprint("api", __name__)


def _store() -> RecordStore:
    return current_app.extensions[STORE_EXTENSION]


def _json_body():
    """The request's JSON object, {} when there is no body, None when it is not an object."""
    body = request.get_json(force=True, silent=True)
    if body is None:
        return {}
    return body if isinstance(body, dict) else None


def _invalid_body():
    return jsonify({"error": "invalid_body", "detail": "Request body must be a JSON object."}), 400


def _written(outcome, body: dict, status: int = 201):
    """Surface a record that was built but never reached storage."""
    if not outcome.persisted:
        current_app.logger.error("write not persisted: %s", outcome.error)
        return jsonify({"error": "storage_write_failed", "detail": outcome.error, **body}), 503
    return jsonify(body), status


def _boundary_from_body(body: dict):
    """
    Accept either a raw ring ([[lon, lat], ...]) or a GeoJSON object/string.
    """
    ring = body.get("ring")
    if ring:
        return measure_ring(ring)
    geojson = body.get("geojson") or body.get("shape")
    if isinstance(geojson, str):
        try:
            geojson = json.loads(geojson)
        except ValueError:
            current_app.logger.warning("geojson string could not be parsed")
            return None
    return measure_geojson(geojson)


def _land_dict(land, index: HistoryIndex) -> dict:
    out = land.to_dict()
    out["label"] = index.land_label(land.id)
    return out


# -----------------------
# Health
# -----------------------
@api.route("/health", methods=["GET"])
def health():
    store = _store()
    collections = {}
    for name in COLLECTIONS:
        read = store.load(name)
        collections[name] = {"status": read.status, "revision": read.revision, "count": len(read.items)}
    ok = not any(c["status"] == storage.STATUS_UNAVAILABLE for c in collections.values())
    return jsonify({"status": "ok" if ok else "degraded", "collections": collections}), 200 if ok else 503


# -----------------------
# Geometry
# -----------------------
@api.route("/geometry/measure", methods=["POST"])
def measure():
    body = _json_body()
    if body is None:
        return _invalid_body()
    boundary = _boundary_from_body(body)
    if boundary is None:
        return jsonify({"error": "invalid_geojson_string"}), 400
    return jsonify(boundary.to_dict()), 200


# -----------------------
# Farmers
# -----------------------
@api.route("/farmers", methods=["GET"])
def list_farmers():
    return jsonify([f.to_dict() for f in _store().list_farmers()]), 200


@api.route("/farmers", methods=["POST"])
def create_farmer():
    body = _json_body()
    if body is None:
        return _invalid_body()
    name = str(body.get("name") or "").strip()
    if not name:
        return jsonify({"error": "name_required"}), 400
    outcome = _store().create_farmer(name)
    current_app.logger.info("Created farmer id=%s name=%s", outcome.record.id, name)
    return _written(outcome, outcome.record.to_dict())


@api.route("/farmers/<farmer_id>", methods=["GET"])
def get_farmer(farmer_id: str):
    store = _store()
    farmer = store.get_farmer(farmer_id)
    if not farmer:
        return jsonify({"error": "not_found"}), 404
    lands = store.list_lands()
    index = HistoryIndex([farmer], lands)
    own = sorted((l for l in lands if l.farmer_id == farmer_id), key=lambda l: l.id)
    out = farmer.to_dict()
    out["lands"] = [_land_dict(l, index) for l in own]
    return jsonify(out), 200


@api.route("/farmers/<farmer_id>", methods=["DELETE"])
def delete_farmer(farmer_id: str):
    outcome = _store().delete_farmer(farmer_id)
    body = {
        "farmer_id": farmer_id,
        "farmer_removed": outcome.farmer_removed,
        "lands_removed": outcome.lands_removed,
        "history_removed": outcome.history_removed,
    }
    if not outcome.complete:
        current_app.logger.error("cascade for farmer %s stopped at %s: %s",
                                 farmer_id, outcome.failed_stage, outcome.error)
        body.update({"error": "storage_write_failed", "failed_stage": outcome.failed_stage,
                     "detail": outcome.error})
        return jsonify(body), 503
    return jsonify(body), 200


# -----------------------
# Lands
# -----------------------
@api.route("/farmers/<farmer_id>/lands", methods=["GET"])
def list_farmer_lands(farmer_id: str):
    store = _store()
    lands = store.lands_for_farmer(farmer_id)
    index = HistoryIndex([], lands)
    return jsonify([_land_dict(l, index) for l in sorted(lands, key=lambda l: l.id)]), 200


@api.route("/farmers/<farmer_id>/lands", methods=["POST"])
def create_land(farmer_id: str):
    body = _json_body()
    if body is None:
        return _invalid_body()
    current_app.logger.debug("Incoming land payload for farmer %s: %s", farmer_id, body)

    boundary = _boundary_from_body(body)
    if boundary is None:
        return jsonify({"error": "invalid_geojson_string"}), 400
    if boundary.is_empty or boundary.area_hectares <= 0:
        return jsonify({"error": "boundary_required",
                        "detail": "Please draw the field shape on the map."}), 400

    try:
        outcome = _store().create_land(
            farmer_id,
            area=boundary.area_hectares,
            shape=boundary.payload,
            soil_type=body.get("soilType", "Loamy"),
        )
    except StoreUnavailableError as e:
        current_app.logger.error("cannot check farmer %s: %s", farmer_id, e)
        return jsonify({"error": "storage_unavailable", "detail": str(e)}), 503
    except UnknownFarmerError:
        return jsonify({"error": "farmer_not_found"}), 404
    except ValueError as e:
        return jsonify({"error": "invalid_land", "detail": str(e)}), 400

    current_app.logger.info("Created land id=%s farmer_id=%s area=%.2f ha",
                            outcome.record.id, farmer_id, outcome.record.area)
    return _written(outcome, outcome.record.to_dict())


@api.route("/lands/<land_id>", methods=["GET"])
def get_land(land_id: str):
    store = _store()
    land = store.get_land(land_id)
    if not land:
        return jsonify({"error": "not_found"}), 404
    index = HistoryIndex(store.list_farmers(), store.list_lands())
    out = _land_dict(land, index)
    out["farmerName"] = index.farmer_name(land.farmer_id)
    out["history"] = [index.describe(e) for e in store.history_for_land(land_id)]
    return jsonify(out), 200


# -----------------------
# History
# -----------------------
@api.route("/history", methods=["GET"])
def list_history():
    store = _store()
    index = HistoryIndex(store.list_farmers(), store.list_lands())
    return jsonify([index.describe(e) for e in store.list_history()]), 200


@api.route("/history/orphans", methods=["GET"])
def list_orphaned_history():
    """Entries whose farmer or plot no longer exists. Reported, never pruned."""
    store = _store()
    index = HistoryIndex(store.list_farmers(), store.list_lands())
    return jsonify([index.describe(e) for e in index.orphans(store.list_history())]), 200


@api.route("/history", methods=["DELETE"])
def clear_history():
    res = _store().clear_history()
    if not res.ok:
        return jsonify({"error": "storage_write_failed", "detail": res.error}), 503
    return jsonify({"status": "cleared"}), 200


# -----------------------
# Predictions
# -----------------------
@api.route("/predictions", methods=["POST"])
def create_prediction():
    if not forecast.forecaster_configured():
        return jsonify({"error": "forecaster_not_configured"}), 503
    body = _json_body()
    if body is None:
        return _invalid_body()
    try:
        outcome = forecast.run_prediction(_store(), body)
    except forecast.PredictionInputError as e:
        return jsonify({"error": "invalid_prediction_input", "detail": str(e)}), 400
    except forecast.ForecastError as e:
        return jsonify({"error": "forecast_failed", "detail": str(e)}), 502
    return _written(outcome, outcome.record.to_dict())
