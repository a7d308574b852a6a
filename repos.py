# repos.py
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import redis

import seed_data
import storage
from geometry import rounded_hectares
from models import Farmer, HistoryEntry, Land, SoilType, parse_soil_type
from utils import make_instant_id, make_record_id

LOG = logging.getLogger("agriyield.repos")

FARMERS = "farmers"
LANDS = "lands"
HISTORY = "history"
COLLECTIONS = (FARMERS, LANDS, HISTORY)


class UnknownFarmerError(LookupError):
    """Raised when a land is created for a farmer id that is not stored."""


class StoreUnavailableError(RuntimeError):
    """A read needed to validate a write could not reach storage."""


@dataclass
class WriteOutcome:
    """
    The record a create call built, and whether it reached storage. The record
    is returned either way so callers decide whether to surface the failure.
    """
    record: Any
    persisted: bool
    error: Optional[str] = None


@dataclass
class CascadeOutcome:
    farmer_id: str
    history_removed: int = 0
    lands_removed: int = 0
    farmer_removed: bool = False
    failed_stage: Optional[str] = None
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.failed_stage is None


def _parse_all(items: List[Any], factory, collection: str) -> list:
    out = []
    for raw in items:
        try:
            out.append(factory(raw))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            LOG.warning("skipping malformed %s record %r: %s", collection, raw, e)
    return out


class RecordStore:
    """
    Farmers, lands and prediction history, each persisted as one JSON array
    under its own key. Every read goes to storage; every write replaces the
    whole collection and is refused if the collection changed since it was
    read.
    """

    def __init__(self, client: redis.Redis, prefix: Optional[str] = None):
        self.client = client
        self.keys: Dict[str, str] = {
            name: (f"{prefix}:{name}" if prefix else storage.build_key(name))
            for name in COLLECTIONS
        }
        self._write_lock = threading.RLock()

    # -------------------------
    # Raw collection access
    # -------------------------
    def load(self, collection: str) -> storage.CollectionRead:
        return storage.read_collection(self.client, self.keys[collection])

    def revision(self, collection: str) -> int:
        return self.load(collection).revision

    def _write(self, collection: str, items: List[Any], expected_revision: int) -> storage.WriteResult:
        res = storage.write_collection(self.client, self.keys[collection], items,
                                       expected_revision=expected_revision)
        if not res.ok:
            LOG.error("write of %s failed: %s", collection, res.error)
        return res

    # -------------------------
    # First run
    # -------------------------
    def initialize(self, now: Optional[datetime] = None) -> bool:
        """
        Seed the default farms when none of the three collections exist yet.
        Returns True when seeding happened.
        """
        with self._write_lock:
            if any(storage.key_exists(self.client, self.keys[c]) for c in COLLECTIONS):
                return False
            LOG.info("First run. Seeding default farm data...")
            now = now or datetime.now()
            lands = seed_data.default_lands(now)
            seeds = {
                FARMERS: seed_data.DEFAULT_FARMERS,
                LANDS: lands,
                HISTORY: seed_data.default_history(now, lands),
            }
            for collection, items in seeds.items():
                self._write(collection, list(items), expected_revision=self.revision(collection))
            return True

    # -------------------------
    # Farmers
    # -------------------------
    def list_farmers(self) -> List[Farmer]:
        return _parse_all(self.load(FARMERS).items, Farmer.from_dict, FARMERS)

    def get_farmer(self, farmer_id: str) -> Optional[Farmer]:
        return next((f for f in self.list_farmers() if f.id == farmer_id), None)

    def create_farmer(self, name: str) -> WriteOutcome:
        with self._write_lock:
            current = self.load(FARMERS)
            existing = {str(d.get("id")) for d in current.items if isinstance(d, dict)}
            farmer = Farmer(id=_unique_id(existing), name=name)
            res = self._write(FARMERS, current.items + [farmer.to_dict()], current.revision)
            return WriteOutcome(record=farmer, persisted=res.ok, error=res.error)

    def delete_farmer(self, farmer_id: str) -> CascadeOutcome:
        """
        Remove a farmer's history, then their lands, then the farmer. A failed
        history write is logged and the cascade goes on; a failed lands write
        stops it so the farmer never disappears while plots still point at it.
        Nothing is rolled back. Unknown ids remove nothing.
        """
        outcome = CascadeOutcome(farmer_id=farmer_id)
        with self._write_lock:
            removed, res = self.delete_history_for_farmer(farmer_id)
            if res is not None and not res.ok:
                outcome.failed_stage, outcome.error = HISTORY, res.error
            else:
                outcome.history_removed = removed

            removed, res = self._remove_where(LANDS, lambda d: d.get("farmerId") == farmer_id)
            if res is not None and not res.ok:
                LOG.error("Failed to delete lands for farmer %s; farmer kept", farmer_id)
                outcome.failed_stage, outcome.error = LANDS, res.error
                return outcome
            outcome.lands_removed = removed

            removed, res = self._remove_where(FARMERS, lambda d: d.get("id") == farmer_id)
            if res is not None and not res.ok:
                LOG.error("Failed to delete farmer %s", farmer_id)
                outcome.failed_stage, outcome.error = FARMERS, res.error
                return outcome
            outcome.farmer_removed = removed > 0
        if outcome.farmer_removed:
            LOG.info("Deleted farmer %s with %d lands and %d history entries",
                     farmer_id, outcome.lands_removed, outcome.history_removed)
        return outcome

    def _remove_where(self, collection: str, predicate):
        current = self.load(collection)
        if current.status == storage.STATUS_UNAVAILABLE:
            return 0, storage.WriteResult(ok=False, error=storage.ERROR_STORAGE)
        kept = [d for d in current.items if not (isinstance(d, dict) and predicate(d))]
        removed = len(current.items) - len(kept)
        if not removed:
            return 0, None
        return removed, self._write(collection, kept, current.revision)

    # -------------------------
    # Lands
    # -------------------------
    def list_lands(self) -> List[Land]:
        return _parse_all(self.load(LANDS).items, Land.from_dict, LANDS)

    def get_land(self, land_id: str) -> Optional[Land]:
        return next((l for l in self.list_lands() if l.id == land_id), None)

    def lands_for_farmer(self, farmer_id: str) -> List[Land]:
        return [l for l in self.list_lands() if l.farmer_id == farmer_id]

    def create_land(self, farmer_id: str, area: float, shape: str = "",
                    soil_type: Union[SoilType, str] = SoilType.LOAMY) -> WriteOutcome:
        """
        Store a new plot for an existing farmer. `area` is in hectares and is
        rounded to two decimals here.
        """
        soil = parse_soil_type(soil_type)
        area = rounded_hectares(area)
        if area < 0:
            raise ValueError("area must be >= 0")
        with self._write_lock:
            farmers = self.load(FARMERS)
            if farmers.status == storage.STATUS_UNAVAILABLE:
                raise StoreUnavailableError(farmers.error or storage.ERROR_STORAGE)
            known = _parse_all(farmers.items, Farmer.from_dict, FARMERS)
            if not any(f.id == farmer_id for f in known):
                raise UnknownFarmerError(farmer_id)
            current = self.load(LANDS)
            existing = {str(d.get("id")) for d in current.items if isinstance(d, dict)}
            land = Land(id=_unique_id(existing), farmer_id=farmer_id, area=area,
                        shape=shape or "", soil_type=soil)
            res = self._write(LANDS, current.items + [land.to_dict()], current.revision)
            return WriteOutcome(record=land, persisted=res.ok, error=res.error)

    # -------------------------
    # History
    # -------------------------
    def list_history(self) -> List[HistoryEntry]:
        """Newest first; entries are prepended on write."""
        return _parse_all(self.load(HISTORY).items, HistoryEntry.from_dict, HISTORY)

    def history_for_land(self, land_id: str) -> List[HistoryEntry]:
        entries = [e for e in self.list_history() if e.land_id == land_id]
        return sorted(entries, key=lambda e: e.id, reverse=True)

    def add_history(self, form_data: Dict[str, Any], result: Dict[str, Any],
                    timestamp: Optional[str] = None) -> WriteOutcome:
        entry = HistoryEntry(
            id=make_instant_id(),
            timestamp=timestamp or seed_data.display_timestamp(datetime.now()),
            form_data=dict(form_data),
            result=dict(result),
        )
        return self.save_history_entry(entry)

    def save_history_entry(self, entry: Union[HistoryEntry, Dict[str, Any]]) -> WriteOutcome:
        """Prepend an entry exactly as supplied."""
        if isinstance(entry, dict):
            entry = HistoryEntry.from_dict(entry)
        with self._write_lock:
            current = self.load(HISTORY)
            res = self._write(HISTORY, [entry.to_dict()] + current.items, current.revision)
            if not res.ok:
                LOG.error("Failed to save prediction %s to history", entry.id)
            return WriteOutcome(record=entry, persisted=res.ok, error=res.error)

    def delete_history_for_farmer(self, farmer_id: str) -> Tuple[int, Optional[storage.WriteResult]]:
        """
        Drop every entry whose inputs name `farmer_id`. Returns the number
        removed and the write result, or None when nothing needed writing.
        """
        with self._write_lock:
            removed, res = self._remove_where(HISTORY, lambda d: _history_farmer(d) == farmer_id)
        if res is not None and not res.ok:
            LOG.error("Failed to delete history for farmer %s", farmer_id)
            return 0, res
        return removed, res

    def clear_history(self) -> storage.WriteResult:
        with self._write_lock:
            res = storage.remove_collection(self.client, self.keys[HISTORY])
        if not res.ok:
            LOG.error("Failed to clear history: %s", res.error)
        return res


def _history_farmer(d: Dict[str, Any]) -> Optional[str]:
    form = d.get("formData")
    return form.get("farmerId") if isinstance(form, dict) else None


def _unique_id(existing: set) -> str:
    new_id = make_record_id()
    while new_id in existing:
        new_id = make_record_id()
    return new_id
