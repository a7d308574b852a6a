# history_index.py
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from models import Farmer, HistoryEntry, Land


def farmer_name_map(farmers: Iterable[Farmer]) -> Dict[str, str]:
    return {f.id: f.name for f in farmers}


def land_label_map(lands: Iterable[Land]) -> Dict[str, str]:
    """
    'Land N' per plot, numbered within each farmer by plot id. Ids embed the
    creation instant, so the numbering does not depend on storage order.
    """
    by_farmer: Dict[str, List[Land]] = defaultdict(list)
    for land in lands:
        by_farmer[land.farmer_id].append(land)

    labels: Dict[str, str] = {}
    for farmer_lands in by_farmer.values():
        for index, land in enumerate(sorted(farmer_lands, key=lambda l: l.id), start=1):
            labels[land.id] = f"Land {index}"
    return labels


def _area_text(value: Any) -> str:
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return "0.00"


class HistoryIndex:
    """
    Display labels for history entries, built from one snapshot of farmers and
    lands. References that do not resolve are left out of labels.
    """

    def __init__(self, farmers: Iterable[Farmer], lands: Iterable[Land]):
        self.farmer_names = farmer_name_map(farmers)
        self.land_labels = land_label_map(lands)

    def farmer_name(self, farmer_id: Optional[str]) -> Optional[str]:
        return self.farmer_names.get(farmer_id) if farmer_id else None

    def land_label(self, land_id: Optional[str]) -> Optional[str]:
        return self.land_labels.get(land_id) if land_id else None

    def label_for(self, entry: HistoryEntry) -> str:
        form = entry.form_data
        parts = [
            self.farmer_name(entry.farmer_id),
            self.land_label(entry.land_id),
            f"{form.get('cropType', '')} - {_area_text(form.get('area'))} ha",
        ]
        return " - ".join(p for p in parts if p)

    def is_orphan(self, entry: HistoryEntry) -> bool:
        if entry.farmer_id and entry.farmer_id not in self.farmer_names:
            return True
        return bool(entry.land_id and entry.land_id not in self.land_labels)

    def orphans(self, entries: Iterable[HistoryEntry]) -> List[HistoryEntry]:
        return [e for e in entries if self.is_orphan(e)]

    def describe(self, entry: HistoryEntry) -> Dict[str, Any]:
        out = entry.to_dict()
        out["label"] = self.label_for(entry)
        out["farmerName"] = self.farmer_name(entry.farmer_id)
        out["landLabel"] = self.land_label(entry.land_id)
        out["orphaned"] = self.is_orphan(entry)
        return out
