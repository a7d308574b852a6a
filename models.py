# models.py
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SoilType(str, Enum):
    LOAMY = "Loamy"
    SANDY = "Sandy"
    CLAY = "Clay"
    SILTY = "Silty"
    PEATY = "Peaty"


class CropType(str, Enum):
    WHEAT = "Wheat"
    CORN = "Corn"
    RICE = "Rice"
    SOYBEAN = "Soybean"
    COTTON = "Cotton"
    SUGARCANE = "Sugarcane"
    POTATOES = "Potatoes"


class FertilizerType(str, Enum):
    NITROGEN = "Nitrogen-based"
    PHOSPHORUS = "Phosphorus-based"
    POTASSIUM = "Potassium-based"
    ORGANIC = "Organic"
    NONE = "None"


def parse_soil_type(value: Any) -> SoilType:
    """Accept an enum member or its display value; raises ValueError otherwise."""
    if isinstance(value, SoilType):
        return value
    return SoilType(str(value))


@dataclass
class Farmer:
    id: str
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Farmer":
        return cls(id=str(d["id"]), name=str(d.get("name", "")))


@dataclass
class Land:
    id: str
    farmer_id: str
    area: float  # hectares
    shape: str  # GeoJSON Feature string, "" when no boundary
    soil_type: SoilType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "farmerId": self.farmer_id,
            "area": self.area,
            "shape": self.shape,
            "soilType": self.soil_type.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Land":
        return cls(
            id=str(d["id"]),
            farmer_id=str(d["farmerId"]),
            area=float(d.get("area") or 0.0),
            shape=d.get("shape") or "",
            soil_type=parse_soil_type(d.get("soilType", SoilType.LOAMY.value)),
        )


@dataclass
class HistoryEntry:
    """
    One stored prediction. `form_data` and `result` are kept as the plain JSON
    objects the orchestrator supplied; only farmerId/landId/cropType/area are
    ever looked at.
    """
    id: str
    timestamp: str
    form_data: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] = field(default_factory=dict)

    @property
    def farmer_id(self) -> Optional[str]:
        return self.form_data.get("farmerId") or None

    @property
    def land_id(self) -> Optional[str]:
        return self.form_data.get("landId") or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "formData": dict(self.form_data),
            "result": dict(self.result),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=str(d["id"]),
            timestamp=str(d.get("timestamp", "")),
            form_data=dict(d.get("formData") or {}),
            result=dict(d.get("result") or {}),
        )


# Default prediction inputs, mirroring the blank prediction form
DEFAULT_FORM_DATA: Dict[str, Any] = {
    "cropType": CropType.WHEAT.value,
    "fieldShape": "",
    "soilType": SoilType.LOAMY.value,
    "rainfall": 450,
    "temperature": 22,
    "pesticideUsage": False,
    "fertilizerType": FertilizerType.NITROGEN.value,
    "area": 0,
    "taskDescription": "",
}

RESULT_REQUIRED_KEYS: List[str] = ["predictedYield", "summary"]
