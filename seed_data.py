# seed_data.py
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from models import CropType, FertilizerType, SoilType
from utils import format_instant, make_record_id

# Square field
FIELD_SHAPE_1 = '{"type":"Feature","properties":{},"geometry":{"type":"Polygon","coordinates":[[[-87.62,41.88],[-87.63,41.88],[-87.63,41.89],[-87.62,41.89],[-87.62,41.88]]]}}'
# Rectangular field
FIELD_SHAPE_2 = '{"type":"Feature","properties":{},"geometry":{"type":"Polygon","coordinates":[[[-95.36,29.76],[-95.38,29.76],[-95.38,29.78],[-95.36,29.78],[-95.36,29.76]]]}}'
# Slightly irregular field
FIELD_SHAPE_3 = '{"type":"Feature","properties":{},"geometry":{"type":"Polygon","coordinates":[[[-118.24,34.05],[-118.25,34.05],[-118.25,34.07],[-118.245,34.065],[-118.24,34.05]]]}}'

DEFAULT_FARMERS: List[Dict[str, Any]] = [
    {"id": "farmer-1", "name": "John Appleseed"},
    {"id": "farmer-2", "name": "Maria Garcia"},
]

# (farmerId, shape, hectares, soil, months before first run)
_SEED_PLOTS = [
    ("farmer-1", FIELD_SHAPE_1, 78.41, SoilType.LOAMY, 12),
    ("farmer-2", FIELD_SHAPE_2, 157.53, SoilType.SANDY, 11),
    ("farmer-2", FIELD_SHAPE_3, 125.10, SoilType.CLAY, 10),
]

_MONTH = timedelta(days=30)


def display_timestamp(when: datetime) -> str:
    """Locale-style display string, e.g. '3/7/2025, 2:05:09 PM'."""
    hour = when.hour % 12 or 12
    suffix = "AM" if when.hour < 12 else "PM"
    return f"{when.month}/{when.day}/{when.year}, {hour}:{when.minute:02d}:{when.second:02d} {suffix}"


def default_lands(now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    The three seed plots. Their ids are record ids dated before any seeded
    prediction, so plots created later number after them.
    """
    now = now or datetime.now()
    return [
        {"id": make_record_id(now - months * _MONTH), "farmerId": farmer_id, "shape": shape,
         "area": area, "soilType": soil.value}
        for farmer_id, shape, area, soil, months in _SEED_PLOTS
    ]


def default_history(now: Optional[datetime] = None,
                    lands: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    """
    Three past predictions, newest first, made 2, 5 and 8 months before `now`.
    Ids are those instants so they sort with entries created later. `lands`
    are the seed plots the predictions point at.
    """
    now = now or datetime.now()
    if lands is None:
        lands = default_lands(now)
    plot_1, plot_2, plot_3 = (land["id"] for land in lands)
    two, five, eight = (now - n * _MONTH for n in (2, 5, 8))
    return [
        {
            "id": format_instant(two),
            "timestamp": display_timestamp(two),
            "formData": {
                "farmerId": "farmer-1",
                "landId": plot_1,
                "cropType": CropType.CORN.value,
                "fieldShape": FIELD_SHAPE_1,
                "soilType": SoilType.LOAMY.value,
                "rainfall": 600,
                "temperature": 25,
                "pesticideUsage": True,
                "fertilizerType": FertilizerType.NITROGEN.value,
                "area": 78.41,
                "taskDescription": "Routine yield check for corn crop.",
            },
            "result": {
                "predictedYield": 9.5,
                "yieldUnit": "tons/hectare",
                "confidenceScore": 0.92,
                "summary": "Excellent conditions for Corn. High rainfall and nitrogen fertilizer are major positive factors.",
                "weatherImpactAnalysis": "Favorable temperatures and adequate rainfall suggest a strong growing season with minimal weather-related stress.",
                "recommendations": [
                    {
                        "title": "Monitor for Nitrogen Leaching",
                        "description": "With high rainfall, consider split applications of nitrogen to prevent leaching.",
                        "impact": "Medium",
                    }
                ],
                "riskFactors": ["Potential for fungal diseases due to humidity."],
            },
        },
        {
            "id": format_instant(five),
            "timestamp": display_timestamp(five),
            "formData": {
                "farmerId": "farmer-2",
                "landId": plot_2,
                "cropType": CropType.COTTON.value,
                "fieldShape": FIELD_SHAPE_2,
                "soilType": SoilType.SANDY.value,
                "rainfall": 350,
                "temperature": 30,
                "pesticideUsage": True,
                "fertilizerType": FertilizerType.POTASSIUM.value,
                "area": 157.53,
                "taskDescription": "Pre-season planning for cotton.",
            },
            "result": {
                "predictedYield": 1.8,
                "yieldUnit": "bales/hectare",
                "confidenceScore": 0.88,
                "summary": "Good yield prediction for Cotton in sandy soil, benefiting from high temperatures.",
                "weatherImpactAnalysis": "High average temperatures are ideal for cotton growth, but lower rainfall may require supplemental irrigation.",
                "recommendations": [
                    {
                        "title": "Optimize Irrigation",
                        "description": "Sandy soil drains quickly. Ensure consistent moisture levels during the flowering stage.",
                        "impact": "High",
                    }
                ],
                "riskFactors": ["Heat stress during peak summer.", "Nutrient deficiency in sandy soil."],
            },
        },
        {
            "id": format_instant(eight),
            "timestamp": display_timestamp(eight),
            "formData": {
                "farmerId": "farmer-2",
                "landId": plot_3,
                "cropType": CropType.SOYBEAN.value,
                "fieldShape": FIELD_SHAPE_3,
                "soilType": SoilType.CLAY.value,
                "rainfall": 550,
                "temperature": 24,
                "pesticideUsage": False,
                "fertilizerType": FertilizerType.ORGANIC.value,
                "area": 125.10,
                "taskDescription": "Analysis for organic soybean cultivation.",
            },
            "result": {
                "predictedYield": 3.2,
                "yieldUnit": "tons/hectare",
                "confidenceScore": 0.85,
                "summary": "Solid Soybean yield prediction. Clay soil offers good water retention.",
                "weatherImpactAnalysis": "Consistent rainfall and moderate temperatures create a low-risk environment for this crop.",
                "recommendations": [
                    {
                        "title": "Improve Soil Aeration",
                        "description": "Clay soil can become compacted. Consider cover crops or minimum tillage to improve structure.",
                        "impact": "Medium",
                    }
                ],
                "riskFactors": ["Poor drainage in heavy clay soil after exceptionally heavy rain."],
            },
        },
    ]
