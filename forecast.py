# forecast.py
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

import config
from history_index import HistoryIndex
from models import DEFAULT_FORM_DATA, RESULT_REQUIRED_KEYS, Farmer, HistoryEntry, Land
from repos import RecordStore
from utils import request_with_retries

LOG = logging.getLogger("agriyield.forecast")


class PredictionInputError(ValueError):
    """The request cannot be forecast (no field drawn or selected)."""


class ForecastError(RuntimeError):
    """The forecasting service failed or answered with an unusable body."""


Forecaster = Callable[[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]


def build_form_data(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing prediction inputs with the blank-form defaults."""
    if payload is not None and not isinstance(payload, dict):
        raise PredictionInputError("Prediction input must be a JSON object.")
    form = dict(DEFAULT_FORM_DATA)
    form.update({k: v for k, v in (payload or {}).items() if v is not None})
    return form


def validate_form_data(form: Dict[str, Any]) -> None:
    try:
        area = float(form.get("area") or 0)
    except (TypeError, ValueError):
        area = 0.0
    if not form.get("fieldShape") or area <= 0:
        raise PredictionInputError(
            "Please draw the field shape on the map or select a saved land before getting a prediction."
        )


def build_context(form: Dict[str, Any], farmers: List[Farmer], lands: List[Land]) -> Dict[str, Any]:
    """Farmer name and land label for the prompt, when the request names them."""
    index = HistoryIndex(farmers, lands)
    farmer_name = index.farmer_name(form.get("farmerId"))
    if not farmer_name:
        return {}
    return {
        "farmer": farmer_name,
        "landPlot": index.land_label(form.get("landId")) or "Not specified",
    }


def build_prompt(form: Dict[str, Any], context: Dict[str, Any]) -> str:
    lines = [
        "Analyze the following agricultural data to predict crop yield and provide recommendations.",
        "The output must be a JSON object matching the provided schema.",
        "The recommendations should be tailored to the provided 'Task Description'.",
    ]
    if context:
        lines += [
            "Farm Context:",
            f"- Farmer: {context['farmer']}",
            f"- Land Plot: {context['landPlot']}",
        ]
    lines += [
        "Farm Data:",
        f"- Crop Type: {form.get('cropType')}",
        f"- Field Shape (GeoJSON): {form.get('fieldShape') or 'Not provided'}",
        f"- Soil Type: {form.get('soilType')}",
        f"- Annual Rainfall (mm): {form.get('rainfall')}",
        f"- Average Temperature (°C): {form.get('temperature')}",
        f"- Pesticide Usage: {'Yes' if form.get('pesticideUsage') else 'No'}",
        f"- Fertilizer Type: {form.get('fertilizerType')}",
        f"- Area (hectares): {form.get('area')}",
        f"- Task Description: {form.get('taskDescription') or 'Not provided'}",
        "Based on this data, provide a detailed analysis including predicted yield, "
        "risk factors, and actionable recommendations.",
    ]
    return "\n".join(lines)


def forecaster_configured() -> bool:
    return bool(config.FORECAST_URL)


def http_forecaster(form: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
    """
    POST the prediction request to FORECAST_URL and return the parsed result.
    """
    if not config.FORECAST_URL:
        raise ForecastError("FORECAST_URL is not configured")
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if config.FORECAST_API_KEY:
        headers["Authorization"] = f"Bearer {config.FORECAST_API_KEY}"
    body = {"prompt": build_prompt(form, context), "formData": form, "context": context}
    try:
        r = request_with_retries("POST", config.FORECAST_URL, headers=headers, json_payload=body,
                                 timeout=config.FORECAST_TIMEOUT, max_retries=config.FORECAST_MAX_RETRIES)
        r.raise_for_status()
        return r.json()
    except requests.exceptions.RequestException as e:
        LOG.exception("Error calling forecasting service: %s", e)
        raise ForecastError("Failed to get prediction. Please check your inputs and API key.") from e
    except ValueError as e:
        LOG.error("Forecasting service returned non-JSON body: %s", e)
        raise ForecastError("Invalid response received from forecasting service.") from e


def check_result(result: Any) -> Dict[str, Any]:
    if not isinstance(result, dict) or any(not result.get(k) for k in RESULT_REQUIRED_KEYS):
        raise ForecastError("Invalid JSON schema received from forecasting service.")
    return result


def run_prediction(store: RecordStore, payload: Dict[str, Any],
                   forecaster: Optional[Forecaster] = None):
    """
    Forecast one request and append it to history. Returns the store's
    WriteOutcome carrying the new HistoryEntry.
    """
    form = build_form_data(payload)
    validate_form_data(form)
    context = build_context(form, store.list_farmers(), store.list_lands())
    result = check_result((forecaster or http_forecaster)(form, context))
    outcome = store.add_history(form, result)
    entry: HistoryEntry = outcome.record
    LOG.info("Stored prediction %s (farmer=%s land=%s persisted=%s)",
             entry.id, entry.farmer_id, entry.land_id, outcome.persisted)
    return outcome
