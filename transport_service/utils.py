"""Emission-factor lookups and geometry helpers for the transport proxy."""

import math
from typing import Any, Dict, Iterable, Mapping, Optional

DATA_VERSION = "^26"
DEFAULT_REGION = "global"
EARTH_RADIUS_KM = 6371

ACTIVITY_IDS = {
    "truck": "freight_vehicle-vehicle_type_hgv-fuel_source_diesel-vehicle_weight_na-percentage_load_na",
    "train": "freight_train-route_type_na-fuel_source_na",
    "ship": "sea_freight-vessel_type_container_ship-route_type_na-vessel_length_na-tonnage_na-fuel_source_na",
}

REGIONS = {
    "truck": "US",
    "train": "EU",
    "ship": "global",
}


def activity_id_for(mode: str) -> Optional[str]:
    return ACTIVITY_IDS.get(mode)


def region_for(mode: str) -> str:
    return REGIONS.get(mode, DEFAULT_REGION)


def build_estimate_payload(mode: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalized body for the estimate endpoint. An unknown mode has no activity id;
    the key is left out and the request is still forwarded.
    """
    emission_factor: Dict[str, Any] = {}
    activity_id = activity_id_for(mode)
    if activity_id is not None:
        emission_factor["activity_id"] = activity_id
    emission_factor["data_version"] = DATA_VERSION
    emission_factor["region"] = region_for(mode)

    return {"emission_factor": emission_factor, "parameters": params}


def pick_best_mode(estimates: Mapping[str, Mapping[str, Any]], modes: Iterable[str]) -> Optional[str]:
    """Mode with the lowest co2e. Missing or zero co2e never wins; earlier modes win ties."""
    best_mode = None
    best_value = math.inf
    for mode in modes:
        estimate = estimates.get(mode)
        co2e = (estimate.get("co2e") if isinstance(estimate, Mapping) else None) or math.inf
        if co2e < best_value:
            best_mode, best_value = mode, co2e
    return best_mode


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres, rounded to 2 decimals."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 2)
