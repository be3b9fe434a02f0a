"""Transport-emissions proxy: relays shipment estimates to the Climatiq estimate API."""

import json
import logging
from typing import Any, Dict

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, Response

from common.config import Settings, get_settings
from common.http import get_http_client
from . import schemas
from .utils import build_estimate_payload, haversine_km, pick_best_mode

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transport", tags=["Transport"])


def relay_upstream_error(response: httpx.Response) -> Response:
    """Passes an upstream failure through unchanged: same status, raw body."""
    return Response(
        status_code=response.status_code,
        content=response.content,
        media_type=response.headers.get("content-type"),
    )


async def request_estimate(
    client: httpx.AsyncClient,
    settings: Settings,
    mode: str,
    params: Dict[str, Any],
) -> httpx.Response:
    """One upstream round trip. No caching and no retries."""
    if not settings.climatiq_api_key:
        logger.critical("CLIMATIQ_API_KEY is not configured. Cannot request emission estimates.")
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Emissions API key not configured")

    payload = build_estimate_payload(mode, params)
    logger.info(f"Requesting emission estimate for mode={mode} region={payload['emission_factor']['region']}")

    try:
        response = await client.post(
            settings.climatiq_api_url,
            json=payload,
            headers={"Authorization": f"Bearer {settings.climatiq_api_key}"},
            timeout=settings.upstream_timeout_seconds,
        )
    except httpx.TimeoutException as e:
        logger.error(f"Emissions API timed out for mode={mode}: {e}")
        raise HTTPException(status.HTTP_504_GATEWAY_TIMEOUT, "Emissions API timed out")
    except httpx.RequestError as e:
        logger.error(f"Connection error calling the emissions API: {e}", exc_info=True)
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Emissions API unavailable")

    if not response.is_success:
        logger.warning(f"Emissions API returned {response.status_code} for mode={mode}: {response.text}")
    return response


def _parse_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except json.JSONDecodeError:
        logger.error(f"Emissions API returned a non-JSON body: {response.text[:200]}")
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Emissions API returned an invalid response")


@router.post("")
async def estimate_emissions(
    request_in: schemas.EstimateRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
):
    """Estimates emissions for one transport mode and relays the upstream JSON verbatim."""
    response = await request_estimate(client, settings, request_in.mode, request_in.params)
    if not response.is_success:
        return relay_upstream_error(response)
    if not response.content:
        return Response(status_code=response.status_code)
    return JSONResponse(status_code=response.status_code, content=_parse_json(response))


@router.post("/compare", response_model=schemas.CompareResponse)
async def compare_modes(
    request_in: schemas.CompareRequest,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
):
    """
    Estimates the same shipment for several modes and names the one emitting the least CO2e.
    The first upstream failure is relayed as-is.
    """
    params = request_in.params
    estimates: Dict[str, Any] = {}
    for mode in dict.fromkeys(request_in.modes):
        response = await request_estimate(client, settings, mode, params)
        if not response.is_success:
            return relay_upstream_error(response)
        estimates[mode] = _parse_json(response)

    best_mode = pick_best_mode(estimates, estimates.keys())
    logger.info(f"Transport comparison over {list(estimates)}: best mode is {best_mode}")
    return {"estimates": estimates, "best_mode": best_mode}


@router.get("/distance", response_model=schemas.DistanceResponse)
def great_circle_distance(
    lat1: float = Query(..., ge=-90, le=90),
    lon1: float = Query(..., ge=-180, le=180),
    lat2: float = Query(..., ge=-90, le=90),
    lon2: float = Query(..., ge=-180, le=180),
):
    """Haversine distance between two sites, e.g. a mine and its processing plant."""
    return {"distance_km": haversine_km(lat1, lon1, lat2, lon2)}
