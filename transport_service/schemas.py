"""Pydantic schemas for the transport-emissions endpoints."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


SHIPMENT_EXAMPLE = {"weight": 500, "weight_unit": "t", "distance": 102.05, "distance_unit": "km"}


class EstimateRequest(BaseModel):
    """`params` is the shipment description; it is forwarded to the estimate API exactly as sent."""
    mode: str = Field(..., min_length=1, examples=["truck"])
    params: Dict[str, Any] = Field(..., examples=[SHIPMENT_EXAMPLE])


class CompareRequest(BaseModel):
    params: Dict[str, Any] = Field(..., examples=[SHIPMENT_EXAMPLE])
    modes: List[str] = Field(default_factory=lambda: ["truck", "train"], min_length=1)


class CompareResponse(BaseModel):
    estimates: Dict[str, Any]
    best_mode: Optional[str] = None


class DistanceResponse(BaseModel):
    distance_km: float
