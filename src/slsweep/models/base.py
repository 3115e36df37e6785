# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for slsweep."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class SweepBaseModel(BaseModel):
    """Base model with shared config for slsweep schemas.

    Non-finite floats are written as ``NaN``/``Infinity`` so that degenerate
    estimates survive a checkpoint round trip.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        ser_json_inf_nan="constants",
    )
