"""
Unit tests for the Indian cropping-season heuristic.
"""

from datetime import date

import pytest

from advisor.services.context_service import get_seasonal_context, season_for_month


@pytest.mark.parametrize(
    "month,season",
    [
        (1, "rabi"), (2, "rabi"), (3, "rabi"),
        (4, "zaid"), (5, "zaid"),
        (6, "kharif"), (7, "kharif"), (8, "kharif"), (9, "kharif"), (10, "kharif"),
        (11, "rabi"), (12, "rabi"),
    ],
)
def test_season_for_month(month, season):
    assert season_for_month(month) == season


def test_july_is_kharif_planting():
    seasonal = get_seasonal_context(date(2025, 7, 1))

    assert seasonal.current_season == "kharif"
    assert seasonal.is_planting_season is True
    assert seasonal.is_harvest_season is False
    assert "planting rice" in seasonal.suggested_activities


def test_late_kharif_is_harvest():
    assert get_seasonal_context(date(2025, 9, 20)).is_harvest_season is True


def test_rabi_harvest_flag_uses_month_number():
    assert get_seasonal_context(date(2025, 1, 15)).is_harvest_season is False
    assert get_seasonal_context(date(2025, 2, 15)).is_harvest_season is True
    # month >= 2 also holds for the start of rabi
    assert get_seasonal_context(date(2025, 11, 20)).is_harvest_season is True


def test_zaid_is_neither_planting_nor_harvest():
    seasonal = get_seasonal_context(date(2025, 5, 10))

    assert seasonal.current_season == "zaid"
    assert seasonal.is_planting_season is False
    assert seasonal.is_harvest_season is False
    assert seasonal.suggested_activities == [
        "summer crops",
        "water conservation",
        "heat stress management",
    ]
