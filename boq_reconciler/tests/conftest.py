# boq_reconciler/tests/conftest.py

from typing import List

import pytest

from boq_reconciler.models import CatalogueEntry, LineItem, SolverParameters, StageForecast
from boq_reconciler.unified_matcher import UnifiedMatcher


@pytest.fixture
def catalogue() -> List[CatalogueEntry]:
    return [
        CatalogueEntry("Mechanized excavation works", "m3", 45.50),
        CatalogueEntry("Manual excavation works", "m3", 60.00),
        CatalogueEntry("Concrete C20/25", "m3", 120.00),
        CatalogueEntry("Concrete C20/25", "m3", 125.00),
        CatalogueEntry("Crane hire", "h", 90.00),
        CatalogueEntry("Reinforcement steel bars", "kg", 2.10, aliases=("rebar", "armature")),
    ]


@pytest.fixture
def documents() -> List[List[LineItem]]:
    file_a = [
        LineItem("S1", "Excavation works - mechanized", "m3", 100, "a.xlsx", 2),
        LineItem("S1", "Concrete C20/25", "m3", 20, "a.xlsx", 3),
        LineItem("S2", "Tower crane hire with operator", "h", 10, "a.xlsx", 4),
    ]
    file_b = [
        LineItem("S2", "excavation works, mechanized", "M3", 50, "b.xlsx", 2),
        LineItem("S2", "Concrete C20/25", "cu.m", 5, "b.xlsx", 3),
        LineItem("S2", "Tower crane hire with operator", "h", 4, "b.xlsx", 4),
        LineItem("S1", "Zebra crossing paint", "pcs", 1, "b.xlsx", 5),
    ]
    return [file_a, file_b]


@pytest.fixture
def forecasts() -> List[StageForecast]:
    return [StageForecast("S1", 8000.0), StageForecast("S2", 3500.0)]


@pytest.fixture
def params() -> SolverParameters:
    return SolverParameters(min_coeff=0.7, max_coeff=1.3, penalty=500.0)


@pytest.fixture
def matcher() -> UnifiedMatcher:
    return UnifiedMatcher()
