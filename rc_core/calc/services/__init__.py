"""
额度计算服务
"""

from .avoided_cost_estimator import AvoidedCostEstimator, normalize_category
from .credit_calculator import CreditCalculator
from .decision_router import DecisionRouter, select_pathway
from .location import estimate_distance_km, extract_city, haversine_km

__all__ = [
    "AvoidedCostEstimator",
    "normalize_category",
    "CreditCalculator",
    "DecisionRouter",
    "select_pathway",
    "estimate_distance_km",
    "extract_city",
    "haversine_km",
]
