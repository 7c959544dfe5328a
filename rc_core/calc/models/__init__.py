"""
额度计算数据模型
"""

from .enums import (
    Pathway, CategoryKey, ItemCondition, QualityGrade, LoyaltyTier, CreditSource,
    UserChoice, DecisionStatus, AnalyticsPeriod, SellerAnalysisPeriod,
)

from .credit import (
    LogisticsFactor, CostFactors, CreditSettings, CostSharingSettings, CreditConfigSnapshot,
    ProductInfo, OrderDetails, AvoidedCosts, CostSharing, SellerBenefit, CalculationMetadata,
    CreditCalculation,
)

from .decision import ReturnItem, CustomerContext, NearbyNGO, DecisionOption, ReturnDecisionResult

__all__ = [
    # Enums
    "Pathway",
    "CategoryKey",
    "ItemCondition",
    "QualityGrade",
    "LoyaltyTier",
    "CreditSource",
    "UserChoice",
    "DecisionStatus",
    "AnalyticsPeriod",
    "SellerAnalysisPeriod",
    # Credit
    "LogisticsFactor",
    "CostFactors",
    "CreditSettings",
    "CostSharingSettings",
    "CreditConfigSnapshot",
    "ProductInfo",
    "OrderDetails",
    "AvoidedCosts",
    "CostSharing",
    "SellerBenefit",
    "CalculationMetadata",
    "CreditCalculation",
    # Decision
    "ReturnItem",
    "CustomerContext",
    "NearbyNGO",
    "DecisionOption",
    "ReturnDecisionResult",
]
