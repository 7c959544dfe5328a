"""
退货额度计算模块

- 避免成本估算
- 买家额度与成本分摊计算
- 退货路径决策
"""
from .models.credit import CreditCalculation, CreditConfigSnapshot
from .models.enums import Pathway
from .services.credit_calculator import CreditCalculator
from .services.decision_router import DecisionRouter

__all__ = [
    "CreditCalculation",
    "CreditConfigSnapshot",
    "Pathway",
    "CreditCalculator",
    "DecisionRouter",
]
