"""
ReturnCredit 数据模型包
"""
from .base import Base
from .wallet import Wallet, WalletTransaction, TransactionType, TransactionStatus
from .cost_sharing import CostSharingRecord
from .financial_summary import MonthlyFinancialSummary, MonthlyCategorySummary
from .decision import ReturnDecision
from .credit_setting import CreditSetting

__all__ = [
    "Base",
    "Wallet",
    "WalletTransaction",
    "TransactionType",
    "TransactionStatus",
    "CostSharingRecord",
    "MonthlyFinancialSummary",
    "MonthlyCategorySummary",
    "ReturnDecision",
    "CreditSetting",
]
