"""
ReturnCredit 服务层
"""
from .base import BaseService
from .wallet_service import LedgerEntry, WalletService
from .cost_sharing_service import CostSharingService
from .financial_summary_service import FinancialSummaryService, month_key_for
from .credit_config_service import CreditConfigManager, get_config_manager
from .return_decision_service import ReturnDecisionService
from .donation_credit_service import DonationCreditService, derive_transaction_id
from .analytics_service import AnalyticsService
from .reconciliation_service import ReconciliationService

__all__ = [
    "BaseService",
    "LedgerEntry",
    "WalletService",
    "CostSharingService",
    "FinancialSummaryService",
    "month_key_for",
    "CreditConfigManager",
    "get_config_manager",
    "ReturnDecisionService",
    "DonationCreditService",
    "derive_transaction_id",
    "AnalyticsService",
    "ReconciliationService",
]
