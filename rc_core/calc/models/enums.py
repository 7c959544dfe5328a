"""
枚举类型定义
"""

from enum import Enum


class Pathway(str, Enum):
    """退货处理路径"""

    DONATION = "donation"  # 捐赠给附近 NGO，买家获得额度
    FLASH_SALE = "flash_sale"  # 附近用户闪购
    RESALE = "resale"  # 翻新转售
    TRADITIONAL = "traditional"  # 传统退货退款


class CategoryKey(str, Enum):
    """成本因子类目"""

    FASHION = "fashion"
    ELECTRONICS = "electronics"
    HOME_KITCHEN = "homeKitchen"
    BEAUTY = "beauty"
    DEFAULT = "default"


class ItemCondition(str, Enum):
    """商品状态"""

    LIKE_NEW = "Like New"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class QualityGrade(str, Enum):
    """转售质量等级"""

    LIKE_NEW = "LIKE_NEW"
    GOOD = "GOOD"
    FAIR = "FAIR"


class LoyaltyTier(str, Enum):
    """会员等级"""

    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class CreditSource(str, Enum):
    """额度来源"""

    DYNAMIC = "dynamic"  # 按避免成本计算
    STATIC = "static"  # 缺少位置数据时按价格比例


class UserChoice(str, Enum):
    """用户对决策的选择"""

    ACCEPT_DONATION = "ACCEPT_DONATION"
    ACCEPT_FLASH_SALE = "ACCEPT_FLASH_SALE"
    ACCEPT_RESALE = "ACCEPT_RESALE"
    TRADITIONAL_RETURN = "TRADITIONAL_RETURN"


class DecisionStatus(str, Enum):
    """决策记录状态"""

    EVALUATED = "evaluated"
    CHOICE_RECORDED = "choice_recorded"
    COMPLETED = "completed"


class AnalyticsPeriod(str, Enum):
    """财务分析周期"""

    CURRENT_MONTH = "current_month"
    LAST_MONTH = "last_month"
    LAST_3_MONTHS = "last_3_months"
    LAST_6_MONTHS = "last_6_months"


class SellerAnalysisPeriod(str, Enum):
    """卖家分析周期"""

    DAYS_7 = "7_days"
    DAYS_30 = "30_days"
    DAYS_90 = "90_days"
