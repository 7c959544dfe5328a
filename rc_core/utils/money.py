"""
金额工具
遵循约束：Decimal 金额，仅在输出时舍入到 2 位
"""
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """转换为 Decimal（float 先转 str 避免二进制误差）"""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value: Decimal) -> Decimal:
    """四舍五入到分"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_whole(value: Decimal) -> Decimal:
    """四舍五入到整数"""
    return value.quantize(ONE, rounding=ROUND_HALF_UP)


def round_money_within(value: Decimal, upper: Decimal) -> Decimal:
    """舍入到分，且不超过上限"""
    rounded = round_money(value)
    if rounded > upper:
        return upper.quantize(CENT, rounding=ROUND_DOWN)
    return rounded


def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """amount × percentage / 100（不舍入）"""
    return amount * percentage / HUNDRED
