"""
避免成本估算测试
"""
from decimal import Decimal

import pytest

from rc_core.calc.models.credit import CostFactors, LogisticsFactor
from rc_core.calc.models.enums import CategoryKey
from rc_core.calc.services import AvoidedCostEstimator, estimate_distance_km, normalize_category
from rc_core.calc.services.location import (
    MISSING_ADDRESS_DISTANCE_KM,
    SAME_CITY_DISTANCE_KM,
    UNKNOWN_ROUTE_DISTANCE_KM,
    extract_city,
)


class TestNormalizeCategory:

    @pytest.mark.parametrize("category, expected", [
        ("Fashion", CategoryKey.FASHION),
        ("Women's Clothing", CategoryKey.FASHION),
        ("Mobile Phones", CategoryKey.ELECTRONICS),
        ("Home & Kitchen", CategoryKey.HOME_KITCHEN),
        ("Skincare", CategoryKey.BEAUTY),
        ("Books", CategoryKey.DEFAULT),
        ("", CategoryKey.DEFAULT),
        (None, CategoryKey.DEFAULT),
    ])
    def test_keyword_mapping(self, category, expected):
        assert normalize_category(category) == expected


class TestDistance:

    def test_same_city_aliases(self):
        assert estimate_distance_km("MG Road, Bangalore", "Bengaluru hub") == SAME_CITY_DISTANCE_KM

    def test_pair_lookup_is_order_independent(self):
        assert estimate_distance_km("Andheri, Mumbai", "Koramangala, Bangalore") == 980
        assert estimate_distance_km("Koramangala, Bangalore", "Andheri, Mumbai") == 980

    def test_missing_address(self):
        assert estimate_distance_km(None, "Mumbai") == MISSING_ADDRESS_DISTANCE_KM
        assert estimate_distance_km("Delhi", "") == MISSING_ADDRESS_DISTANCE_KM

    def test_unknown_city_and_unknown_pair(self):
        assert extract_city("Kochi, Kerala") is None
        assert estimate_distance_km("Kochi, Kerala", "Mumbai") == UNKNOWN_ROUTE_DISTANCE_KM
        assert estimate_distance_km("Chennai", "Pune") == UNKNOWN_ROUTE_DISTANCE_KM


class TestAvoidedCostEstimator:

    def test_fashion_299_same_city(self):
        costs = AvoidedCostEstimator().estimate(Decimal("299"), CategoryKey.FASHION, 50)

        assert costs.reverse_logistics == Decimal("25.42")
        assert costs.warehouse_processing == Decimal("13.46")
        assert costs.product_write_off == Decimal("44.85")
        assert costs.quality_degradation == Decimal("59.80")
        assert costs.total == Decimal("143.53")

    def test_total_is_sum_of_rounded_components(self):
        costs = AvoidedCostEstimator().estimate(Decimal("333.33"), CategoryKey.ELECTRONICS, 980)
        assert costs.total == (
            costs.reverse_logistics
            + costs.warehouse_processing
            + costs.product_write_off
            + costs.quality_degradation
        )

    def test_distance_bands_round_up(self):
        estimator = AvoidedCostEstimator()
        zero = estimator.estimate(Decimal("1000"), CategoryKey.DEFAULT, 0)
        one_band = estimator.estimate(Decimal("1000"), CategoryKey.DEFAULT, 1)
        two_bands = estimator.estimate(Decimal("1000"), CategoryKey.DEFAULT, 101)

        assert zero.reverse_logistics == Decimal("90.00")
        assert one_band.reverse_logistics == Decimal("96.00")
        assert two_bands.reverse_logistics == Decimal("102.00")

    def test_missing_category_falls_back_to_default(self):
        factors = CostFactors(
            reverse_logistics={"default": LogisticsFactor(base_percentage=Decimal("10"), distance_multiplier=Decimal("0"))},
            warehouse_processing={"default": Decimal("1")},
            product_write_off={"default": Decimal("2")},
            quality_degradation={"default": Decimal("3")},
        )
        costs = AvoidedCostEstimator(factors).estimate(Decimal("100"), CategoryKey.BEAUTY, 500)

        assert costs.total == Decimal("16.00")
