import unittest
from decimal import Decimal

from charitydraw.draw.money import percent_of, split_evenly, to_minor_units, to_money
from charitydraw.draw.pools import TierPercents, compute_pools

DEFAULT_TIERS = TierPercents(40, 35, 25)


class ComputePoolsTests(unittest.TestCase):
    def test_hundred_subscribers_default_split(self):
        pools = compute_pools(100, Decimal("10"), DEFAULT_TIERS, Decimal("0"), Decimal("250000"))

        self.assertEqual(pools.base_pool, Decimal("1000.00"))
        self.assertEqual(pools.tier1_pool, Decimal("400.00"))
        self.assertEqual(pools.tier2_pool, Decimal("350.00"))
        self.assertEqual(pools.tier3_pool, Decimal("250.00"))
        self.assertEqual(pools.cap_excess, Decimal("0.00"))
        self.assertFalse(pools.cap_reached)
        self.assertEqual(pools.total_available_pool, Decimal("1000.00"))

    def test_below_cap_keeps_raw_tier1(self):
        pools = compute_pools(250, Decimal("10"), DEFAULT_TIERS, Decimal("1234.56"))

        self.assertEqual(pools.cap_excess, Decimal("0.00"))
        self.assertEqual(pools.tier1_pool, pools.tier1_pool_raw)
        self.assertEqual(pools.tier1_pool, Decimal("2234.56"))

    def test_carryover_above_cap_spills_into_tier2(self):
        pools = compute_pools(100, Decimal("10"), DEFAULT_TIERS, Decimal("260000"), Decimal("250000"))

        self.assertEqual(pools.tier1_pool_raw, Decimal("260400.00"))
        self.assertEqual(pools.tier1_pool, Decimal("250000.00"))
        self.assertEqual(pools.cap_excess, Decimal("10400.00"))
        self.assertEqual(pools.tier2_pool, Decimal("350.00") + Decimal("10400.00"))
        self.assertEqual(pools.tier3_pool, Decimal("250.00"))
        self.assertTrue(pools.cap_reached)

    def test_rounding_is_half_up_per_step(self):
        pools = compute_pools(3, Decimal("3.33"), TierPercents(33, 33, 34))

        # base 9.99; 33% = 3.2967 -> 3.30; 34% = 3.3966 -> 3.40
        self.assertEqual(pools.base_pool, Decimal("9.99"))
        self.assertEqual(pools.tier1_pool, Decimal("3.30"))
        self.assertEqual(pools.tier2_pool, Decimal("3.30"))
        self.assertEqual(pools.tier3_pool, Decimal("3.40"))

    def test_zero_subscribers(self):
        pools = compute_pools(0, Decimal("10"), DEFAULT_TIERS, Decimal("500"))
        self.assertEqual(pools.base_pool, Decimal("0.00"))
        self.assertEqual(pools.tier1_pool, Decimal("500.00"))
        self.assertEqual(pools.tier2_pool, Decimal("0.00"))

    def test_invalid_inputs(self):
        with self.assertRaises(ValueError):
            TierPercents(40, 40, 25)
        with self.assertRaises(ValueError):
            TierPercents(110, -5, -5)
        with self.assertRaises(ValueError):
            compute_pools(-1, Decimal("10"), DEFAULT_TIERS)
        with self.assertRaises(ValueError):
            compute_pools(1, Decimal("-10"), DEFAULT_TIERS)

    def test_pool_for_tier(self):
        pools = compute_pools(10, Decimal("10"), DEFAULT_TIERS)
        self.assertEqual(pools.pool_for_tier(2), Decimal("35.00"))
        with self.assertRaises(ValueError):
            pools.pool_for_tier(4)


class MoneyTests(unittest.TestCase):
    def test_to_money_rounds_half_up(self):
        self.assertEqual(to_money(Decimal("2.675")), Decimal("2.68"))
        self.assertEqual(to_money("0.005"), Decimal("0.01"))
        self.assertEqual(to_money(7), Decimal("7.00"))

    def test_floats_are_rejected(self):
        with self.assertRaises(TypeError):
            to_money(2.675)

    def test_percent_and_split(self):
        self.assertEqual(percent_of(Decimal("116.67"), 10), Decimal("11.67"))
        self.assertEqual(split_evenly(Decimal("350.00"), 3), Decimal("116.67"))
        self.assertEqual(split_evenly(Decimal("350.00"), 0), Decimal("0.00"))
        self.assertEqual(to_minor_units(Decimal("12.34")), 1234)


if __name__ == "__main__":
    unittest.main()
