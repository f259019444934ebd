import unittest

from monetization.core.settings import S
from monetization.errors import InvalidAmount, UnknownMode
from monetization.services.pricing import resolve_mode, split_gross


class TestResolveMode(unittest.TestCase):
    def test_single_actions(self):
        self.assertEqual(resolve_mode("tip").amount_cents, 200)
        self.assertEqual(resolve_mode("boost").amount_cents, 500)
        self.assertEqual(resolve_mode("spin").amount_cents, 100)

    def test_packs(self):
        tip_pack = resolve_mode("tip-pack")
        self.assertTrue(tip_pack.pack)
        self.assertEqual((tip_pack.amount_cents, tip_pack.units), (2000, 10))
        self.assertEqual(resolve_mode("boost-pack").units, 10)
        spin_pack = resolve_mode("Spin-Pack")
        self.assertEqual((spin_pack.mode, spin_pack.units), ("spin-pack", 20))

    def test_unknown_modes(self):
        for mode in ("", "superlike", "reaction-pack", "tip-pack-pack"):
            with self.assertRaises(UnknownMode):
                resolve_mode(mode)

    def test_client_amount_ignored_for_fixed_actions(self):
        self.assertEqual(resolve_mode("boost", amount_cents=1).amount_cents, 500)
        self.assertEqual(resolve_mode("tip-pack", amount_cents=1).amount_cents, 2000)

    def test_custom_tip_amount_is_bounded(self):
        self.assertEqual(resolve_mode("tip", amount_cents=1500).amount_cents, 1500)
        with self.assertRaises(InvalidAmount):
            resolve_mode("tip", amount_cents=S.custom_amount_min_cents - 1)
        with self.assertRaises(InvalidAmount):
            resolve_mode("tip", amount_cents=S.custom_amount_max_cents + 1)

    def test_product_names(self):
        self.assertEqual(resolve_mode("spin-pack").product_name, "Spinner spin pack (20)")
        self.assertEqual(resolve_mode("tip").ledger_kind, "TIP")


class TestSplitGross(unittest.TestCase):
    def test_creator_share_rounds_half_up(self):
        self.assertEqual(split_gross(200), (90, 110))
        self.assertEqual(split_gross(100), (45, 55))
        self.assertEqual(split_gross(1), (0, 1))
        self.assertEqual(split_gross(10), (5, 5))

    def test_parts_always_sum_to_gross(self):
        for gross in (0, 1, 3, 99, 500, 2000, 12345):
            creator, platform = split_gross(gross)
            self.assertEqual(creator + platform, gross)


if __name__ == "__main__":
    unittest.main()
