"""
Tests for NIC parsing, fee arithmetic and bank account formats.
Run from project root: python -m pytest tests/test_utils.py -v
Or: python -m unittest tests.test_utils -v
"""
import unittest
from decimal import Decimal

from utils.bank_accounts import account_number_error
from utils.fees import calculate_rental, format_lkr, processing_fee_for, processing_fee_label, total_fees
from utils.nic import extract_birthday, extract_gender, is_valid_nic, normalize_nic_input


class TestNic(unittest.TestCase):
    def test_valid_formats(self):
        """Old (9 digits + V/X) and new (12 digits) formats are accepted."""
        self.assertTrue(is_valid_nic("851234567V"))
        self.assertTrue(is_valid_nic("851234567x"))
        self.assertTrue(is_valid_nic("198512345678"))
        self.assertFalse(is_valid_nic("85123456V"))
        self.assertFalse(is_valid_nic("8512345678"))
        self.assertFalse(is_valid_nic(""))

    def test_gender_from_day_value(self):
        """Day values above 500 mark a female holder."""
        self.assertEqual(extract_gender("851234567V"), "Male")
        self.assertEqual(extract_gender("857234567V"), "Female")
        self.assertEqual(extract_gender("199062345678"), "Female")
        self.assertIsNone(extract_gender("bad"))

    def test_birthday_uses_leap_year_day_counts(self):
        """Day 123 (623 for women) is 2 May; day 60 is 29 February even in a non-leap birth year."""
        self.assertEqual(extract_birthday("851234567V"), "1985-05-02")
        self.assertEqual(extract_birthday("856234567V"), "1985-05-02")
        self.assertEqual(extract_birthday("850604567V"), "1985-02-29")
        self.assertEqual(extract_birthday("199003245678"), "1990-02-01")
        self.assertIsNone(extract_birthday("850004567V"))

    def test_normalize_input(self):
        """Typed input keeps digits and V/X, upper-cased, at most 12 characters."""
        self.assertEqual(normalize_nic_input(" 85-123 4567v "), "851234567V")
        self.assertEqual(normalize_nic_input("1985123456789"), "198512345678")
        self.assertEqual(normalize_nic_input(""), "")


class TestFees(unittest.TestCase):
    def test_processing_fee_tiers(self):
        """48 weeks -> 4%, 72 weeks -> 6%, anything else keeps the current fee."""
        self.assertEqual(processing_fee_for(Decimal(100_000), 48), Decimal("4000.00"))
        self.assertEqual(processing_fee_for(Decimal(100_000), 72), Decimal("6000.00"))
        self.assertEqual(processing_fee_for(Decimal(100_000), 24, Decimal(1500)), Decimal(1500))
        self.assertIsNone(processing_fee_for(Decimal(100_000), None))
        self.assertEqual(processing_fee_label(48), "4%")
        self.assertEqual(processing_fee_label(30), "manual")

    def test_rental(self):
        """Flat-rate rental: (100,000 + 20%) / 48 weeks."""
        self.assertEqual(calculate_rental(Decimal(100_000), Decimal(20), 48), Decimal("2500.00"))
        self.assertEqual(calculate_rental(Decimal(10_000), Decimal(18), 12), Decimal("983.33"))
        self.assertIsNone(calculate_rental(Decimal(100_000), Decimal(20), 0))
        self.assertIsNone(calculate_rental(None, Decimal(20), 48))

    def test_total_fees_ignores_missing(self):
        self.assertEqual(total_fees(Decimal(4000), None, Decimal(1000)), Decimal(5000))
        self.assertEqual(total_fees(), Decimal(0))

    def test_format_lkr(self):
        self.assertEqual(format_lkr(Decimal(300_000)), "LKR 300,000")
        self.assertEqual(format_lkr(Decimal("1234.5")), "LKR 1,234.50")


class TestBankAccounts(unittest.TestCase):
    def test_bank_specific_rules(self):
        self.assertIsNone(account_number_error("Commercial Bank of Ceylon PLC", "1234567890"))
        self.assertEqual(
            account_number_error("Commercial Bank of Ceylon PLC", "123456789"),
            "Commercial Bank accounts must be exactly 10 digits",
        )
        self.assertIsNone(account_number_error("People's Bank", "123456789012345"))
        self.assertIsNotNone(account_number_error("People's Bank", "1234567890123"))

    def test_default_rule_for_other_banks(self):
        self.assertIsNone(account_number_error("DFCC Bank PLC", "123456"))
        self.assertEqual(account_number_error("DFCC Bank PLC", "12345"), "Account number must be 6-20 digits")

    def test_not_entered_yet(self):
        self.assertIsNone(account_number_error("", "123"))
        self.assertIsNone(account_number_error("Sampath Bank PLC", ""))


if __name__ == "__main__":
    unittest.main()
