"""Shared utilities: NIC parsing, fee arithmetic, bank account rules, logging."""
from utils.bank_accounts import account_number_error
from utils.fees import calculate_rental, format_lkr, processing_fee_for
from utils.log import get_logger, setup_logging
from utils.nic import extract_birthday, extract_gender, is_valid_nic, normalize_nic_input

__all__ = [
    "account_number_error",
    "calculate_rental",
    "format_lkr",
    "processing_fee_for",
    "get_logger",
    "setup_logging",
    "extract_birthday",
    "extract_gender",
    "is_valid_nic",
    "normalize_nic_input",
]
