"""Account number formats for Sri Lankan banks."""
import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AccountRule:
    pattern: re.Pattern
    error: str
    digits: str


SRI_LANKAN_BANKS = (
    "Bank of Ceylon",
    "People's Bank",
    "Commercial Bank of Ceylon PLC",
    "Hatton National Bank PLC",
    "Sampath Bank PLC",
    "Seylan Bank PLC",
    "National Savings Bank",
    "Nations Trust Bank PLC",
    "Pan Asia Banking Corporation PLC",
    "DFCC Bank PLC",
    "Union Bank of Colombo PLC",
    "Amana Bank PLC",
    "National Development Bank PLC",
    "Regional Development Bank",
    "Sanasa Development Bank PLC",
    "HDFC Bank of Sri Lanka",
    "Cargills Bank Limited",
    "Lankaputhra Development Bank",
    "State Mortgage & Investment Bank",
)

BANK_ACCOUNT_RULES: dict[str, AccountRule] = {
    "Bank of Ceylon": AccountRule(re.compile(r"^\d{8,15}$"), "Bank of Ceylon accounts must be 8-15 digits", "8-15"),
    "People's Bank": AccountRule(re.compile(r"^(\d{12}|\d{15})$"), "People's Bank accounts must be 12 or 15 digits", "12 or 15"),
    "Commercial Bank of Ceylon PLC": AccountRule(re.compile(r"^\d{10}$"), "Commercial Bank accounts must be exactly 10 digits", "10"),
    "Hatton National Bank PLC": AccountRule(re.compile(r"^\d{11}$"), "HNB accounts must be exactly 11 digits", "11"),
    "Sampath Bank PLC": AccountRule(re.compile(r"^\d{12}$"), "Sampath Bank accounts must be exactly 12 digits", "12"),
    "National Savings Bank": AccountRule(re.compile(r"^(\d{10}|\d{12})$"), "NSB accounts must be 10 or 12 digits", "10 or 12"),
    "Seylan Bank PLC": AccountRule(re.compile(r"^\d{12}$"), "Seylan Bank accounts must be exactly 12 digits", "12"),
}

DEFAULT_ACCOUNT_RULE = AccountRule(re.compile(r"^\d{6,20}$"), "Account number must be 6-20 digits", "6-20")


def rule_for(bank_name: str) -> AccountRule:
    return BANK_ACCOUNT_RULES.get(bank_name, DEFAULT_ACCOUNT_RULE)


def account_number_error(bank_name: str, account_number: str) -> Optional[str]:
    """Format error for the account number, or None when it is acceptable (or not entered yet)."""
    if not bank_name or not account_number:
        return None
    rule = rule_for(bank_name)
    if not rule.pattern.match(account_number):
        return rule.error
    return None
