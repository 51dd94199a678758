"""
Sri Lankan national identity card (NIC) parsing.
Old format: 9 digits + V/X (YYDDDnnnnV). New format: 12 digits (YYYYDDDnnnnn).
DDD is the day of the year, with 500 added for women.
"""
import re
from datetime import date, timedelta
from typing import Literal, Optional

_NIC_RE = re.compile(r"^([0-9]{9}[vVxX]|[0-9]{12})$")
_OLD_NIC_RE = re.compile(r"^\d{9}[VX]$")
_NEW_NIC_RE = re.compile(r"^\d{12}$")
_NIC_INPUT_STRIP = re.compile(r"[^0-9vVxX]")

FEMALE_DAY_OFFSET = 500
NIC_MAX_LENGTH = 12


def is_valid_nic(nic: str) -> bool:
    return bool(_NIC_RE.match((nic or "").strip()))


def normalize_nic_input(value: str) -> str:
    """Keep digits and V/X only, upper-cased and capped at 12 characters (as typed into a form)."""
    return _NIC_INPUT_STRIP.sub("", value or "").strip().upper()[:NIC_MAX_LENGTH]


def _split(nic: str) -> Optional[tuple[int, int]]:
    """Return (birth_year, day_value) or None when the NIC is malformed."""
    clean = (nic or "").upper().strip()
    if _OLD_NIC_RE.match(clean):
        return int("19" + clean[0:2]), int(clean[2:5])
    if _NEW_NIC_RE.match(clean):
        return int(clean[0:4]), int(clean[4:7])
    return None


def extract_gender(nic: str) -> Optional[Literal["Male", "Female"]]:
    parts = _split(nic)
    if parts is None:
        return None
    return "Female" if parts[1] > FEMALE_DAY_OFFSET else "Male"


def extract_birthday(nic: str) -> Optional[str]:
    """
    Birth date as YYYY-MM-DD.
    Day counts always follow a leap year, so day 60 is 29 February whatever the birth year.
    """
    parts = _split(nic)
    if parts is None:
        return None
    birth_year, day_value = parts
    if day_value > FEMALE_DAY_OFFSET:
        day_value -= FEMALE_DAY_OFFSET
    if day_value < 1:
        return None
    reference = date(2000, 1, 1) + timedelta(days=day_value - 1)
    return f"{birth_year:04d}-{reference.month:02d}-{reference.day:02d}"
