# courier/shipping/phone.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Country:
    name: str
    code: str
    dial_code: str
    format: str
    min_length: int
    max_length: int
    pattern: re.Pattern

    @property
    def dial_digits(self) -> str:
        return clean_phone_number(self.dial_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "code": self.code,
            "dialCode": self.dial_code,
            "format": self.format,
            "minLength": self.min_length,
            "maxLength": self.max_length,
        }


_NANP = "(###) ###-####"

# (name, ISO code, dial code, format mask, min digits, max digits, national-number regex)
_COUNTRY_ROWS = [
    # North America
    ("Canada", "CA", "+1", _NANP, 10, 10, r"^[2-9]\d{9}$"),
    ("United States", "US", "+1", _NANP, 10, 10, r"^[2-9]\d{9}$"),
    # Europe
    ("United Kingdom", "GB", "+44", "#### ######", 10, 11, r"^[1-9]\d{9,10}$"),
    ("Germany", "DE", "+49", "### #######", 10, 12, r"^[1-9]\d{9,11}$"),
    ("France", "FR", "+33", "# ## ## ## ##", 9, 10, r"^[1-9]\d{8,9}$"),
    ("Italy", "IT", "+39", "### ### ####", 9, 10, r"^[3-9]\d{8,9}$"),
    ("Spain", "ES", "+34", "### ### ###", 9, 9, r"^[6-9]\d{8}$"),
    ("Netherlands", "NL", "+31", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Belgium", "BE", "+32", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Switzerland", "CH", "+41", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Austria", "AT", "+43", "### ### ####", 10, 12, r"^[1-9]\d{9,11}$"),
    ("Sweden", "SE", "+46", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Norway", "NO", "+47", "### ## ###", 8, 8, r"^[2-9]\d{7}$"),
    ("Denmark", "DK", "+45", "## ## ## ##", 8, 8, r"^[2-9]\d{7}$"),
    ("Finland", "FI", "+358", "### ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Poland", "PL", "+48", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Czech Republic", "CZ", "+420", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Hungary", "HU", "+36", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Romania", "RO", "+40", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Bulgaria", "BG", "+359", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Greece", "GR", "+30", "### ### ####", 10, 10, r"^[2-9]\d{9}$"),
    ("Portugal", "PT", "+351", "### ### ###", 9, 9, r"^[2-9]\d{8}$"),
    ("Ireland", "IE", "+353", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    # Asia
    ("China", "CN", "+86", "### #### ####", 11, 11, r"^1[3-9]\d{9}$"),
    ("Japan", "JP", "+81", "## #### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("South Korea", "KR", "+82", "## #### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("India", "IN", "+91", "##### #####", 10, 10, r"^[6-9]\d{9}$"),
    ("Pakistan", "PK", "+92", "### #######", 10, 10, r"^[1-9]\d{9}$"),
    ("Bangladesh", "BD", "+880", "### ### ###", 10, 10, r"^[1-9]\d{9}$"),
    ("Thailand", "TH", "+66", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Vietnam", "VN", "+84", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Malaysia", "MY", "+60", "## ### ####", 9, 10, r"^[1-9]\d{8,9}$"),
    ("Singapore", "SG", "+65", "#### ####", 8, 8, r"^[6-9]\d{7}$"),
    ("Indonesia", "ID", "+62", "### ### ####", 9, 11, r"^[1-9]\d{8,10}$"),
    ("Philippines", "PH", "+63", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Taiwan", "TW", "+886", "## #### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Hong Kong", "HK", "+852", "#### ####", 8, 8, r"^[1-9]\d{7}$"),
    ("Israel", "IL", "+972", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Saudi Arabia", "SA", "+966", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("UAE", "AE", "+971", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Turkey", "TR", "+90", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    # Oceania
    ("Australia", "AU", "+61", "### ### ###", 9, 9, r"^[2-9]\d{8}$"),
    ("New Zealand", "NZ", "+64", "### ### ###", 9, 9, r"^[2-9]\d{8}$"),
    # South America
    ("Brazil", "BR", "+55", "## ##### ####", 10, 11, r"^[1-9]\d{9,10}$"),
    ("Argentina", "AR", "+54", "## #### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Chile", "CL", "+56", "## #### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Colombia", "CO", "+57", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Peru", "PE", "+51", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Venezuela", "VE", "+58", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Uruguay", "UY", "+598", "## ### ###", 8, 8, r"^[1-9]\d{7}$"),
    # Africa
    ("South Africa", "ZA", "+27", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Egypt", "EG", "+20", "## #### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Nigeria", "NG", "+234", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Kenya", "KE", "+254", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Morocco", "MA", "+212", "## #### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Ghana", "GH", "+233", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Ethiopia", "ET", "+251", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Tanzania", "TZ", "+255", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Uganda", "UG", "+256", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    # Central America & Caribbean
    ("Mexico", "MX", "+52", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Costa Rica", "CR", "+506", "#### ####", 8, 8, r"^[1-9]\d{7}$"),
    ("Panama", "PA", "+507", "#### ####", 8, 8, r"^[1-9]\d{7}$"),
    ("Jamaica", "JM", "+1", _NANP, 10, 10, r"^[2-9]\d{9}$"),
    ("Bahamas", "BS", "+1", _NANP, 10, 10, r"^[2-9]\d{9}$"),
    # Other
    ("Russia", "RU", "+7", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Ukraine", "UA", "+380", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Kazakhstan", "KZ", "+7", "### ### ####", 10, 10, r"^[1-9]\d{9}$"),
    ("Georgia", "GE", "+995", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
    ("Armenia", "AM", "+374", "## ### ###", 8, 8, r"^[1-9]\d{7}$"),
    ("Latvia", "LV", "+371", "## ### ###", 8, 8, r"^[1-9]\d{7}$"),
    ("Lithuania", "LT", "+370", "## ### ###", 8, 8, r"^[1-9]\d{7}$"),
    ("Estonia", "EE", "+372", "## ### ###", 8, 8, r"^[1-9]\d{7}$"),
    ("Slovenia", "SI", "+386", "## ### ###", 8, 8, r"^[1-9]\d{7}$"),
    ("Croatia", "HR", "+385", "## ### ###", 8, 8, r"^[1-9]\d{7}$"),
    ("Slovakia", "SK", "+421", "### ### ###", 9, 9, r"^[1-9]\d{8}$"),
    ("Serbia", "RS", "+381", "## ### ####", 9, 9, r"^[1-9]\d{8}$"),
]

# table order matters for detection: Canada wins the shared +1 prefix
COUNTRIES: List[Country] = [
    Country(name, code, dial, fmt, lo, hi, re.compile(rx)) for name, code, dial, fmt, lo, hi, rx in _COUNTRY_ROWS
]


def clean_phone_number(phone_number: str) -> str:
    return re.sub(r"\D", "", phone_number or "")


def find_country_by_code(code: str) -> Optional[Country]:
    code = (code or "").strip().upper()
    for c in COUNTRIES:
        if c.code == code:
            return c
    return None


def find_country_by_dial_code(dial_code: str) -> Optional[Country]:
    for c in COUNTRIES:
        if c.dial_code == dial_code:
            return c
    return None


def _national_number(phone_number: str, country: Country) -> str:
    cleaned = clean_phone_number(phone_number)
    if cleaned.startswith(country.dial_digits) and len(cleaned) > country.max_length:
        return cleaned[len(country.dial_digits):]
    return cleaned


def format_phone_number(phone_number: str, country: Country) -> str:
    digits = _national_number(phone_number, country)
    if not digits:
        return ""

    out: List[str] = []
    i = 0
    for ch in country.format:
        if i >= len(digits):
            break
        if ch == "#":
            out.append(digits[i])
            i += 1
        else:
            out.append(ch)
    # masks cover min_length; longer numbers keep their tail
    return "".join(out) + digits[i:]


def validate_phone_number(phone_number: str, country: Country) -> Dict[str, Any]:
    digits = _national_number(phone_number, country)
    if len(digits) < country.min_length:
        return {"isValid": False, "error": f"Phone number must be at least {country.min_length} digits for {country.name}"}
    if len(digits) > country.max_length:
        return {"isValid": False, "error": f"Phone number cannot exceed {country.max_length} digits for {country.name}"}
    if not country.pattern.match(digits):
        return {"isValid": False, "error": f"Invalid phone number format for {country.name}"}
    return {"isValid": True}


def detect_country(phone_number: str) -> Optional[Country]:
    cleaned = clean_phone_number(phone_number)
    for c in COUNTRIES:
        if not cleaned.startswith(c.dial_digits):
            continue
        rest = cleaned[len(c.dial_digits):]
        if c.min_length <= len(rest) <= c.max_length and c.pattern.match(rest):
            return c
    return None


def full_phone_number(phone_number: str, country: Country) -> str:
    return f"{country.dial_code} {format_phone_number(phone_number, country)}"


def validate_and_format(phone_number: str, country: Optional[Country] = None) -> Dict[str, Any]:
    country = country or detect_country(phone_number)
    if country is None:
        return {"isValid": False, "error": "Unable to detect country. Please select a country from the dropdown."}

    result = validate_phone_number(phone_number, country)
    if not result["isValid"]:
        return {**result, "detectedCountry": country.to_dict()}

    return {
        "isValid": True,
        "formattedNumber": format_phone_number(phone_number, country),
        "fullNumber": full_phone_number(phone_number, country),
        "detectedCountry": country.to_dict(),
    }
