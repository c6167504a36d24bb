"""Built-in rule operations.

Transforms take ``(value, params, row)`` and return the new value.
Validators take the same arguments and return ``(valid, message)``.
Field transforms take ``(field_name, value, params, row)``.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable

STATE_MAP = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
    "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
    "FL": "Florida", "GA": "Georgia", "HI": "Hawaii", "ID": "Idaho",
    "IL": "Illinois", "IN": "Indiana", "IA": "Iowa", "KS": "Kansas",
    "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi",
    "MO": "Missouri", "MT": "Montana", "NE": "Nebraska", "NV": "Nevada",
    "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico", "NY": "New York",
    "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio", "OK": "Oklahoma",
    "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah",
    "VT": "Vermont", "VA": "Virginia", "WA": "Washington", "WV": "West Virginia",
    "WI": "Wisconsin", "WY": "Wyoming", "DC": "District of Columbia", "PR": "Puerto Rico",
    "VI": "Virgin Islands", "GU": "Guam", "AS": "American Samoa",
    "MP": "Northern Mariana Islands",
}

# Common misspellings
STATE_VARIANTS = {
    "CALI": "California", "CALIF": "California", "CALIFRONIA": "California",
    "CLAIFORNIA": "California", "NEWYORK": "New York", "NEW YORK CITY": "New York",
    "NYC": "New York", "TEXS": "Texas", "FLORDA": "Florida", "FLORDIA": "Florida",
    "GEORIGA": "Georgia", "ILLNOIS": "Illinois", "ILLINIOS": "Illinois",
    "MASSACHUSETS": "Massachusetts", "MASSACHUSSETTS": "Massachusetts",
    "MICHGAN": "Michigan", "MINNESOTTA": "Minnesota", "MISSIPPI": "Mississippi",
    "MISSISIPPI": "Mississippi", "MISOURI": "Missouri", "MISSOURRI": "Missouri",
    "CONNETICUT": "Connecticut", "CONNECTICUTT": "Connecticut",
    "PENNSLVANIA": "Pennsylvania", "PENSYLVANIA": "Pennsylvania",
    "TENNESSE": "Tennessee", "TENNESEE": "Tennessee", "VIRGINA": "Virginia",
    "WASHINTON": "Washington", "WISCONSON": "Wisconsin", "WISCONSN": "Wisconsin",
}

_STATE_NAMES = {name.upper(): name for name in STATE_MAP.values()}

DISPOSABLE_DOMAINS = frozenset({
    "mailinator.com", "guerrillamail.com", "tempmail.com", "throwaway.email",
    "10minutemail.com", "temp-mail.org", "fakeinbox.com", "sharklasers.com",
    "trashmail.com",
})

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

COMPANY_SUFFIXES = {
    "inc": "Inc.", "inc.": "Inc.", "incorporated": "Inc.",
    "llc": "LLC", "l.l.c.": "LLC", "l.l.c": "LLC",
    "llp": "LLP", "l.l.p.": "LLP",
    "ltd": "Ltd.", "ltd.": "Ltd.", "limited": "Ltd.",
    "corp": "Corp.", "corp.": "Corp.", "corporation": "Corp.",
    "co": "Co.", "co.": "Co.", "company": "Co.",
    "plc": "PLC", "p.l.c.": "PLC", "gmbh": "GmbH", "ag": "AG",
    "sa": "SA", "s.a.": "SA", "nv": "NV", "n.v.": "NV",
    "bv": "BV", "b.v.": "BV", "pty": "Pty", "pty.": "Pty",
}
COMPANY_LOWERCASE_WORDS = frozenset({"a", "an", "the", "and", "or", "of", "for", "in", "on", "at", "to", "by"})
COMPANY_ACRONYMS = frozenset({
    "ibm", "hp", "att", "usa", "uk", "uae", "eu", "ai", "it", "hr", "pr", "vp",
    "api", "aws", "gcp", "saas", "crm", "erp", "b2b", "b2c", "iot", "ml",
})

NAME_LOWERCASE_PREFIXES = frozenset({"van", "von", "de", "del", "della", "di", "da", "du", "la", "le", "el"})
NAME_SUFFIXES = {"jr": "Jr.", "jr.": "Jr.", "sr": "Sr.", "sr.": "Sr.", "ii": "II", "iii": "III", "iv": "IV", "phd": "PhD", "md": "MD"}

YES_NO_VALUES = {
    "yes": "Yes", "y": "Yes", "true": "Yes", "1": "Yes",
    "no": "No", "n": "No", "false": "No", "0": "No",
}

MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7, "july": 7,
    "aug": 8, "august": 8, "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12, "december": 12,
}

ROLES = (
    "Admin", "Administrator", "Ascend Employee", "ATI Champion", "ATI Employee",
    "Champion Nominee", "Coordinator", "Dean", "Director", "Educator", "Instructor",
    "Other", "Proctor", "Student", "TEAS Student", "LMS Admin",
)

PROGRAM_TYPES = (
    "ADN", "BSN", "OTHER-BSN", "RN", "PN", "Allied Health", "Diploma", "Other",
    "Testing Center", "ATI Allied Health", "RN to BSN", "APRN", "Healthcare",
    "Bookstore", "LPN", "DNP", "MSN", "CNA", "ADN - Online", "BSN - Online",
    "BSN Philippines", "CT", "CV Sonography", "Dental Assisting", "Dental Hygiene",
    "HCO", "Health Occupations", "Healthcare-ADN", "Hospital", "ICV", "LPN to RN",
    "MRI", "Medical Assisting", "Medical Sonography", "NHA Allied Health",
    "Nuclear Medicine", "Occupational Assisting", "PN - Online", "PhD",
    "Physical Therapy", "Radiation Therapy", "Radiography", "Resident",
    "Respiratory Therapy", "Sports Medicine", "TEAS Only", "Test Program Type",
    "Therapeutic Massage",
)

SOLUTIONS = ("OPTIMAL", "SUPREME", "STO", "CARP", "BASIC", "MID-MARKET", "COMPLETE")

# Headers that hold a whole person name, compared after folding separators to spaces
FULL_NAME_COLUMNS = frozenset({
    "full name", "fullname", "name", "contact name", "contactname",
    "person name", "client name", "customer name",
})
SPLIT_NAME_SUFFIXES = frozenset({"jr", "sr", "ii", "iii", "iv", "v"})
DEFAULT_NAME_PARTS = {"firstname": "first", "lastname": "last"}


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# ── Transforms ────────────────────────────────────────────────────────────

def whitespace_cleanup(value, params, row):
    if not isinstance(value, str):
        return value
    return re.sub(r"\s+", " ", value).strip()


def state_normalization(value, params, row):
    text = _text(value)
    if text is None:
        return value
    upper = text.upper()
    if upper in _STATE_NAMES:
        return _STATE_NAMES[upper]
    return STATE_MAP.get(upper) or STATE_VARIANTS.get(upper) or value


def phone_normalization(value, params, row):
    text = _text(value)
    if text is None:
        return value
    digits = re.sub(r"\D", "", text)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) > 10:
        return f"+{digits}"
    return value


def _capitalize_name_word(word: str) -> str:
    lower = word.lower()
    if lower in NAME_SUFFIXES:
        return NAME_SUFFIXES[lower]
    if lower.startswith("o'") and len(lower) > 2:
        return "O'" + lower[2:].capitalize()
    if lower.startswith("mc") and len(lower) > 2:
        return "Mc" + lower[2:].capitalize()
    if lower.startswith("mac") and len(lower) > 4:
        return "Mac" + lower[3:].capitalize()
    return lower.capitalize()


def name_capitalization(value, params, row):
    text = _text(value)
    if text is None:
        return value
    words = re.sub(r"\s+", " ", text).split(" ")
    result = []
    for idx, word in enumerate(words):
        if idx > 0 and word.lower() in NAME_LOWERCASE_PREFIXES:
            result.append(word.lower())
            continue
        result.append("-".join(_capitalize_name_word(part) for part in word.split("-")))
    return " ".join(result)


def company_normalization(value, params, row):
    text = _text(value)
    if text is None:
        return value
    words = re.sub(r"\s+", " ", text).split(" ")
    result = []
    for idx, word in enumerate(words):
        lower = word.lower()
        if lower.rstrip(",") in COMPANY_SUFFIXES and idx > 0:
            result.append(COMPANY_SUFFIXES[lower.rstrip(",")])
        elif lower in COMPANY_ACRONYMS:
            result.append(lower.upper())
        elif idx > 0 and lower in COMPANY_LOWERCASE_WORDS:
            result.append(lower)
        elif word.isupper() or word.islower():
            result.append(word[:1].upper() + word[1:].lower())
        else:
            result.append(word)
    return " ".join(result)


def _iso(groups):
    y, m, d = groups
    return int(y), int(m), int(d)


def _us(groups):
    m, d, y = groups
    return int(y), int(m), int(d)


def _us_short(groups):
    m, d, y = groups
    year = 1900 + int(y) if int(y) > 50 else 2000 + int(y)
    return year, int(m), int(d)


def _dotted(groups):
    a, b, y = (int(part) for part in groups)
    # Day first only when the first number cannot be a month
    if a > 12:
        return y, b, a
    return y, a, b


def _month_first(groups):
    month = MONTHS.get(groups[0].lower())
    return (int(groups[2]), month, int(groups[1])) if month else None


def _day_first(groups):
    month = MONTHS.get(groups[1].lower())
    return (int(groups[2]), month, int(groups[0])) if month else None


DATE_PATTERNS = (
    (re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})"), _iso),
    (re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})"), _us),
    (re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2})"), _us_short),
    (re.compile(r"(\d{1,2})[.\-](\d{1,2})[.\-](\d{4})"), _dotted),
    (re.compile(r"([A-Za-z]+)\s+(\d{1,2}),?\s+(\d{4})"), _month_first),
    (re.compile(r"(\d{1,2})\s+([A-Za-z]+)\s+(\d{4})"), _day_first),
    (re.compile(r"(\d{4})(\d{2})(\d{2})"), _iso),
)


def parse_date(text: str) -> str | None:
    """Normalize common date spellings to ``YYYY-MM-DD``."""
    text = text.strip()
    for pattern, to_parts in DATE_PATTERNS:
        match = pattern.fullmatch(text)
        if not match:
            continue
        parts = to_parts(match.groups())
        if parts is None:
            return None
        y, m, d = parts
        try:
            return datetime(y, m, d).strftime("%Y-%m-%d")
        except ValueError:
            return None
    if re.fullmatch(r"\d{9,13}", text):
        stamp = int(text)
        seconds = stamp / 1000 if stamp > 10**12 else stamp
        return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d")
    return None


def date_normalization(value, params, row):
    text = _text(value)
    if text is None:
        return value
    return parse_date(text) or value


def yes_no_normalization(value, params, row):
    text = _text(value)
    if text is None:
        return value
    return YES_NO_VALUES.get(text.lower(), value)


def value_map(value, params, row):
    """Map values through ``params["values"]``, case-insensitively."""
    text = _text(value)
    if text is None:
        return value
    mapping = {str(k).strip().lower(): v for k, v in (params.get("values") or {}).items()}
    return mapping.get(text.lower(), value)


def _pick_listed(text: str, allowed, fallback):
    if text in allowed:
        return text
    lookup = {item.lower(): item for item in allowed}
    return lookup.get(text.lower(), fallback)


def role_normalization(value, params, row):
    """Fix the casing of a known role; anything else becomes ``Other``."""
    text = _text(value)
    if text is None:
        return value
    return _pick_listed(text, ROLES, "Other")


def program_type_normalization(value, params, row):
    text = _text(value)
    if text is None:
        return value
    return _pick_listed(text, PROGRAM_TYPES, "Other")


def solution_normalization(value, params, row):
    """Fix the casing of a known solution; unknown values are left for review."""
    text = _text(value)
    if text is None:
        return value
    return _pick_listed(text, SOLUTIONS, value)


def strict_yes_no(value, params, row):
    """Map yes/no variants to ``Yes`` or ``No`` and clear anything else."""
    if value is None:
        return value
    text = str(value).strip()
    if text in ("Yes", "No", ""):
        return value
    return YES_NO_VALUES.get(text.lower(), "")


def _full_name(row, params) -> str | None:
    columns = params.get("source_fields")
    for key, raw in row.items():
        if columns:
            wanted = key in columns
        else:
            wanted = re.sub(r"[_\-\s]+", " ", str(key).lower()).strip() in FULL_NAME_COLUMNS
        if wanted and _text(raw) is not None:
            return _text(raw)
    return None


def split_full_name(full_name: str) -> tuple[str, str | None]:
    """Split ``"First [Middle] Last [Suffix]"`` into first and last name."""
    parts = full_name.split()
    if len(parts) == 1:
        return parts[0], None
    if len(parts) == 3 and parts[2].lower().replace(".", "") in SPLIT_NAME_SUFFIXES:
        return parts[0], f"{parts[1]} {parts[2]}"
    return parts[0], parts[-1]


def full_name_splitter(field_name, value, params, row):
    """Fill an empty first or last name from a full-name column.

    ``params["parts"]`` maps target fields to ``first`` or ``last`` and
    defaults to ``firstname`` and ``lastname``.
    """
    if _text(value) is not None:
        return value
    part = (params.get("parts") or DEFAULT_NAME_PARTS).get(field_name)
    full_name = _full_name(row, params)
    if part is None or full_name is None:
        return value
    first, last = split_full_name(full_name)
    picked = first if part == "first" else last
    return value if picked is None else picked


# ── Validators ────────────────────────────────────────────────────────────

def email_validation(value, params, row) -> tuple[bool, str | None]:
    text = _text(value)
    if text is None:
        return True, None
    if not EMAIL_PATTERN.match(text):
        return False, f"Invalid email format: {text}"
    domain = text.rsplit("@", 1)[1].lower()
    blocked = DISPOSABLE_DOMAINS | frozenset(params.get("blocked_domains") or ())
    if domain in blocked:
        return False, f"Disposable email domain: {domain}"
    return True, None


def required_value(value, params, row) -> tuple[bool, str | None]:
    if _text(value) is None:
        return False, params.get("message") or "Value is required"
    return True, None


def yes_no_validation(value, params, row) -> tuple[bool, str | None]:
    text = _text(value)
    if text is None or text in ("Yes", "No"):
        return True, None
    return False, f'Expected "Yes", "No" or blank, got "{text}"'


def allowed_values(value, params, row) -> tuple[bool, str | None]:
    text = _text(value)
    allowed = {str(v).strip().lower() for v in params.get("values") or ()}
    if text is None or not allowed or text.lower() in allowed:
        return True, None
    return False, f"Value {text!r} is not one of the allowed values"


TransformOp = Callable[[Any, dict, Any], Any]
FieldTransformOp = Callable[[str, Any, dict, Any], Any]
ValidateOp = Callable[[Any, dict, Any], "tuple[bool, str | None]"]

TRANSFORMS: dict[str, TransformOp] = {
    "whitespace-cleanup": whitespace_cleanup,
    "state-normalization": state_normalization,
    "phone-normalization": phone_normalization,
    "name-capitalization": name_capitalization,
    "company-normalization": company_normalization,
    "date-normalization": date_normalization,
    "yes-no-normalization": yes_no_normalization,
    "whitespace-validation": strict_yes_no,
    "new-business-validation": strict_yes_no,
    "role-normalization": role_normalization,
    "program-type-normalization": program_type_normalization,
    "solution-normalization": solution_normalization,
    "value-map": value_map,
}

# Transforms that also need the name of the field they run on
FIELD_TRANSFORMS: dict[str, FieldTransformOp] = {
    "full-name-splitter": full_name_splitter,
}

VALIDATORS: dict[str, ValidateOp] = {
    "email-validation": email_validation,
    "required-value": required_value,
    "yes-no-validation": yes_no_validation,
    "allowed-values": allowed_values,
}
