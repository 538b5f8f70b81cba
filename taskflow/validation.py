# taskflow/validation.py
"""
Form checks for the booking and sign-up flows.

Everything here is pure: each check takes plain strings and returns either a
bool or a list of human-readable messages that the mobile app shows as-is.
"""
import re
from datetime import date
from typing import List, Optional

PHONE_PATTERNS = [
    re.compile(r"^(\+94|0)?[1-9][0-9]{8}$"),   # standard
    re.compile(r"^(\+94)?7[0-9]{8}$"),         # mobile
    re.compile(r"^07[0-9]{8}$"),               # local mobile
    re.compile(r"^\+947[0-9]{8}$"),            # international mobile
    re.compile(r"^[0-9]{9,10}$"),              # bare digits
]

EMAIL_PATTERN = re.compile(r"[A-Z0-9a-z._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,64}")

# District capitals plus the larger towns customers tend to type.
SRI_LANKAN_PLACES = (
    "Colombo", "Dehiwala", "Mount Lavinia", "Moratuwa", "Kotte", "Sri Jayawardenepura Kotte",
    "Nugegoda", "Maharagama", "Kottawa", "Battaramulla", "Rajagiriya", "Kolonnawa",
    "Wellawatte", "Bambalapitiya", "Kollupitiya", "Borella", "Nawala", "Kelaniya",
    "Homagama", "Piliyandala", "Avissawella", "Gampaha", "Negombo", "Ja-Ela", "Wattala",
    "Kadawatha", "Ragama", "Minuwangoda", "Kiribathgoda", "Kalutara", "Panadura",
    "Horana", "Beruwala", "Aluthgama", "Kandy", "Peradeniya", "Katugastota", "Gampola",
    "Matale", "Dambulla", "Nuwara Eliya", "Hatton", "Galle", "Hikkaduwa", "Ambalangoda",
    "Matara", "Weligama", "Hambantota", "Tangalle", "Tissamaharama", "Jaffna",
    "Kilinochchi", "Mannar", "Vavuniya", "Mullaitivu", "Batticaloa", "Ampara",
    "Kalmunai", "Trincomalee", "Kurunegala", "Kuliyapitiya", "Puttalam", "Chilaw",
    "Anuradhapura", "Polonnaruwa", "Badulla", "Bandarawela", "Ella", "Monaragala",
    "Ratnapura", "Embilipitiya", "Balangoda", "Kegalle", "Mawanella",
)

# whole words only, so "Ella" does not match "Bellanwila"
_PLACE_PATTERNS = [(p, re.compile(rf"\b{re.escape(p)}\b", re.IGNORECASE)) for p in SRI_LANKAN_PLACES]

ADDRESS_MIN_LENGTH = 10
PASSWORD_MIN_LENGTH = 6


def is_valid_phone(phone: str) -> bool:
    return any(p.fullmatch(phone) for p in PHONE_PATTERNS)


def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.fullmatch(email) is not None


def find_locality(address: str) -> Optional[str]:
    """Longest gazetteer name found in the address, case-insensitively."""
    matches = [p for p, pattern in _PLACE_PATTERNS if pattern.search(address)]
    if not matches:
        return None
    return max(matches, key=len)


def has_required_fields(name: str, phone: str, address: str) -> bool:
    return all(v.strip() for v in (name, phone, address))


def validate_customer_information(name: str, email: str, phone: str, address: str) -> List[str]:
    errors: List[str] = []

    name = name.strip()
    if not name:
        errors.append("Full name is required")
    elif len(name) < 2:
        errors.append("Full name must be at least 2 characters")

    phone = phone.strip()
    if not phone:
        errors.append("Phone number is required")
    elif not is_valid_phone(phone):
        errors.append("Please enter a valid Sri Lankan phone number")

    address = address.strip()
    if not address:
        errors.append("Service address is required")
    elif len(address) < ADDRESS_MIN_LENGTH:
        errors.append("Please provide a complete service address")

    # optional, but must be well formed when given
    email = email.strip()
    if email and not is_valid_email(email):
        errors.append("Please enter a valid email address")

    return errors


def address_warnings(address: str) -> List[str]:
    if address.strip() and find_locality(address) is None:
        return ["We couldn't recognise a Sri Lankan town or city in this address"]
    return []


def validate_schedule(scheduled_date: date, today: date) -> List[str]:
    if scheduled_date < today:
        return ["Please choose a date from today onwards"]
    return []


def validate_signup(email: str, password: str) -> Optional[str]:
    email = email.strip()
    if not email:
        return "Email cannot be empty"
    if not is_valid_email(email):
        return "Please enter a valid email address"
    if len(password) < PASSWORD_MIN_LENGTH:
        return "Password must be at least 6 characters long"
    return None


def validate_login(email: str, password: str) -> Optional[str]:
    email = email.strip()
    if not email or not password:
        return "Email and password are required"
    if not is_valid_email(email):
        return "Please enter a valid email address"
    return None
