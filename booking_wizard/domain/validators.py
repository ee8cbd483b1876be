from __future__ import annotations

"""Pure per-step form validators for the booking wizard.

Every validator takes the raw form mapping (strings straight from inputs, or
already typed values) and returns ``{field_name: message}``; an empty dict means
the form is valid. Validators never touch the wizard store or the network.
"""

import re
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import EmailStr, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from booking_wizard.schemas_wizard import BOOKING_STATUSES, CARD_TYPES, SUPPORTED_CURRENCIES, RoomDayDraft, RoomFields


ValidationErrors = Dict[str, str]

_MONEY_RE = re.compile(r"^\d+(\.\d{1,2})?$")
_MONEY_EXTRA_DECIMALS_RE = re.compile(r"^\d+\.\d{3,}$")
_UNIQUE_ID_RE = re.compile(r"^[A-Z]{2,4}-\d{6,}$")
_DIGITS_RE = re.compile(r"^\d+$")
_EMAIL = TypeAdapter(EmailStr)
_PHONE_RE = re.compile(r"^[\d\s\-+()]+$")
_LANGUAGE_RE = re.compile(r"^[a-z]{2}$", re.IGNORECASE)
_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
_MASKED_CARD_RE = re.compile(r"^\d{6}\*+\d{4}$")
_EXPIRATION_RE = re.compile(r"^(0[1-9]|1[0-2])/\d{4}$")

_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


def _value(form: Mapping[str, Any], name: str) -> Any:
    if name in form:
        return form[name]
    return form.get(to_camel(name))


def _text(form: Mapping[str, Any], name: str) -> str:
    raw = _value(form, name)
    if raw is None:
        return ""
    return str(raw)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_date(value: Any) -> Optional[date]:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string; anything else is None."""

    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except ValueError:
        return None
    return number


def _money_error(raw: Any, label: str, *, allow_zero: bool = True) -> Optional[str]:
    """Shared numeric rule: a non-negative number with at most two decimals."""

    text = format(raw, "f") if isinstance(raw, Decimal) else str(raw).strip()
    try:
        value = Decimal(text)
    except InvalidOperation:
        return f"{label} must be a valid number"
    if not value.is_finite():
        return f"{label} must be a valid number"
    if value < 0:
        return f"{label} cannot be negative"
    if not allow_zero and value == 0:
        return f"{label} must be greater than 0"
    if not _MONEY_RE.match(text):
        if _MONEY_EXTRA_DECIMALS_RE.match(text):
            return f"{label} must have at most 2 decimal places"
        return f"{label} must be a plain number (e.g. 120.50)"
    return None


def _is_email(text: str) -> bool:
    try:
        _EMAIL.validate_python(text)
    except ValidationError:
        return False
    return True


def nights_between(checkin: date, checkout: date) -> List[date]:
    """Every night of a stay: checkin inclusive, checkout exclusive."""

    nights: List[date] = []
    current = checkin
    while current < checkout:
        nights.append(current)
        current += timedelta(days=1)
    return nights


def compute_service_total(persons: Optional[int], nights: Optional[int], price_per_unit: Any) -> Decimal:
    price = Decimal(str(price_per_unit or 0))
    return (Decimal(persons or 0) * Decimal(nights or 0) * price).quantize(_CENT, rounding=ROUND_HALF_UP)


def split_amount(amount: Any, nights: int) -> List[Decimal]:
    """Spread a room amount over its nights, rounding to cents.

    The last night absorbs the rounding remainder so the parts always add up to
    the original amount.
    """

    if nights <= 0:
        return []
    if amount in (None, ""):
        return [Decimal("0.00")] * nights
    total = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    share = (total / nights).quantize(_CENT, rounding=ROUND_HALF_UP)
    parts = [share] * (nights - 1)
    parts.append(total - share * (nights - 1))
    return parts


def default_room_days(room: RoomFields) -> List[RoomDayDraft]:
    """Starting nightly grid for a room: its amount spread over the stay."""

    nights = nights_between(room.checkin_date, room.checkout_date)
    prices = split_amount(room.amount, len(nights))
    return [RoomDayDraft(stay_date=night, price=price) for night, price in zip(nights, prices)]


# ---------------------------------------------------------------------------
# Step 1: booking header
# ---------------------------------------------------------------------------


def validate_booking_header(form: Mapping[str, Any]) -> ValidationErrors:
    errors: ValidationErrors = {}

    if _is_blank(_value(form, "property_id")):
        errors["property_id"] = "Property is required"
    if _is_blank(_value(form, "status")):
        errors["status"] = "Status is required"
    elif _text(form, "status") not in BOOKING_STATUSES:
        errors["status"] = "Status must be one of: " + ", ".join(BOOKING_STATUSES)

    arrival_raw = _value(form, "arrival_date")
    departure_raw = _value(form, "departure_date")
    arrival = parse_date(arrival_raw)
    departure = parse_date(departure_raw)
    if _is_blank(arrival_raw):
        errors["arrival_date"] = "Arrival date is required"
    elif arrival is None:
        errors["arrival_date"] = "Arrival date must be a valid date (YYYY-MM-DD)"
    if _is_blank(departure_raw):
        errors["departure_date"] = "Departure date is required"
    elif departure is None:
        errors["departure_date"] = "Departure date must be a valid date (YYYY-MM-DD)"
    if arrival and departure and departure <= arrival:
        errors["departure_date"] = "Departure date must be after arrival date"

    amount = _value(form, "amount")
    if _is_blank(amount):
        errors["amount"] = "Amount is required"
    else:
        message = _money_error(amount, "Amount")
        if message:
            errors["amount"] = message

    unique_id = _text(form, "unique_id").strip()
    if unique_id and not _UNIQUE_ID_RE.match(unique_id):
        errors["unique_id"] = "Unique ID must be in format: ABC-123456 (e.g., BDC-1556013801)"

    ota_code = _text(form, "ota_reservation_code").strip()
    if ota_code and not _DIGITS_RE.match(ota_code):
        errors["ota_reservation_code"] = "OTA Reservation Code must be a number"

    commission = _value(form, "ota_commission")
    if not _is_blank(commission):
        message = _money_error(commission, "OTA Commission")
        if message:
            errors["ota_commission"] = message

    currency = _text(form, "currency").strip()
    if currency and currency not in SUPPORTED_CURRENCIES:
        errors["currency"] = "Currency must be one of: " + ", ".join(SUPPORTED_CURRENCIES)

    occupancy = _value(form, "occupancy")
    if occupancy is not None:
        if not isinstance(occupancy, Mapping):
            errors["occupancy"] = "Occupancy must be an object with adults, children and infants"
        else:
            for key in ("adults", "children", "infants"):
                count = _parse_int(occupancy.get(key))
                if count is None or count < 0:
                    errors[f"occupancy.{key}"] = f"{key.capitalize()} must be a non-negative whole number"

    return errors


# ---------------------------------------------------------------------------
# Step 2: rooms
# ---------------------------------------------------------------------------


def validate_room(
    form: Mapping[str, Any],
    booking_dates: Optional[Tuple[Optional[date], Optional[date]]] = None,
) -> ValidationErrors:
    """Validate a room form, nesting its dates inside the booking's range.

    ``booking_dates`` is ``(arrival, departure)``; the nesting check only runs
    when both are known.
    """

    errors: ValidationErrors = {}

    if _is_blank(_value(form, "room_type_id")):
        errors["room_type_id"] = "Room type is required"
    if _is_blank(_value(form, "rate_plan_id")):
        errors["rate_plan_id"] = "Rate plan is required"

    checkin_raw = _value(form, "checkin_date")
    checkout_raw = _value(form, "checkout_date")
    checkin = parse_date(checkin_raw)
    checkout = parse_date(checkout_raw)
    if _is_blank(checkin_raw):
        errors["checkin_date"] = "Check-in date is required"
    elif checkin is None:
        errors["checkin_date"] = "Check-in date must be a valid date (YYYY-MM-DD)"
    if _is_blank(checkout_raw):
        errors["checkout_date"] = "Check-out date is required"
    elif checkout is None:
        errors["checkout_date"] = "Check-out date must be a valid date (YYYY-MM-DD)"

    if checkin and checkout:
        if checkout <= checkin:
            errors["checkout_date"] = "Check-out date must be after check-in date"
        arrival, departure = booking_dates or (None, None)
        if arrival and departure:
            if checkin < arrival:
                errors["checkin_date"] = "Check-in cannot be before booking arrival date"
            if checkout > departure:
                errors["checkout_date"] = "Check-out cannot be after booking departure date"

    amount = _value(form, "amount")
    if not _is_blank(amount):
        message = _money_error(amount, "Amount")
        if message:
            errors["amount"] = message

    counts = {}
    for key in ("adults", "children", "infants"):
        count = _parse_int(_value(form, key))
        if count is None or count < 0:
            errors[key] = f"{key.capitalize()} must be a non-negative whole number"
            count = 0
        counts[key] = count
    if sum(counts.values()) < 1 and "adults" not in errors:
        errors["adults"] = "At least one guest is required"

    return errors


# ---------------------------------------------------------------------------
# Step 3: nightly rates
# ---------------------------------------------------------------------------


def validate_room_days(days: Iterable[Mapping[str, Any]], checkin: date, checkout: date) -> ValidationErrors:
    """A day group must list every night of the stay exactly once."""

    errors: ValidationErrors = {}
    expected = nights_between(checkin, checkout)
    seen: List[date] = []

    for index, day in enumerate(days):
        raw_date = _value(day, "stay_date")
        stay_date = parse_date(raw_date)
        if stay_date is None:
            errors[f"days[{index}].stay_date"] = "Stay date must be a valid date (YYYY-MM-DD)"
            continue
        if stay_date in seen:
            errors[f"days[{index}].stay_date"] = f"Duplicate night {stay_date.isoformat()}"
        elif not (checkin <= stay_date < checkout):
            errors[f"days[{index}].stay_date"] = f"Night {stay_date.isoformat()} is outside the room stay"
        seen.append(stay_date)

        price = _value(day, "price")
        if _is_blank(price):
            errors[f"days[{index}].price"] = "Price is required"
        else:
            message = _money_error(price, "Price")
            if message:
                errors[f"days[{index}].price"] = message

    missing = [night.isoformat() for night in expected if night not in seen]
    if missing:
        errors["days"] = "Missing nights: " + ", ".join(missing)

    return errors


# ---------------------------------------------------------------------------
# Step 4: services
# ---------------------------------------------------------------------------


def validate_service(form: Mapping[str, Any]) -> ValidationErrors:
    errors: ValidationErrors = {}

    for key, label in (("persons", "Persons"), ("nights", "Nights")):
        raw = _value(form, key)
        if _is_blank(raw):
            continue
        count = _parse_int(raw)
        if count is None or count < 1:
            errors[key] = f"{label} must be a positive whole number"

    for key, label in (("price_per_unit", "Price per unit"), ("total_price", "Total price")):
        raw = _value(form, key)
        if _is_blank(raw):
            continue
        message = _money_error(raw, label)
        if message:
            errors[key] = message

    name = _value(form, "name")
    if isinstance(name, str) and len(name) > 255:
        errors["name"] = "Name must be less than 255 characters"

    return errors


# ---------------------------------------------------------------------------
# Step 5: guarantee
# ---------------------------------------------------------------------------


def validate_guarantee(form: Mapping[str, Any]) -> ValidationErrors:
    errors: ValidationErrors = {}

    card_type = _text(form, "card_type").strip()
    if card_type and card_type not in CARD_TYPES:
        errors["card_type"] = "Card type must be one of: " + ", ".join(CARD_TYPES)

    holder = _value(form, "card_holder_name")
    if isinstance(holder, str) and holder and not holder.strip():
        errors["card_holder_name"] = "Card holder name is required"

    masked = _text(form, "masked_card_number").strip()
    if masked and not _MASKED_CARD_RE.match(masked):
        errors["masked_card_number"] = "Invalid format (e.g., 411111******1111)"

    expiration = _text(form, "expiration_date").strip()
    if expiration and not _EXPIRATION_RE.match(expiration):
        errors["expiration_date"] = "Expiration date must be in format MM/YYYY (e.g., 10/2020)"

    return errors


# ---------------------------------------------------------------------------
# Step 6: guests
# ---------------------------------------------------------------------------


def _required_text(
    errors: ValidationErrors,
    form: Mapping[str, Any],
    key: str,
    label: str,
    max_length: int,
) -> Optional[str]:
    value = _text(form, key)
    if not value.strip():
        errors[key] = f"{label} is required"
        return None
    if len(value) > max_length:
        errors[key] = f"{label} must be less than {max_length} characters"
        return None
    return value


def validate_guest(form: Mapping[str, Any]) -> ValidationErrors:
    errors: ValidationErrors = {}

    _required_text(errors, form, "first_name", "First name", 100)
    _required_text(errors, form, "last_name", "Last name", 100)

    email = _text(form, "email")
    if not email.strip():
        errors["email"] = "Email is required"
    elif not _is_email(email):
        errors["email"] = "Invalid email address format"
    elif len(email) > 255:
        errors["email"] = "Email must be less than 255 characters"

    phone = _text(form, "phone")
    if not phone.strip():
        errors["phone"] = "Phone is required"
    elif len(phone) > 50:
        errors["phone"] = "Phone must be less than 50 characters"
    elif not _PHONE_RE.match(phone):
        errors["phone"] = "Phone number contains invalid characters"

    language = _text(form, "language")
    if not language.strip():
        errors["language"] = "Language is required"
    elif len(language) != 2:
        errors["language"] = "Language must be a 2-character code (e.g., en, fr, es)"
    elif not _LANGUAGE_RE.match(language):
        errors["language"] = "Language must contain only letters"

    country = _text(form, "country")
    if not country.strip():
        errors["country"] = "Country is required"
    elif len(country) != 2:
        errors["country"] = "Country must be a 2-character code (e.g., US, GB, FR)"
    elif not _COUNTRY_RE.match(country):
        errors["country"] = "Country must be 2 uppercase letters"

    _required_text(errors, form, "address", "Address", 255)
    _required_text(errors, form, "city", "City", 100)
    _required_text(errors, form, "zip", "ZIP/Postal code", 20)

    company_name = _value(form, "company_name")
    company_number = _value(form, "company_number")
    if company_name:
        if not str(company_name).strip():
            errors["company_name"] = "Company name cannot be empty"
        elif len(str(company_name)) > 255:
            errors["company_name"] = "Company name must be less than 255 characters"

    if company_name and str(company_name).strip() and not company_number:
        errors["company_number"] = "Company number is required when company name is provided"
    elif company_number:
        if not str(company_number).strip():
            errors["company_number"] = "Company number cannot be empty"
        elif len(str(company_number)) > 100:
            errors["company_number"] = "Company number must be less than 100 characters"

    company_type = _value(form, "company_type")
    if company_type and len(str(company_type)) > 50:
        errors["company_type"] = "Company type must be less than 50 characters"

    return errors
