# Fichier: kyc_service/processor/document_validator.py
import logging
import re
from datetime import date, datetime
from typing import Callable, Dict, Optional

import pytz

from config import settings
from kyc_service.enums import DocumentType
from kyc_service.processor.countries import card_prefix

# ───────────────────────────────────────────────
# 1) Dates
# ───────────────────────────────────────────────
# Les documents africains et européens mettent le jour en premier
DATE_FORMATS = [
    "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y-%m-%d", "%Y/%m/%d",
    "%d %b %Y", "%d %B %Y", "%d/%m/%y", "%b %d, %Y", "%B %d, %Y",
]


def parse_document_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    cleaned = re.sub(r"\s+", " ", value.strip())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def today_in_kyc_timezone() -> date:
    tz = pytz.timezone(settings.KYC_TIMEZONE)
    return datetime.now(tz).date()


def calculate_age(birth_date: date, reference: date) -> int:
    age = reference.year - birth_date.year
    if (reference.month, reference.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def is_over_eighteen(date_of_birth: Optional[str], reference: Optional[date] = None) -> Optional[bool]:
    """True/False selon l'âge exact, None si la date est absente ou illisible."""
    birth_date = parse_document_date(date_of_birth)
    if birth_date is None:
        return None
    return calculate_age(birth_date, reference or today_in_kyc_timezone()) >= 18


# ───────────────────────────────────────────────
# 2) Validateurs unitaires
# ───────────────────────────────────────────────
def validate_card_number(value: str, country: Optional[str] = None) -> bool:
    prefix = card_prefix(country)
    pattern = re.escape(prefix) if prefix else "[A-Z]{3}"
    return re.fullmatch(rf"{pattern}-\d{{9}}-\d", value) is not None


def validate_full_name(value: str) -> bool:
    value = value.strip()
    return len(value) > 3 and " " in value


def validate_date(value: str) -> bool:
    return parse_document_date(value) is not None


def validate_nationality(value: str) -> bool:
    return len(value.strip()) > 2


def validate_gender(value: str) -> bool:
    return value.strip().lower() in {"male", "female", "m", "f"}


def validate_passport_number(value: str) -> bool:
    return re.fullmatch(r"[A-Z]\d{8}", value) is not None


def validate_license_number(value: str) -> bool:
    return re.fullmatch(r"\d{6}-\d{2}-\d{6}", value) is not None


def validate_address(value: str) -> bool:
    return len(value.strip()) > 10


def validate_voter_id(value: str) -> bool:
    return re.fullmatch(r"\d{10}", value) is not None


def validate_polling_station(value: str) -> bool:
    return len(value.strip()) > 5


FIELD_VALIDATORS: Dict[str, Callable[[str], bool]] = {
    "fullName": validate_full_name,
    "dateOfBirth": validate_date,
    "dateOfIssue": validate_date,
    "dateOfExpiry": validate_date,
    "nationality": validate_nationality,
    "gender": validate_gender,
    "passportNumber": validate_passport_number,
    "licenseNumber": validate_license_number,
    "address": validate_address,
    "voterIdNumber": validate_voter_id,
    "pollingStation": validate_polling_station,
}

# Champs contrôlés par type de document
VALIDATED_FIELDS = {
    DocumentType.NATIONAL_CARD: ["cardNumber", "fullName", "dateOfBirth", "dateOfIssue", "dateOfExpiry", "nationality", "gender"],
    DocumentType.PASSPORT: ["passportNumber", "fullName", "dateOfBirth", "dateOfExpiry", "nationality"],
    DocumentType.DRIVERS_LICENSE: ["licenseNumber", "fullName", "dateOfBirth", "dateOfExpiry", "address"],
    DocumentType.VOTER_ID: ["voterIdNumber", "fullName", "pollingStation"],
}


# ───────────────────────────────────────────────
# 3) Validation d'un document complet
# ───────────────────────────────────────────────
def validate_document(document_type: DocumentType, fields: Dict[str, str], country: Optional[str] = None) -> Dict[str, bool]:
    if document_type not in VALIDATED_FIELDS:
        logging.warning(f"Aucun validateur pour le type de document {document_type.value}.")
        return {}

    result: Dict[str, bool] = {}
    for field in VALIDATED_FIELDS[document_type]:
        value = fields.get(field)
        if not value:
            result[field] = False
        elif field == "cardNumber":
            result[field] = validate_card_number(value, country)
        else:
            result[field] = FIELD_VALIDATORS[field](value)
    return result
