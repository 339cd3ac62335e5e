# Fichier: kyc_service/processor/field_extractor.py
"""
Extraction des champs par ancrage sur les libellés.

Pour chaque champ, on cherche la première ligne OCR dont le texte en
minuscules commence par un des libellés connus ; le reste de la ligne,
nettoyé, devient la valeur. Un champ introuvable est simplement omis.
"""
import logging
import re
from typing import Dict, Iterable, List, Optional

from kyc_service.enums import DocumentType
from kyc_service.processor.countries import card_prefix

# ───────────────────────────────────────────────
# 1) Libellés reconnus par champ (ordre = priorité)
# ───────────────────────────────────────────────
FIELD_LABELS: Dict[str, List[str]] = {
    "name": ["full name:", "name:", "names:"],
    "surname": ["surname/nom:", "surname/nom", "surname:", "last name:"],
    "givenNames": ["given names:", "firstnames:", "firstnames", "first names:", "first name:"],
    "dateOfBirth": ["date of birth:", "dob:", "birth date:"],
    "dateOfIssue": ["date of issue:", "issued on:", "issue date:"],
    "dateOfExpiry": ["date of expiry:", "expiry date:", "expires on:"],
    "nationality": ["nationality:"],
    "gender": ["sex:", "gender:"],
    "passportNumber": ["passport no:", "passport number:", "document no:"],
    "licenseNumber": ["license no:", "licence no:", "license number:", "licence number:"],
    "address": ["address:"],
    "voterIdNumber": ["voter id number:", "voter id:", "id number:"],
    "pollingStation": ["polling station:", "voting center:", "voting centre:"],
    "cardNumber": ["personal id number:", "card number:", "card no:", "id no:"],
}

# Champs extraits selon le type de document
DOCUMENT_FIELDS: Dict[DocumentType, List[str]] = {
    DocumentType.NATIONAL_CARD: [
        "cardNumber", "fullName", "dateOfBirth", "dateOfIssue", "dateOfExpiry", "nationality", "gender",
    ],
    DocumentType.PASSPORT: ["passportNumber", "fullName", "dateOfBirth", "dateOfExpiry", "nationality"],
    DocumentType.DRIVERS_LICENSE: ["licenseNumber", "fullName", "dateOfBirth", "dateOfExpiry", "address"],
    DocumentType.VOTER_ID: ["voterIdNumber", "fullName", "dateOfBirth", "pollingStation"],
}


def find_labeled_value(lines: Iterable[str], labels: List[str]) -> Optional[str]:
    for line in lines:
        lowered = line.strip().lower()
        for label in labels:
            if lowered.startswith(label):
                value = line.strip()[len(label):].strip(" :\t")
                if value:
                    return value
    return None


def _extract_full_name(lines: List[str]) -> Optional[str]:
    full_name = find_labeled_value(lines, FIELD_LABELS["name"])
    if full_name:
        return full_name
    given = find_labeled_value(lines, FIELD_LABELS["givenNames"])
    surname = find_labeled_value(lines, FIELD_LABELS["surname"])
    if given and surname:
        return f"{given} {surname}"
    return given or surname


def _extract_card_number(lines: List[str], country: Optional[str]) -> Optional[str]:
    labeled = find_labeled_value(lines, FIELD_LABELS["cardNumber"])
    if labeled:
        return labeled.upper().replace(" ", "")

    # Sinon on cherche le motif PREFIXE-#########-# n'importe où dans le texte
    prefix = card_prefix(country)
    pattern = re.escape(prefix) if prefix else "[A-Z]{3}"
    match = re.search(rf"\b{pattern}-\d{{9}}-\d\b", " ".join(lines).upper())
    return match.group(0) if match else None


def extract_relevant_fields(document_type: DocumentType, lines: List[str], country: Optional[str] = None) -> Dict[str, str]:
    """
    Extrait les champs pertinents pour `document_type` à partir des lignes OCR.

    Pour un type inconnu, renvoie tout le texte sous la clé `extractedText`.
    """
    if document_type == DocumentType.UNKNOWN or document_type not in DOCUMENT_FIELDS:
        logging.warning("Type de document inconnu : renvoi du texte brut.")
        return {"extractedText": " ".join(line.strip() for line in lines if line.strip())}

    fields: Dict[str, str] = {}
    for field in DOCUMENT_FIELDS[document_type]:
        if field == "fullName":
            value = _extract_full_name(lines)
        elif field == "cardNumber":
            value = _extract_card_number(lines, country)
        else:
            value = find_labeled_value(lines, FIELD_LABELS[field])
        if value:
            fields[field] = value

    logging.info(f"Champs extraits pour {document_type.value} : {sorted(fields)}")
    return fields
