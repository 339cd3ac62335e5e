# Fichier: kyc_service/processor/document_classifier.py
import logging
from typing import Iterable, Optional

from kyc_service.enums import DocumentSide, DocumentType
from kyc_service.processor.countries import country_name


def detect_document_type(lines: Iterable[str], side: Optional[DocumentSide] = None, country: Optional[str] = None) -> DocumentType:
    """
    Déduit le type de document à partir du texte détecté.

    Ordre de décision (le premier qui correspond gagne) : carte nationale,
    passeport, permis de conduire, carte d'électeur, sinon UNKNOWN.
    """
    text = " ".join(lines).lower()

    national_marker = country_name(country) or "ghana"
    if side in (DocumentSide.FRONT, DocumentSide.BACK) and national_marker in text and "card" in text:
        return DocumentType.NATIONAL_CARD
    if "passport" in text:
        return DocumentType.PASSPORT
    if "driver" in text and "license" in text:
        return DocumentType.DRIVERS_LICENSE
    if "voter" in text and "id" in text:
        return DocumentType.VOTER_ID

    logging.warning("Type de document non reconnu à partir du texte détecté.")
    return DocumentType.UNKNOWN
