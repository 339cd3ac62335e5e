"""
Unit tests for document type detection
"""

from kyc_service.enums import DocumentSide, DocumentType
from kyc_service.processor.document_classifier import detect_document_type


def test_national_card_detected_on_front_and_back():
    lines = ["REPUBLIC OF GHANA", "ECOWAS IDENTITY CARD"]

    assert detect_document_type(lines, DocumentSide.FRONT, "Ghana") == DocumentType.NATIONAL_CARD
    assert detect_document_type(lines, DocumentSide.BACK, "Ghana") == DocumentType.NATIONAL_CARD


def test_national_card_requires_a_side():
    """Test the national card marker is only trusted when the side is known"""
    assert detect_document_type(["GHANA", "IDENTITY CARD"]) == DocumentType.UNKNOWN


def test_national_card_uses_requested_country_name():
    lines = ["FEDERAL REPUBLIC OF NIGERIA", "NATIONAL IDENTITY CARD"]

    assert detect_document_type(lines, DocumentSide.FRONT, "Nigeria") == DocumentType.NATIONAL_CARD


def test_passport_detected():
    assert detect_document_type(["REPUBLIC OF GHANA", "PASSPORT"], DocumentSide.FRONT) == DocumentType.PASSPORT


def test_drivers_license_needs_both_keywords():
    assert detect_document_type(["DRIVER LICENSE"], DocumentSide.FRONT) == DocumentType.DRIVERS_LICENSE
    assert detect_document_type(["DRIVER"], DocumentSide.FRONT) == DocumentType.UNKNOWN


def test_voter_id_detected():
    assert detect_document_type(["ELECTORAL COMMISSION", "VOTER ID"], DocumentSide.FRONT) == DocumentType.VOTER_ID


def test_declaration_order_breaks_ties():
    """Test passport wins over voter id when both keywords are present"""
    assert detect_document_type(["PASSPORT", "VOTER ID"], DocumentSide.FRONT) == DocumentType.PASSPORT


def test_no_marker_is_unknown():
    assert detect_document_type(["HELLO WORLD"], DocumentSide.FRONT) == DocumentType.UNKNOWN
