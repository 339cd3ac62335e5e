"""
Unit tests for label-anchored field extraction
"""

from kyc_service.enums import DocumentType
from kyc_service.processor.field_extractor import extract_relevant_fields, find_labeled_value


def test_passport_fields_extracted_from_labels():
    """Test passport fields are read from the remainder of labeled lines"""
    lines = [
        "REPUBLIC OF GHANA",
        "PASSPORT",
        "Passport No: G12345678",
        "Full Name: KWAME NKRUMAH",
        "Date of Birth: 21/09/1990",
        "Date of Expiry: 01/01/2030",
        "Nationality: GHANAIAN",
    ]

    fields = extract_relevant_fields(DocumentType.PASSPORT, lines)

    assert fields == {
        "passportNumber": "G12345678",
        "fullName": "KWAME NKRUMAH",
        "dateOfBirth": "21/09/1990",
        "dateOfExpiry": "01/01/2030",
        "nationality": "GHANAIAN",
    }


def test_synonym_labels_are_recognized():
    """Test alternative labels such as 'DOB:' and 'Expiry Date:'"""
    lines = ["Name: AMA SERWAA", "DOB: 01/02/1990", "Expiry Date: 01/02/2031", "Document No: A00000001"]

    fields = extract_relevant_fields(DocumentType.PASSPORT, lines)

    assert fields["dateOfBirth"] == "01/02/1990"
    assert fields["dateOfExpiry"] == "01/02/2031"
    assert fields["passportNumber"] == "A00000001"


def test_absent_fields_are_omitted():
    """Test missing labels produce no key rather than an error"""
    fields = extract_relevant_fields(DocumentType.PASSPORT, ["Passport No: G12345678", "Name: JOHN DOE"])

    assert "dateOfBirth" not in fields
    assert "nationality" not in fields
    assert fields["fullName"] == "JOHN DOE"


def test_empty_remainder_is_skipped():
    """Test a bare label line does not shadow a later labeled value"""
    fields = extract_relevant_fields(DocumentType.VOTER_ID, ["Name:", "Full Name: ESI MENSAH", "Voter ID: 1234567890"])

    assert fields["fullName"] == "ESI MENSAH"
    assert fields["voterIdNumber"] == "1234567890"


def test_national_card_number_found_by_pattern_scan():
    """Test the card number is found anywhere in the text when unlabeled"""
    lines = [
        "REPUBLIC OF GHANA",
        "ECOWAS IDENTITY CARD",
        "GHA-123456789-0",
        "Surname: MENSAH",
        "Firstnames: KOFI AMA",
        "Sex: M",
    ]

    fields = extract_relevant_fields(DocumentType.NATIONAL_CARD, lines, country="Ghana")

    assert fields["cardNumber"] == "GHA-123456789-0"
    assert fields["fullName"] == "KOFI AMA MENSAH"
    assert fields["gender"] == "M"


def test_national_card_number_prefix_follows_country():
    """Test the scan only accepts the prefix of the given country"""
    lines = ["NGA-123456789-0"]

    assert "cardNumber" not in extract_relevant_fields(DocumentType.NATIONAL_CARD, lines, country="Ghana")
    assert extract_relevant_fields(DocumentType.NATIONAL_CARD, lines, country="Nigeria")["cardNumber"] == "NGA-123456789-0"


def test_drivers_license_fields():
    """Test licence number spelling variants and address"""
    lines = [
        "DRIVER LICENSE",
        "Licence No: 123456-01-123456",
        "Name: YAW BOATENG",
        "Date of Birth: 12/12/1985",
        "Address: 12 Independence Avenue, Accra",
    ]

    fields = extract_relevant_fields(DocumentType.DRIVERS_LICENSE, lines)

    assert fields["licenseNumber"] == "123456-01-123456"
    assert fields["address"] == "12 Independence Avenue, Accra"


def test_unknown_type_returns_raw_text():
    """Test unknown documents expose the joined text only"""
    fields = extract_relevant_fields(DocumentType.UNKNOWN, ["SOME", "RANDOM TEXT"])

    assert fields == {"extractedText": "SOME RANDOM TEXT"}


def test_find_labeled_value_is_case_insensitive():
    assert find_labeled_value(["POLLING STATION: Accra Central"], ["polling station:"]) == "Accra Central"
