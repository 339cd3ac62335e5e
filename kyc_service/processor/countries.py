# Fichier: kyc_service/processor/countries.py
from typing import Optional

# Pays pris en charge : nom normalisé -> préfixe ISO 3166-1 alpha-3
# utilisé par les numéros de carte nationale (ex: GHA-123456789-0)
COUNTRY_CODES = {
    "ghana": "GHA",
    "nigeria": "NGA",
    "kenya": "KEN",
    "morocco": "MAR",
    "maroc": "MAR",
    "senegal": "SEN",
    "ivory coast": "CIV",
    "cote d'ivoire": "CIV",
    "south africa": "ZAF",
    "togo": "TGO",
    "benin": "BEN",
}


def normalize_country(country: Optional[str]) -> str:
    return (country or "").strip().lower()


def card_prefix(country: Optional[str]) -> Optional[str]:
    """Préfixe du numéro de carte pour ce pays, None si inconnu."""
    name = normalize_country(country)
    if not name:
        return None
    if name in COUNTRY_CODES:
        return COUNTRY_CODES[name]
    # Le client peut aussi envoyer directement le code alpha-3
    upper = name.upper()
    if upper in COUNTRY_CODES.values():
        return upper
    return None


def country_name(country: Optional[str]) -> Optional[str]:
    """Nom du pays tel qu'il apparaît en toutes lettres sur la carte."""
    name = normalize_country(country)
    if not name:
        return None
    if name in COUNTRY_CODES:
        return name
    for known_name, code in COUNTRY_CODES.items():
        if code == name.upper():
            return known_name
    return name
