"""Entity mapping: catalog records and webhook payloads to HubSpot properties.

Pure functions, no I/O:
- character_to_contact_properties(): catalog character -> contact properties
- location_to_company_properties(): catalog location -> company properties
- contact_payload_to_properties() / company_payload_to_properties():
  webhook or source-account payloads -> mirror properties
- derive_contact_email(): synthetic, collision-resistant contact email
"""

from __future__ import annotations

import unicodedata
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError

from src.crm_sync.sync.errors import PayloadValidationError
from src.crm_sync.sync.schemas import CatalogCharacter, CatalogLocation

DEFAULT_EMAIL_DOMAIN = "rickandmorty.com"
DEFAULT_LIFECYCLE_STAGE = "lead"
DEFAULT_INDUSTRY = "Fictional Location"

# Natural keys used by the resolver
CONTACT_KEY_PROPERTY = "character_id"
COMPANY_KEY_PROPERTY = "name"

CONTACT_PROPERTIES = [
    "character_id",
    "email",
    "firstname",
    "lastname",
    "character_status",
    "character_species",
    "character_gender",
]
COMPANY_PROPERTIES = ["name", "industry", "location_url", "location_dimension"]

_email_adapter = TypeAdapter(EmailStr)


def is_valid_email(address: str) -> bool:
    """Standard email format check (no deliverability lookup)."""
    try:
        _email_adapter.validate_python(address)
    except ValidationError:
        return False
    return True


def _normalize_name(name: str) -> str:
    # Fold accents to ASCII, keep lowercase letters only
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    return "".join(ch for ch in folded.lower() if "a" <= ch <= "z")


def derive_contact_email(name: str, record_id: int, domain: str = DEFAULT_EMAIL_DOMAIN) -> str:
    """Build a synthetic email from the display name letters followed by the id.

    Letters-then-digits keeps distinct (name, id) pairs distinct. Names with no
    letters, or addresses failing the format check, fall back to the id alone.
    """
    local = _normalize_name(name)
    if local:
        candidate = f"{local}{record_id}@{domain}"
        if is_valid_email(candidate):
            return candidate
    return f"{record_id}@{domain}"


def character_to_contact_properties(
    character: CatalogCharacter, email_domain: str = DEFAULT_EMAIL_DOMAIN
) -> dict[str, str]:
    """Map a catalog character to HubSpot contact properties."""
    return {
        "firstname": character.name,
        "lastname": "",
        "email": derive_contact_email(character.name, character.id, email_domain),
        "lifecyclestage": DEFAULT_LIFECYCLE_STAGE,
        "character_id": str(character.id),
        "character_status": character.status,
        "character_species": character.species,
        "character_gender": character.gender,
    }


def location_to_company_properties(location: CatalogLocation) -> dict[str, str]:
    """Map a catalog location to HubSpot company properties."""
    return {
        "name": location.name,
        "industry": location.type or DEFAULT_INDUSTRY,
        "location_url": location.url,
        "location_dimension": location.dimension,
    }


# ── Payload Mapping ────────────────────────────────────────────────────────


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def contact_payload_to_properties(payload: dict[str, Any]) -> dict[str, str]:
    """Map a contact payload to mirror properties.

    Raises:
        PayloadValidationError: character_id or email is missing.
    """
    missing = [field for field in ("character_id", "email") if not payload.get(field)]
    if missing:
        raise PayloadValidationError(f"Missing required fields: {', '.join(missing)}")

    return {field: _text(payload.get(field)) for field in CONTACT_PROPERTIES}


def company_payload_to_properties(payload: dict[str, Any]) -> dict[str, str]:
    """Map a company payload to mirror properties.

    Only name is required; location attributes are copied when present.

    Raises:
        PayloadValidationError: name is missing.
    """
    if not payload.get("name"):
        raise PayloadValidationError("Missing company name")

    properties = {"name": _text(payload["name"])}
    for field in COMPANY_PROPERTIES[1:]:
        if payload.get(field):
            properties[field] = _text(payload[field])
    return properties
