"""Turn raw scanner output into comparable login candidates."""

from __future__ import annotations

import json
from typing import Optional, Sequence, Union

from ..utils.logger import get_logger
from .errors import NormalizationAmbiguous
from .models import NormalizedLogin

LOGGER = get_logger("normalizer")

ByteLike = Union[bytes, bytearray, Sequence[int]]


def login_from_email(email: str) -> str:
    """Return everything before the first ``@`` (the whole string if there is none)."""
    at_index = email.find("@")
    if at_index == -1:
        return email
    return email[:at_index]


def _email_from_payload(text: str) -> Optional[str]:
    payload = json.loads(text)
    if not isinstance(payload, dict):
        return None
    for key, value in payload.items():
        if str(key).lower() == "email" and isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize(raw: str) -> NormalizedLogin:
    """Canonicalize one scan.

    QR codes may carry a serialized object such as ``{"email": "..."}``; the
    e-mail is pulled out of it when present. Anything that cannot be decoded
    is used literally, so this never raises.
    """
    text = (raw or "").strip()
    identifier = text
    from_payload = False
    fallback_used = False

    if text.startswith("{"):
        try:
            extracted = _email_from_payload(text)
        except (ValueError, RecursionError) as exc:
            extracted = None
            LOGGER.debug("%s: %s (%s)", NormalizationAmbiguous.default_message, text, exc)
        else:
            if extracted is None:
                LOGGER.debug("%s: no e-mail field in %s", NormalizationAmbiguous.default_message, text)
        if extracted is None:
            fallback_used = True
        else:
            identifier = extracted
            from_payload = True

    email = identifier if "@" in identifier else None
    return NormalizedLogin(
        raw=raw,
        identifier=identifier,
        bare_login=login_from_email(identifier),
        email=email,
        from_payload=from_payload,
        fallback_used=fallback_used,
    )


# ---------------------------------------------------------------------------
# NFC tags


def decode_ndef_text(payload: ByteLike) -> str:
    """Decode an NDEF well-known text record payload.

    The first byte holds the encoding flag (bit 7, set for UTF-16) and the
    length of the language code that precedes the text.
    """
    data = bytes(payload)
    if not data:
        return ""
    status = data[0]
    lang_length = status & 0x3F
    encoding = "utf-16" if status & 0x80 else "utf-8"
    return data[1 + lang_length:].decode(encoding, errors="replace").strip()


def tag_id_hex(tag_id: Union[str, ByteLike]) -> str:
    if isinstance(tag_id, str):
        return tag_id.replace(":", "").strip().lower()
    return "".join(f"{int(byte) & 0xFF:02x}" for byte in tag_id)


def identifier_from_tag(
    ndef_payload: Optional[ByteLike] = None,
    tag_id: Optional[Union[str, ByteLike]] = None,
) -> Optional[str]:
    """Pick the text stored on an NFC card, falling back to its UID."""
    if ndef_payload:
        text = decode_ndef_text(ndef_payload)
        if text:
            return text
    if tag_id:
        return tag_id_hex(tag_id) or None
    return None


__all__ = [
    "normalize",
    "login_from_email",
    "decode_ndef_text",
    "tag_id_hex",
    "identifier_from_tag",
]
