"""Вспомогательные функции"""

import re
from typing import Optional

from utils.errors import ValidationError

_PHONE_CHARS_RE = re.compile(r"^[\d\s+()\-]{6,}$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Телефон без пробелов, скобок и дефисов; None для пустого

    Raises:
        ValidationError: если строка не похожа на телефон
    """
    if phone is None or not phone.strip():
        return None
    raw = phone.strip()
    if not _PHONE_CHARS_RE.match(raw):
        raise ValidationError(f"Invalid phone: {phone!r}")
    digits = re.sub(r"[^\d]", "", raw)
    return f"+{digits}" if raw.startswith("+") else digits


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None or not email.strip():
        return None
    return email.strip().lower()
