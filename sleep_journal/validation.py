"""Input sanitisation and request schemas.

Validation messages are Spanish, matching the rest of the UI text.
"""

import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from sleep_journal.entries import TIME_PATTERN

MIN_ENTRY_DATE = date(2000, 1, 1)
MAX_COMMENT_LENGTH = 1000
GENDERS = ("Masculino", "Femenino", "Otro")

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]*>")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+=", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_EMAIL_DISALLOWED = re.compile(r"[^\w@.-]")
_EMAIL_FORMAT = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_NAME_FORMAT = re.compile(r"^[a-zA-ZáéíóúÁÉÍÓÚñÑüÜ\s]+$")


def sanitize_html(value: str) -> str:
    """Strip script blocks, tags, `javascript:` and inline event handlers."""
    if not value:
        return ""
    value = _SCRIPT_TAG.sub("", value)
    value = _HTML_TAG.sub("", value)
    value = _JS_PROTOCOL.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value.strip()


def sanitize_text(value: str, max_length: int = MAX_COMMENT_LENGTH) -> str:
    if not value:
        return ""
    return _WHITESPACE.sub(" ", sanitize_html(value)[:max_length]).strip()


def sanitize_email(value: str) -> str:
    if not value:
        return ""
    return _EMAIL_DISALLOWED.sub("", value.strip().lower())


def password_problems(password: str) -> list[str]:
    """Return every rule the password breaks (empty list if it's fine)."""
    problems = []
    if len(password) < 8:
        problems.append("La contraseña debe tener al menos 8 caracteres")
    if not re.search(r"[A-Z]", password):
        problems.append("La contraseña debe contener al menos una letra mayúscula")
    if not re.search(r"[a-z]", password):
        problems.append("La contraseña debe contener al menos una letra minúscula")
    if not re.search(r"\d", password):
        problems.append("La contraseña debe contener al menos un número")
    if len(password) > 128:
        problems.append("La contraseña no puede exceder 128 caracteres")
    return problems


def _normalize_time(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    match = TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError("Formato de hora inválido (HH:MM)")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


class SleepEntryForm(BaseModel):
    """Body for creating or replacing the entry of a given date."""
    date: date
    rating: int = Field(..., ge=1, le=10)
    comments: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("date")
    @classmethod
    def date_not_in_future(cls, value: date) -> date:
        if value > date.today():
            raise ValueError("La fecha no puede ser futura")
        if value < MIN_ENTRY_DATE:
            raise ValueError("Fecha inválida")
        return value

    @field_validator("comments")
    @classmethod
    def comments_are_plain_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        if len(value) > MAX_COMMENT_LENGTH:
            raise ValueError(f"No puede exceder {MAX_COMMENT_LENGTH} caracteres")
        if sanitize_text(value) != value.strip():
            raise ValueError("El comentario contiene contenido no permitido")
        return value.strip()

    @field_validator("start_time", "end_time")
    @classmethod
    def time_format(cls, value: Optional[str]) -> Optional[str]:
        return _normalize_time(value)


class RegistrationRequest(BaseModel):
    name: str
    email: str
    password: str
    age: int
    city: str
    country: str
    gender: str

    @field_validator("name")
    @classmethod
    def valid_name(cls, value: str) -> str:
        value = sanitize_text(value, 100)
        if len(value) < 2:
            raise ValueError("Nombre inválido")
        if not _NAME_FORMAT.match(value):
            raise ValueError("El nombre solo puede contener letras y espacios")
        return value

    @field_validator("email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        value = sanitize_email(value)
        if len(value) > 255 or not _EMAIL_FORMAT.match(value):
            raise ValueError("Email inválido")
        return value

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        problems = password_problems(value)
        if problems:
            raise ValueError(problems[0])
        return value

    @field_validator("age")
    @classmethod
    def valid_age(cls, value: int) -> int:
        if not 13 <= value <= 150:
            raise ValueError("Edad debe estar entre 13 y 150 años")
        return value

    @field_validator("city", "country")
    @classmethod
    def valid_place(cls, value: str) -> str:
        value = sanitize_text(value, 100)
        if len(value) < 2:
            raise ValueError("Debe tener al menos 2 caracteres")
        return value

    @field_validator("gender")
    @classmethod
    def valid_gender(cls, value: str) -> str:
        if value not in GENDERS:
            raise ValueError("Género no válido")
        return value


class SignInRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def email_required(cls, value: str) -> str:
        value = sanitize_email(value)
        if not value:
            raise ValueError("Este campo es obligatorio")
        return value

    @field_validator("password")
    @classmethod
    def password_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Este campo es obligatorio")
        return value


class BulkDeleteRequest(BaseModel):
    ids: list[int] = Field(default_factory=list)
