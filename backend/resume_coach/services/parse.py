"""Local input checks run before any model call, and PDF text extraction."""
from __future__ import annotations

import base64
import binascii
import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Type, TypeVar
from urllib.parse import urlparse

import fitz  # pymupdf

from resume_coach.core import ALLOWED_MIME, MAX_FILE_BYTES, MAX_FILE_MB

E = TypeVar("E", bound=Enum)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?P<params>(?:;[^;,]*)*?);base64,(?P<data>.*)$", re.S)


class ValidationFailure(ValueError):
    """Field-level input problems; carries ``{field: message}``."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


class DocumentReadError(ValueError):
    pass


@dataclass
class Upload:
    filename: str
    content_type: Optional[str]
    data: bytes


def _clean_text(t: str) -> str:
    t = t.replace("\x00", " ")
    t = re.sub(r"[ \t]+", " ", t)
    t = re.sub(r"\n{3,}", "\n\n", t)
    return t.strip()


def extract_text_from_pdf(data: bytes) -> str:
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            chunks = [page.get_text("text") for page in doc]
    except Exception as e:
        raise DocumentReadError(f"Could not open PDF: {e}") from e
    return _clean_text("\n".join(chunks))


_LOCAL_SUFFIXES = (".localhost", ".local", ".internal")

PRIVATE_URL_MESSAGE = "This URL points to a private or local address and cannot be summarized."


def is_public_address(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address.split("%")[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.is_global and not ip.is_multicast


def is_public_host(host: Optional[str]) -> bool:
    """False for loopback, private, link-local and reserved IP literals and local names.

    Other hostnames pass here; their resolved addresses are checked when fetched.
    """
    host = (host or "").strip("[]").rstrip(".").lower()
    if not host or host == "localhost" or host.endswith(_LOCAL_SUFFIXES):
        return False
    try:
        ipaddress.ip_address(host.split("%")[0])
    except ValueError:
        return True
    return is_public_address(host)


def require_text(value: Optional[str], field: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValidationFailure({field: message})
    return value


def require_choice(value: Optional[str], choices: Type[E], field: str) -> E:
    try:
        return choices((value or "").strip().lower())
    except ValueError:
        allowed = ", ".join(c.value for c in choices)
        raise ValidationFailure({field: f"Must be one of: {allowed}."}) from None


def validate_url(value: Optional[str], field: str = "url") -> str:
    url = require_text(value, field, "Please enter a URL to summarize.").strip()
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationFailure(
            {field: "Invalid URL format. Please enter a valid URL (e.g., https://example.com)."}
        )
    if not is_public_host(parsed.hostname):
        raise ValidationFailure({field: PRIVATE_URL_MESSAGE})
    return url


def decode_data_uri(uri: str, field: str = "resume") -> Tuple[str, bytes]:
    m = _DATA_URI_RE.match(uri.strip())
    if not m:
        raise ValidationFailure({field: "Expected a base64 data URI (data:<mime>;base64,<data>)."})
    try:
        data = base64.b64decode(m.group("data"), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationFailure({field: "Error reading file. Please try again."}) from None
    return m.group("mime").lower(), data


def check_pdf(mime_type: Optional[str], data: bytes, field: str = "resume") -> None:
    """MIME type, size and read-success checks for an uploaded resume."""
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime not in ALLOWED_MIME:
        raise ValidationFailure({field: "Invalid file type. Please upload a .pdf file only."})
    if not data:
        raise ValidationFailure({field: "No file selected. Please upload your resume."})
    if len(data) > MAX_FILE_BYTES:
        raise ValidationFailure({field: f"File too large (max {MAX_FILE_MB}MB)."})
    try:
        text = extract_text_from_pdf(data)
    except DocumentReadError:
        raise ValidationFailure({field: "Error reading file. Please try again."}) from None
    if not text:
        raise ValidationFailure({field: "Could not read any text from the PDF."})
