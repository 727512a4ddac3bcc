#!/usr/bin/env python3
"""
text_decoder.py — Base64 → UTF-8 text decoding for clipdecode.

Decoding never raises for string input. Callers that need to tell a
decoded payload from a failure use decode_result(); legacy callers use
decode(), which returns the diagnostic text in place of the payload.

Normalization rules, applied in order before strict decoding:
    1. strip leading/trailing whitespace
    2. drop a leading byte-order mark (U+FEFF)
    3. drop one leading data-URI header:  data:<mediatype>;base64,
    4. remove all remaining whitespace (spaces, tabs, CR/LF, Unicode)

Invalid UTF-8 is replaced with U+FFFD (one per maximal invalid subpart)
unless strict_utf8 is set, in which case it is a decode failure.
"""

import base64
import re
from typing import NamedTuple

_DATA_URI   = re.compile(r"^data:[^,]*;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_BOM        = "\ufeff"
_URLSAFE    = str.maketrans("-_", "+/")


class DecodeResult(NamedTuple):
    ok: bool
    text: str = ""
    error: str = ""
    byte_count: int = 0
    lossy: bool = False

    @property
    def output(self) -> str:
        """Single-string view: the decoded text, or the diagnostic."""
        return self.text if self.ok else self.error

    def to_dict(self) -> dict:
        return {
            "ok":         self.ok,
            "text":       self.text,
            "error":      self.error,
            "byte_count": self.byte_count,
            "lossy":      self.lossy,
        }


# ─── Normalization ────────────────────────────────────────────────────────────

def normalize(text: str) -> str:
    text = text.strip()
    if text.startswith(_BOM):
        text = text[len(_BOM):].lstrip()
    text = _DATA_URI.sub("", text, count=1)
    return _WHITESPACE.sub("", text)


# ─── Decoding ─────────────────────────────────────────────────────────────────

def decode_bytes(text: str, urlsafe: bool = False) -> bytes:
    """
    Normalize and strictly base64-decode text.
    Raises ValueError (binascii.Error) on bad length, padding or alphabet.
    """
    payload = normalize(text)
    if urlsafe:
        payload = payload.translate(_URLSAFE)
    return base64.b64decode(payload, validate=True)


def decode_result(text: str, strict_utf8: bool = False,
                  urlsafe: bool = False) -> DecodeResult:
    try:
        raw = decode_bytes(text or "", urlsafe=urlsafe)
    except ValueError as exc:
        return DecodeResult(ok=False, error=f"[base64 decode error: {exc}]")

    try:
        return DecodeResult(ok=True, text=raw.decode("utf-8"), byte_count=len(raw))
    except UnicodeDecodeError as exc:
        if strict_utf8:
            return DecodeResult(
                ok=False, error=f"[utf-8 decode error: {exc}]", byte_count=len(raw)
            )
        return DecodeResult(
            ok=True,
            text=raw.decode("utf-8", errors="replace"),
            byte_count=len(raw),
            lossy=True,
        )


def decode(text: str, strict_utf8: bool = False, urlsafe: bool = False) -> str:
    return decode_result(text, strict_utf8=strict_utf8, urlsafe=urlsafe).output


def encode(text: str, urlsafe: bool = False) -> str:
    data = text.encode("utf-8")
    if urlsafe:
        return base64.urlsafe_b64encode(data).decode("ascii")
    return base64.b64encode(data).decode("ascii")
