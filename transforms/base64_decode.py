#!/usr/bin/env python3
"""
Base64-decode the clipboard text back to a UTF-8 string.
Accepts data-URI payloads (data:...;base64,...) and text wrapped across
lines. Returns an error message in place of the text if decoding fails.
"""
from text_decoder import DecodeResult, decode_result

STRICT_UTF8 = False   # treat invalid UTF-8 as an error instead of using U+FFFD
URLSAFE     = False   # accept the -_ alphabet


def transform_result(text: str) -> DecodeResult:
    return decode_result(text, strict_utf8=STRICT_UTF8, urlsafe=URLSAFE)


def transform(text: str) -> str:
    return transform_result(text).output
