#!/usr/bin/env python3
"""
Base64-encode the clipboard text (UTF-8). Useful for embedding text in
config files, data URIs, or API payloads.
"""
from text_decoder import encode

URLSAFE = False


def transform(text: str) -> str:
    return encode(text, urlsafe=URLSAFE)
