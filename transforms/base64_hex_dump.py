#!/usr/bin/env python3
"""
Decode base64 from the clipboard and show the raw bytes as a hex dump.
Each row shows: offset  16 hex bytes  ASCII representation.
Useful when the payload is binary or not valid UTF-8.
"""
from text_decoder import decode_bytes

URLSAFE = False
WIDTH   = 16


def transform(text: str) -> str:
    try:
        data = decode_bytes(text, urlsafe=URLSAFE)
    except ValueError as e:
        return f"[base64 decode error: {e}]"

    lines = []
    for i in range(0, len(data), WIDTH):
        chunk = data[i:i + WIDTH]
        hex_part = " ".join(f"{b:02x}" for b in chunk).ljust(WIDTH * 3 - 1)
        asc_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{i:08x}  {hex_part}  |{asc_part}|")
    return "\n".join(lines)
