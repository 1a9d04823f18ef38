"""
FNV-1a hash function.

A fast 32-bit non-cryptographic hash with good distribution. Every SDK
binding must produce the same output for the same string, so the hash is
taken over UTF-16 code units exactly like the JavaScript bindings do.
"""

FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
_MASK_32 = 0xFFFFFFFF


def _utf16_code_units(value: str):
    for char in value:
        code_point = ord(char)
        if code_point > 0xFFFF:
            code_point -= 0x10000
            yield 0xD800 + (code_point >> 10)
            yield 0xDC00 + (code_point & 0x3FF)
        else:
            yield code_point


def fnv1a(value: str) -> int:
    """Compute the FNV-1a hash of a string as an unsigned 32-bit integer."""
    hash_value = FNV_OFFSET_BASIS
    for unit in _utf16_code_units(value):
        hash_value ^= unit
        hash_value = (hash_value * FNV_PRIME) & _MASK_32
    return hash_value
