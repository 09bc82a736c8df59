# Loading program and data images from disk.

import struct
from pathlib import Path

def words_from_bytes(data):
    """Unpacks little-endian 32-bit words, zero padding a trailing partial
    word."""
    if len(data) % 4 != 0:
        data = data + bytes(4 - len(data) % 4)
    return list(struct.unpack("<" + "I" * (len(data) // 4), data))

def words_from_hex(text, *, name = "<string>"):
    """Parses whitespace-separated hex words, as $readmemh would take them.
    Comments start with // or # and run to the end of the line."""
    words = []
    for lineno, line in enumerate(text.splitlines(), start = 1):
        for marker in ("//", "#"):
            line = line.split(marker, 1)[0]
        for token in line.split():
            token = token.replace("_", "")
            if token.lower().startswith("0x"):
                token = token[2:]
            try:
                word = int(token, 16)
            except ValueError:
                raise ValueError(
                    f"{name}:{lineno}: not a hex word: {token!r}") from None
            if word >> 32:
                raise ValueError(
                    f"{name}:{lineno}: 0x{word:x} doesn't fit in 32 bits")
            words.append(word)
    return words

def read_image(path):
    """Reads a program or data image. Files ending in .bin are raw
    little-endian binaries; anything else is read as hex text."""
    path = Path(path)
    if path.suffix == ".bin":
        return words_from_bytes(path.read_bytes())
    return words_from_hex(path.read_text(), name = str(path))
