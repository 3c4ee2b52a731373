"""Content fingerprinting for snapshot equality checks."""

import hashlib
import re

import blake3

TRAILING_SPACE = re.compile(r"[ \t]+\n")


class ContentHasher:
    """Hex fingerprints of page text.

    Only line endings and trailing whitespace are normalized: any visible
    change to the text, however small, must yield a different fingerprint.
    """

    SUPPORTED = ("sha256", "blake3")

    def __init__(self, hash_type: str = "sha256"):
        if hash_type not in self.SUPPORTED:
            raise ValueError(f"Unsupported hash type: {hash_type}")
        self.hash_type = hash_type

    def fingerprint(self, content: str) -> str:
        data = self.normalize(content).encode("utf-8")
        if self.hash_type == "blake3":
            return blake3.blake3(data).hexdigest()
        return hashlib.sha256(data).hexdigest()

    @staticmethod
    def normalize(content: str) -> str:
        if not content:
            return ""
        unified = content.replace("\r\n", "\n").replace("\r", "\n")
        return TRAILING_SPACE.sub("\n", unified).rstrip()
