"""SHA-256 checksum validation for completed backups."""

import re
from typing import Optional

from ..errors import InvalidInput

SHA256_PATTERN = re.compile(r"[0-9a-fA-F]{64}")


def normalize_sha256(value: Optional[str]) -> str:
    """Validate a hex SHA-256 digest and return it lowercased.

    Raises:
        InvalidInput: If the value is not exactly 64 hexadecimal characters
    """
    if value is None or not SHA256_PATTERN.fullmatch(value):
        raise InvalidInput(
            "Invalid SHA-256 checksum provided",
            details={"field": "sha256", "reason": "must be 64 hexadecimal characters"},
        )
    return value.lower()
