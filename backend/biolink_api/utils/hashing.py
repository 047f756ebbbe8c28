"""PII normalization and hashing for conversions API match keys"""

import hashlib
from typing import Optional


def normalize_and_hash(value: Optional[str]) -> Optional[str]:
    """
    Trim, lower-case, then SHA-256 a match key.

    Blank input returns None so the field is omitted from the payload
    instead of being sent as the hash of an empty string. Normalization
    happens before hashing so the digest matches client-side hashes.
    """
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
