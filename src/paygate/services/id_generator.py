"""Unique ID generation utility."""

import uuid


def generate_id(prefix: str = "") -> str:
    """Generate a random UUID4 string, optionally prefixed.

    Args:
        prefix: Optional prefix (e.g., "test-webhook-").

    Returns:
        A string like "test-webhook-1b4e28ba-2fa1-11d2-883f-0016d3cca427".
    """
    return f"{prefix}{uuid.uuid4()}"
