"""
Content negotiation for manifest responses.

This is a simplified negotiation: each accept token is checked by substring
containment and media ranges and quality values are ignored. The precedence
below is fixed and must not be "improved" into full RFC 9110 parsing, since
clients depend on HTML winning whenever it is mentioned at all.
"""

from typing import Iterable, Optional

APPLICATION_JSON = "application/json"
TEXT_HTML = "text/html"
TEXT_PLAIN = "text/plain"

# Checked in this order regardless of the order of the accept list
NEGOTIATION_ORDER = (TEXT_HTML, TEXT_PLAIN, APPLICATION_JSON)


def negotiate(accept_types: Optional[Iterable[str]]) -> str:
    """Pick the response content type for a list of accept tokens."""
    tokens = [token for token in (accept_types or []) if token]
    if not tokens:
        return APPLICATION_JSON

    for content_type in NEGOTIATION_ORDER:
        if any(content_type in token for token in tokens):
            return content_type

    return APPLICATION_JSON
