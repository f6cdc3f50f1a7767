"""Device fingerprint used by the login gate.

Labels keep every ASCII letter and digit of the base64 text before taking the
last 12 characters. Earlier browser builds of the app dropped the digits 1-9
at that step, so the same machine produces a different label here. Allow-lists
carried over from those builds need each device re-registered with the label
this module computes (shown on the login page and in the 403 response).
"""

from __future__ import annotations

import base64
import re
from collections.abc import Mapping

from cinerecap.core.schemas import DeviceSignals

FINGERPRINT_VERSION = "v1"
FINGERPRINT_LENGTH = 12
FINGERPRINT_ERROR = "ERR-DEVICE-ID"

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


def fingerprint_source(signals: DeviceSignals) -> str:
    """Join the device signals into the string that gets encoded."""

    return "|".join(
        [
            signals.user_agent,
            signals.platform,
            str(signals.hardware_concurrency or "unknown"),
            f"{signals.screen_width}x{signals.screen_height}",
            f"{signals.avail_width}x{signals.avail_height}",
            str(signals.timezone_offset),
            FINGERPRINT_VERSION,
        ]
    )


def compute_fingerprint(signals: DeviceSignals) -> str:
    """Derive the short device label used by the login gate.

    The source string is base64-encoded (reversible, not a hash), stripped to
    alphanumerics, and the last 12 characters are upper-cased. This is a
    heuristic that mostly stays stable for one browser on one machine; it has
    no collision or forgery resistance.

    Returns FINGERPRINT_ERROR when the source cannot be encoded.
    """

    try:
        raw = fingerprint_source(signals).encode("latin-1")
    except UnicodeEncodeError:
        return FINGERPRINT_ERROR

    encoded = base64.b64encode(raw).decode("ascii")
    return _NON_ALNUM_RE.sub("", encoded)[-FINGERPRINT_LENGTH:].upper()


def _strip_quotes(value: str) -> str:
    # Client hints arrive as structured-header strings, e.g. "\"Linux\"".
    return value.strip().strip('"')


def fill_from_headers(signals: DeviceSignals, headers: Mapping[str, str]) -> DeviceSignals:
    """Fill missing user agent / platform from request headers."""

    updates: dict[str, str] = {}
    if not signals.user_agent:
        updates["user_agent"] = headers.get("user-agent", "")
    if not signals.platform:
        updates["platform"] = _strip_quotes(headers.get("sec-ch-ua-platform", ""))
    if not updates:
        return signals
    return signals.model_copy(update=updates)
