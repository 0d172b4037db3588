from __future__ import annotations

import hmac


def verify_cron_secret(*, secret: str, header_value: str) -> bool:
    """
    Shared-secret check for scheduler-triggered endpoints.
    An empty configured secret disables the check.
    """

    expected = (secret or "").strip()
    if not expected:
        return True
    got = (header_value or "").strip()
    if not got:
        return False
    return hmac.compare_digest(got.encode("utf-8"), expected.encode("utf-8"))
