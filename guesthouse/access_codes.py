"""Access codes handed to guests for entering their room at the keypad.

Codes are 6 characters drawn with ``secrets`` from an uppercase alphanumeric
alphabet that leaves out 0/O and 1/I, which are easy to confuse on a keypad.
"""
import logging
import secrets

from .models import Booking

logger = logging.getLogger(__name__)

ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6
MAX_ATTEMPTS = 10


class AccessCodeUnavailable(Exception):
    pass


def generate_access_code():
    return "".join(secrets.choice(ALPHABET) for _ in range(CODE_LENGTH))


def is_well_formed(code):
    return (
        isinstance(code, str)
        and len(code) == CODE_LENGTH
        and all(ch in ALPHABET for ch in code)
    )


def normalize(code):
    """Uppercase and strip what a guest typed so look-ups are forgiving."""
    return (code or "").strip().upper()


def issue_access_code():
    """Return a code not held by any active booking.

    Redraws on collision. With 32**6 possible codes a redraw is rare, so
    running out of attempts points at a broken random source.
    """
    for _ in range(MAX_ATTEMPTS):
        code = generate_access_code()
        in_use = Booking.objects.filter(
            access_code=code,
            status__in=Booking.ACTIVE_STATUSES,
        ).exists()
        if not in_use:
            return code
        logger.warning("Access code collision with an active booking, drawing again")
    raise AccessCodeUnavailable(f"No free access code after {MAX_ATTEMPTS} attempts")
