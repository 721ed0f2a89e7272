"""Payment reference generation shared by the cart service and checkout page state."""

import random
import secrets
import time

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
RANDOM_SUFFIX_LENGTH = 6


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding needs a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_payment_reference(
    shop_slug: str,
    now_ms: int | None = None,
    rng: random.Random | None = None,
) -> str:
    """Build a display/idempotency reference such as `MY-SHOP-LZ3K8Q1AB2C9D`.

    Args:
        shop_slug: Prefix identifying the shop.
        now_ms: Milliseconds since the epoch; defaults to the current time.
        rng: Random source for the suffix; defaults to a system RNG.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    rng = rng or secrets.SystemRandom()
    suffix = "".join(rng.choice(BASE36_ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH))
    return f"{shop_slug}-{to_base36(now_ms)}{suffix}".upper()
