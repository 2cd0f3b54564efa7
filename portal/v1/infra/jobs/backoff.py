import random


def compute_backoff_seconds(
    attempts: int,
    base_s: float,
    cap_s: float,
    jitter: float = 0.0,
    rng: random.Random | None = None,
) -> float:
    """
    Delay before a failed job becomes eligible again.

    Exponential in the number of attempts made so far (``base * 2^attempts``),
    with up to ``jitter`` relative variation, clamped to ``cap_s``. Jitter is
    limited to 25% so consecutive uncapped delays never overlap and the
    schedule stays non-decreasing.
    """
    if not 0 <= jitter <= 0.25:
        raise ValueError("jitter must be between 0 and 0.25")

    delay = base_s * (2 ** min(max(0, attempts), 62))
    if jitter:
        rng = rng or random
        delay += delay * jitter * (2 * rng.random() - 1)

    return min(cap_s, delay)
