"""Arithmetic challenge used to confirm quitting a session."""

import random
import re
from typing import NamedTuple, Optional

import config

# ASCII digits only; int() would also accept other Unicode digits
_INTEGER_PATTERN = re.compile(r"[+-]?[0-9]+")


class CaptchaChallenge(NamedTuple):
    """A question shown to the user and the integer answer it expects."""
    question: str
    answer: int


def generate_captcha(rng: Optional[random.Random] = None) -> CaptchaChallenge:
    """
    Generate an ``a OP b = ?`` challenge.

    a is drawn from CAPTCHA_FIRST_RANGE, b from CAPTCHA_SECOND_RANGE and
    OP from CAPTCHA_OPERATIONS. With the default ranges the answer is
    always positive.

    Args:
        rng: Random source (defaults to the module-level generator).

    Returns:
        A new CaptchaChallenge.
    """
    rng = rng or random
    first = rng.randint(*config.CAPTCHA_FIRST_RANGE)
    second = rng.randint(*config.CAPTCHA_SECOND_RANGE)
    operation = rng.choice(config.CAPTCHA_OPERATIONS)

    if operation == "+":
        answer = first + second
    else:
        answer = first - second

    return CaptchaChallenge(question=f"{first} {operation} {second} = ?", answer=answer)


def parse_answer(text: Optional[str]) -> Optional[int]:
    """Parse user input as an integer; None for anything non-numeric."""
    if text is None:
        return None
    text = text.strip()
    if not _INTEGER_PATTERN.fullmatch(text):
        return None
    return int(text)
