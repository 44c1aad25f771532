"""
Password health checks and generation.

``PasswordHealthEvaluator`` is stateless: it classifies one plaintext value
into named boolean checks. Reuse detection groups several plaintexts and
lives in :func:`find_reused`.
"""
import string
import secrets
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Optional

SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

COMMON_PASSWORDS = frozenset({
    "password",
    "password1",
    "123456",
    "12345678",
    "123456789",
    "qwerty",
    "abc123",
    "111111",
    "letmein",
    "iloveyou",
    "admin",
    "welcome",
    "monkey",
    "dragon",
})

HEALTH_CHECKS = (
    "length",
    "uppercase",
    "lowercase",
    "numbers",
    "special_chars",
    "not_common",
)

# Ambiguous glyphs (1/l/I, 0/O/o) are left out in no_ambiguous mode.
_UPPER = string.ascii_uppercase
_UPPER_CLEAR = "ABCDEFGHJKLMNPQRSTUVWXYZ"
_LOWER = string.ascii_lowercase
_LOWER_CLEAR = "abcdefghijkmnpqrstuvwxyz"
_DIGITS = string.digits
_DIGITS_CLEAR = "23456789"


class PasswordHealthEvaluator:
    """Classify a password's strength.

    Args:
        min_length: Minimum length for the ``length`` check.
        common_passwords: Denylist for the ``not_common`` check.
    """

    def __init__(
        self,
        min_length: int = 8,
        common_passwords: Iterable[str] = COMMON_PASSWORDS,
    ):
        self.min_length = min_length
        self.common_passwords = frozenset(common_passwords)

    def evaluate(self, password: str) -> dict[str, bool]:
        return {
            "length": len(password) >= self.min_length,
            "uppercase": any("A" <= c <= "Z" for c in password),
            "lowercase": any("a" <= c <= "z" for c in password),
            "numbers": any("0" <= c <= "9" for c in password),
            "special_chars": any(c in SPECIAL_CHARS for c in password),
            "not_common": password not in self.common_passwords,
        }

    __call__ = evaluate

    def weaknesses(self, password: str) -> list[str]:
        """Return the names of the failed checks, in a stable order."""
        health = self.evaluate(password)
        return [name for name in HEALTH_CHECKS if not health[name]]

    def is_weak(self, password: str) -> bool:
        return not all(self.evaluate(password).values())


def find_reused(secrets_by_name: Mapping[str, str]) -> list[list[str]]:
    """Group entry names sharing the same plaintext.

    Args:
        secrets_by_name: Mapping of entry name to decrypted password.

    Returns:
        Sorted groups (each sorted) of two or more names.
    """
    groups: dict[str, list[str]] = defaultdict(list)
    for name, plaintext in secrets_by_name.items():
        groups[plaintext].append(name)
    return sorted(sorted(names) for names in groups.values() if len(names) > 1)


def generate_password(
    length: int = 16,
    special: bool = True,
    numbers: bool = True,
    uppercase: bool = True,
    lowercase: bool = True,
    no_ambiguous: bool = False,
    rng: Optional[secrets.SystemRandom] = None,
) -> str:
    """Generate a random password containing every selected character class.

    Raises:
        ValueError: If no class is selected, or ``length`` cannot fit one
            character of each selected class.
    """
    rng = rng or secrets.SystemRandom()
    classes = []
    if uppercase:
        classes.append(_UPPER_CLEAR if no_ambiguous else _UPPER)
    if lowercase:
        classes.append(_LOWER_CLEAR if no_ambiguous else _LOWER)
    if numbers:
        classes.append(_DIGITS_CLEAR if no_ambiguous else _DIGITS)
    if special:
        classes.append(SPECIAL_CHARS)
    if not classes:
        raise ValueError("no character sets selected")
    if length < len(classes):
        raise ValueError(
            f"password length must be at least {len(classes)} "
            "to include every selected character set"
        )

    alphabet = "".join(classes)
    chars = [rng.choice(group) for group in classes]
    chars.extend(rng.choice(alphabet) for _ in range(length - len(classes)))
    rng.shuffle(chars)
    return "".join(chars)
