"""
Auth options embedded in start tokens.

AuthOptions serialize to a 16-bit number: the high byte is a flag bitfield,
the low byte selects one of the predefined expiry durations. The same
number is stored as an ``ao=<number>`` option string next to a chat.
"""

from dataclasses import dataclass
from urllib.parse import parse_qs

from api.services.codec import parse_strict_int

AUTH_OPTIONS_FLAG_EXPIRES = 1

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


@dataclass(frozen=True)
class ExpiresChoice:
    """A selectable chat validity duration."""

    code: int
    label: str
    duration_ms: int


EXPIRES_CHOICES: tuple[ExpiresChoice, ...] = (
    ExpiresChoice(1, "5 minutes", 5 * _MINUTE_MS),
    ExpiresChoice(2, "1 hour", _HOUR_MS),
    ExpiresChoice(3, "1 day", _DAY_MS),
    ExpiresChoice(4, "7 days", 7 * _DAY_MS),
    ExpiresChoice(5, "31 days", 31 * _DAY_MS),
    ExpiresChoice(6, "3 months", 92 * _DAY_MS),
    ExpiresChoice(7, "6 months", 182 * _DAY_MS),
    ExpiresChoice(8, "1 year", 398 * _DAY_MS),
)


@dataclass(frozen=True)
class AuthOptions:
    """Options a user picks before starting the bot conversation."""

    flag: int = 0
    expires_code: int = 0

    @property
    def has_preferred_expiry(self) -> bool:
        return bool(self.flag & AUTH_OPTIONS_FLAG_EXPIRES) and self.expires_code != 0

    def to_number(self) -> int:
        return ((self.flag & 0xFF) << 8) | (self.expires_code & 0xFF)

    @classmethod
    def from_number(cls, value: int) -> "AuthOptions":
        return cls(flag=(value >> 8) & 0xFF, expires_code=value & 0xFF)

    def expires_duration(self) -> tuple[int, str]:
        """
        Resolve the preferred expiry.

        Returns:
            (duration_ms, label); (0, "") when there is no preferred expiry
            and (-1, "") when the code is unknown.
        """
        if not self.has_preferred_expiry:
            return 0, ""
        for choice in EXPIRES_CHOICES:
            if choice.code == self.expires_code:
                return choice.duration_ms, choice.label
        return -1, ""

    @classmethod
    def for_duration(cls, duration_ms: int | None) -> "AuthOptions | None":
        """Pick the expiry choice closest to duration_ms."""
        if not duration_ms or duration_ms < 0:
            return None
        closest = min(
            EXPIRES_CHOICES,
            key=lambda choice: abs(choice.duration_ms - duration_ms),
        )
        return cls(flag=AUTH_OPTIONS_FLAG_EXPIRES, expires_code=closest.code)

    def to_option_string(self) -> str | None:
        number = self.to_number()
        if not number:
            return None
        return f"ao={number}"

    @classmethod
    def from_option_string(cls, option: str | None) -> "AuthOptions | None":
        """Read auth options from a query-string style option field."""
        if not option:
            return None
        values = parse_qs(option).get("ao")
        if not values:
            return None
        number = parse_strict_int(values[0])
        if not number:
            return None
        return cls.from_number(number)
