"""Minute-resolution timestamps used to name snapshots.

A snapshot is identified by its timestamp alone. The canonical string form
``YYYY-MM-DD_HH.MM`` has fixed-width, zero-padded fields, so sorting the
strings and sorting the timestamps give the same order.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import re


TIMESTAMP_FORMAT = "%Y-%m-%d_%H.%M"

# strptime alone accepts unpadded fields, so the shape is checked first
_TIMESTAMP_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}_[0-9]{2}\.[0-9]{2}")


class TimestampError(ValueError):
    """Raised when a string is not a canonical snapshot timestamp."""
    pass


def _truncate(moment: datetime) -> datetime:
    return moment.replace(second=0, microsecond=0)


@dataclass(frozen=True, order=True)
class Timestamp:
    """A point in local time with minute precision."""
    moment: datetime

    def __post_init__(self):
        object.__setattr__(self, "moment", _truncate(self.moment))

    @classmethod
    def now(cls) -> "Timestamp":
        return cls(datetime.now())

    @classmethod
    def parse(cls, text: str) -> "Timestamp":
        """
        Parse the canonical ``YYYY-MM-DD_HH.MM`` form.

        Surrounding whitespace, other separators, unpadded fields and
        out-of-range values are all rejected.

        Raises:
            TimestampError: If ``text`` is not a canonical timestamp
        """
        if not isinstance(text, str) or not _TIMESTAMP_PATTERN.fullmatch(text):
            raise TimestampError(f"Not a snapshot timestamp: {text!r}")
        try:
            moment = datetime.strptime(text, TIMESTAMP_FORMAT)
        except ValueError as e:
            raise TimestampError(f"Not a snapshot timestamp: {text!r} ({e})") from e
        return cls(moment)

    @classmethod
    def is_valid(cls, text: str) -> bool:
        try:
            cls.parse(text)
        except TimestampError:
            return False
        return True

    def next(self) -> "Timestamp":
        return Timestamp(self.moment + timedelta(minutes=1))

    def __sub__(self, delta: timedelta) -> "Timestamp":
        if not isinstance(delta, timedelta):
            return NotImplemented
        return Timestamp(self.moment - delta)

    def __str__(self) -> str:
        m = self.moment
        return f"{m.year:04d}-{m.month:02d}-{m.day:02d}_{m.hour:02d}.{m.minute:02d}"
