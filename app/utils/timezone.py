from datetime import datetime
from typing import Optional
import pytz

from app.config import settings

# Zone used for every loan timestamp (borrow, due and return dates)
LIBRARY_TZ = pytz.timezone(settings.library_timezone)

def now_local() -> datetime:
    """Get current datetime in the library timezone."""
    return datetime.now(LIBRARY_TZ)

def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach the library timezone to naive datetimes.

    SQLite drops UTC offsets on the way back from the database, so values
    read from it come back naive even though they were written aware.
    """
    if value is None or value.tzinfo is not None:
        return value
    return LIBRARY_TZ.localize(value)
