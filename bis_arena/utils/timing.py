import datetime
from datetime import timezone as _tz
UTC = _tz.utc

def now() -> datetime.datetime:
    return datetime.datetime.now(UTC)

def now_millis() -> int:
    return int(now().timestamp() * 1000)
