"""Time manipulation utilities - loan durations and timestamps are whole seconds"""

import time
from typing import List

SECONDS_PER_DAY = 86_400


def days(count: int) -> int:
    """Convert a number of days to seconds"""
    return count * SECONDS_PER_DAY


def generate_time_range(start: int, interval: int, count: int) -> List[int]:
    """Generate `count` timestamps starting at start + interval, spaced by interval"""
    return [start + interval * (i + 1) for i in range(count)]


def unix_now() -> int:
    """Current wall-clock time as integer Unix seconds"""
    return int(time.time())
