"""
TIME INFORMATION UTILITY
========================

Today's date as a readable label ("October 17, 2026"). Appended to web search
queries and to the search section of the system prompt so the model can tell
fresh results from its training data.
"""

import datetime
from typing import Optional


def get_today_label(now: Optional[datetime.date] = None) -> str:
    now = now or datetime.date.today()
    return f"{now.strftime('%B')} {now.day}, {now.year}"
