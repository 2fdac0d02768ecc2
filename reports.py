"""CSV and chart shaping for the admin reports page."""
import csv
import io
import math
from collections import OrderedDict
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from models import Home, Need

REPORT_COLUMNS = [
    "Need ID",
    "Home Name",
    "Item Category",
    "Date Posted",
    "Date Fulfilled",
    "Duration (Days)",
]


def short_date(value: datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def duration_days(start: datetime, end: datetime) -> int:
    return math.ceil((end - start).total_seconds() / (60 * 60 * 24))


def completed_needs_csv(rows: Iterable[Tuple[Need, Optional[Home]]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=REPORT_COLUMNS, lineterminator="\r\n")
    writer.writeheader()
    for need, home in rows:
        writer.writerow(
            {
                "Need ID": need.id,
                "Home Name": home.name if home else "Unknown",
                "Item Category": need.category.value,
                "Date Posted": short_date(need.created_at),
                "Date Fulfilled": short_date(need.completed_at),
                "Duration (Days)": duration_days(need.created_at, need.completed_at),
            }
        )
    return buffer.getvalue()


def report_filename(today: date) -> str:
    return f"givehaven-report-{today.isoformat()}.csv"


def completions_by_day(completed_at: Iterable[datetime], limit: int = 14) -> List[dict]:
    """Count completions per calendar day ("Oct 3"), oldest first, last ``limit`` days."""
    counts: "OrderedDict[date, int]" = OrderedDict()
    for stamp in sorted(completed_at):
        day = stamp.date()
        counts[day] = counts.get(day, 0) + 1
    points = [{"date": f"{day:%b} {day.day}", "count": count} for day, count in counts.items()]
    return points[-limit:]
