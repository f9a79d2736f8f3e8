# reports.py

import csv
import datetime
import io
import math

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100

CSV_FILENAME = "verification-data.csv"
CSV_HEADER = "Latitude,Longitude,IP,Image URL,Created At"


def parse_positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def paginate(store, page=None, limit=None):
    """One page of records (newest first) plus the numbers the dashboard shows."""
    page = parse_positive_int(page, DEFAULT_PAGE)
    limit = min(parse_positive_int(limit, DEFAULT_LIMIT), MAX_LIMIT)
    skip = (page - 1) * limit

    total = store.count()
    data = store.find(skip=skip, limit=limit)
    return {
        "data": data,
        "currentPage": page,
        "totalPages": math.ceil(total / limit),
        "totalRecords": total,
        "limit": limit,
    }


def records_to_csv(records):
    output = io.StringIO()
    output.write(CSV_HEADER + "\n")
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for record in records:
        writer.writerow([
            record["lat"] or "",
            record["lon"] or "",
            record["ip"] or "",
            record["imageUrl"] or "",
            record["createdAt"],
        ])
    return output.getvalue()


def local_midnight(now=None):
    if now is None:
        # naive local midnight, so astimezone() picks that day's own offset
        midnight = datetime.datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def build_stats(store, now=None):
    """
    Summary numbers for the dashboard:
    totals, captures since local midnight, distinct IPs, and per-hour
    counts over the trailing 24 hours (UTC buckets, ascending).
    """
    today = local_midnight(now)
    now = now or datetime.datetime.now().astimezone()
    last_24_hours = now - datetime.timedelta(hours=24)
    return {
        "totalRecords": store.count(),
        "todayCount": store.count(since=today),
        "uniqueIPs": len(store.distinct_ips()),
        "hourlyData": store.hourly_counts(since=last_24_hours),
    }
