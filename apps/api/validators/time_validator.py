"""Time and date validation utilities"""
import re
from datetime import datetime, date
from typing import Iterable, List, Optional
from fastapi import HTTPException, status

TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')


def normalize_time(time_str: Optional[str]) -> Optional[str]:
    """Return zero-padded 24h "HH:MM", or None when the value is not a valid time"""
    if not time_str:
        return None
    match = TIME_PATTERN.match(str(time_str).strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def validate_time_format(time_str: str) -> str:
    """Validate and normalize a time string in HH:MM format"""
    normalized = normalize_time(time_str)
    if normalized is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid time format: {time_str}. Use HH:MM format (e.g., 09:30, 14:00)"
        )
    return normalized


def normalize_slot_list(slots: Iterable[str]) -> List[str]:
    """Validate every slot, drop duplicates and sort ("HH:MM" sorts chronologically)"""
    return sorted({validate_time_format(slot) for slot in slots})


def parse_date_string(date_str: str) -> date:
    """Parse YYYY-MM-DD; a full ISO datetime is accepted and truncated to its date"""
    raw = (date_str or "").strip()
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid date: {date_str}. Use YYYY-MM-DD format"
        )
