"""
Signal Scoring - Delivery Calendar.

============================================================
PURPOSE
============================================================
Date arithmetic for COMEX-style delivery cycles:
- Delivery months per metal profile
- First Notice Day (FND): last business day of the month
  before the delivery month
- Contract expiry: third-last business day of the delivery
  month
- Weekly COT releases (Fridays)
- Seed key dates for a calendar year

Business days are weekdays; exchange holidays are not
modelled.

============================================================
"""

import calendar
from datetime import date, timedelta
from typing import List, Optional

from .config import MetalProfile, SILVER_PROFILE
from .types import EventType, KeyDate


COT_RELEASE_WEEKDAY = 4  # Friday


def is_business_day(day: date) -> bool:
    return day.weekday() < 5


def last_business_day(year: int, month: int) -> date:
    day = date(year, month, calendar.monthrange(year, month)[1])
    while not is_business_day(day):
        day -= timedelta(days=1)
    return day


def _previous_month(year: int, month: int):
    if month == 1:
        return year - 1, 12
    return year, month - 1


def is_delivery_month(day: date, profile: MetalProfile = SILVER_PROFILE) -> bool:
    return day.month in profile.delivery_months


def first_notice_day(year: int, delivery_month: int) -> date:
    """FND for the contract delivering in (year, delivery_month)."""
    prior_year, prior_month = _previous_month(year, delivery_month)
    return last_business_day(prior_year, prior_month)


def contract_expiry(year: int, delivery_month: int) -> date:
    """Third-last business day of the delivery month."""
    day = last_business_day(year, delivery_month)
    remaining = 2
    while remaining:
        day -= timedelta(days=1)
        if is_business_day(day):
            remaining -= 1
    return day


def next_first_notice_day(as_of: date, profile: MetalProfile = SILVER_PROFILE) -> date:
    """First FND on or after as_of."""
    for year in (as_of.year, as_of.year + 1):
        for month in sorted(profile.delivery_months):
            fnd = first_notice_day(year, month)
            if fnd >= as_of:
                return fnd
    # Unreachable with at least one delivery month
    raise ValueError(f"No delivery months configured for {profile.display_name}")


def days_to_next_fnd(as_of: date, profile: MetalProfile = SILVER_PROFILE) -> int:
    return (next_first_notice_day(as_of, profile) - as_of).days


def front_month(as_of: date, profile: MetalProfile = SILVER_PROFILE) -> date:
    """
    First day of the front delivery month.

    The front month is the delivery month whose FND comes
    next, or the current delivery month while it is active.
    """
    if is_delivery_month(as_of, profile):
        return as_of.replace(day=1)
    fnd = next_first_notice_day(as_of, profile)
    following = fnd.replace(day=28) + timedelta(days=4)
    return following.replace(day=1)


def front_month_code(as_of: date, profile: MetalProfile = SILVER_PROFILE) -> str:
    """Contract code such as 'MAR 26'."""
    month = front_month(as_of, profile)
    return f"{calendar.month_abbr[month.month].upper()} {month.year % 100:02d}"


def cot_release_dates(year: int) -> List[date]:
    """All Fridays of a calendar year."""
    day = date(year, 1, 1)
    day += timedelta(days=(COT_RELEASE_WEEKDAY - day.weekday()) % 7)
    dates = []
    while day.year == year:
        dates.append(day)
        day += timedelta(days=7)
    return dates


def seed_key_dates(year: int, profile: Optional[MetalProfile] = None) -> List[KeyDate]:
    """FND, expiry and COT release dates for one year, date-ordered."""
    profile = profile or SILVER_PROFILE
    name = profile.display_name.lower()
    key_dates: List[KeyDate] = []

    for month in sorted(profile.delivery_months):
        label = f"{calendar.month_name[month]} {year}"
        key_dates.append(
            KeyDate(
                event_date=first_notice_day(year, month),
                event_name=f"{label} FND",
                event_type=EventType.FND,
                description=f"First Notice Day for {label} {name} contract",
                metal=profile.metal,
            )
        )
        key_dates.append(
            KeyDate(
                event_date=contract_expiry(year, month),
                event_name=f"{label} Expiry",
                event_type=EventType.CONTRACT_EXPIRY,
                description=f"{label} {name} contract expiration",
                metal=profile.metal,
            )
        )

    for release in cot_release_dates(year):
        key_dates.append(
            KeyDate(
                event_date=release,
                event_name="COT Release",
                event_type=EventType.COT_RELEASE,
                description="Weekly CFTC Commitments of Traders report release",
                metal=profile.metal,
            )
        )

    return sorted(key_dates, key=lambda k: k.event_date)


def upcoming_key_dates(
    key_dates: List[KeyDate],
    as_of: date,
    limit: int = 5,
) -> List[KeyDate]:
    """Active key dates on or after as_of, soonest first."""
    upcoming = [k for k in key_dates if k.active and k.event_date >= as_of]
    return sorted(upcoming, key=lambda k: k.event_date)[:limit]
