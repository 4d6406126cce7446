"""
Settlement calculator - turns a final roster into a per-player bill.

Court cost is split hour by hour among the players active in that hour;
shuttlecocks are amortized flat across everyone who played; canceled
players pay the penalty fee only. Pure and deterministic: no clock, no
randomness, no I/O. Intermediate values are never rounded.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Sequence

from core.domain.models import (
    CostParameters,
    CourtSession,
    HourBreakdown,
    PlayerSettlement,
    RosterEntry,
    RosterStatus,
)
from core.utils.event_time import is_valid_hhmm, to_minutes

MINUTES_PER_DAY = 24 * 60


def round_money(amount: float) -> float:
    """Round a final amount to 2 decimal places, half up."""
    return float(Decimal(repr(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def hour_label(hour: int) -> str:
    return f"{hour % 24:02d}:00-{(hour + 1) % 24:02d}:00"


def window_hours(start_time: str, end_time: str) -> List[int]:
    """
    Whole hours (0-23) touched by an HH:MM window, in chronological order.
    A window inside a single hour counts that hour; a window ending past
    the top of an hour also counts that last hour.
    """
    start_total = to_minutes(start_time)
    end_total = to_minutes(end_time)
    if end_total <= start_total:
        end_total += MINUTES_PER_DAY
    start_hour = start_total // 60
    end_hour, end_min = divmod(end_total, 60)

    if start_hour == end_hour:
        return [start_hour % 24]
    hours = list(range(start_hour, end_hour))
    if end_min > 0:
        hours.append(end_hour)
    return [h % 24 for h in hours]


def court_hours(start_time: str, end_time: str) -> List[int]:
    """
    Billable hours of a court booking: [startHour, endHour). A trailing
    partial hour is not billed. An end at or before the start rolls over
    midnight.
    """
    start_total = to_minutes(start_time)
    end_total = to_minutes(end_time)
    if end_total <= start_total:
        end_total += MINUTES_PER_DAY
    return [h % 24 for h in range(start_total // 60, end_total // 60)]


class SettlementCalculator:
    """Proportional court-cost allocation"""

    def calculate(
        self,
        players: Sequence[RosterEntry],
        courts: Sequence[CourtSession],
        costs: CostParameters,
    ) -> List[PlayerSettlement]:
        booked = [(court, court_hours(court.start_time, court.end_time)) for court in courts]
        event_hours = self._event_hours(booked)
        event_hour_set = set(event_hours)

        played = [p for p in players if p.status == RosterStatus.PLAYED]
        hours_by_player: Dict[int, List[int]] = {
            id(p): self._player_hours(p, event_hours, event_hour_set) for p in played
        }

        cohort_sizes: Dict[int, int] = {}
        for hours in hours_by_player.values():
            for hour in hours:
                cohort_sizes[hour] = cohort_sizes.get(hour, 0) + 1

        shuttlecock_share = costs.shuttlecock_total / len(played) if played else 0.0

        settlements: List[PlayerSettlement] = []
        for player in players:
            if player.status == RosterStatus.WAITLIST:
                continue

            entry = PlayerSettlement(player_id=player.player_id)
            if player.status == RosterStatus.CANCELED:
                entry.penalty_fee = costs.penalty_fee
            else:
                hours = hours_by_player[id(player)]
                court_fee = 0.0
                for hour in hours:
                    in_session = cohort_sizes[hour]
                    cost_per_player = self._rate_for_hour(booked, hour) / in_session
                    court_fee += cost_per_player
                    entry.per_hour_sessions.append(HourBreakdown(
                        hour=hour_label(hour),
                        players_in_session=in_session,
                        cost_per_player=cost_per_player,
                    ))
                entry.court_fee = court_fee
                entry.hours_played = len(hours)
                entry.shuttlecock_fee = shuttlecock_share

            entry.total_amount = entry.court_fee + entry.shuttlecock_fee + entry.penalty_fee
            settlements.append(entry)

        return settlements

    def _event_hours(self, booked) -> List[int]:
        """Union of all courts' hours, ordered from the earliest court start."""
        hours = {h for _, slots in booked for h in slots}
        if not hours:
            return []
        anchor = min(to_minutes(c.start_time) for c, _ in booked) // 60
        return sorted(hours, key=lambda h: (h - anchor) % 24)

    def _player_hours(self, player: RosterEntry, event_hours: List[int], event_hour_set: set) -> List[int]:
        if is_valid_hhmm(player.start_time or "") and is_valid_hhmm(player.end_time or ""):
            hours = window_hours(player.start_time, player.end_time)
        else:
            # No usable preference: present for the whole event
            hours = event_hours
        return [h for h in hours if h in event_hour_set]

    def _rate_for_hour(self, booked, hour: int) -> float:
        for court, hours in booked:
            if hour in hours:
                return court.hourly_rate or 0.0
        return 0.0


def summarize(settlements: Iterable[PlayerSettlement]) -> Dict[str, float]:
    """Unrounded fee totals across a settlement run."""
    totals = {"court_fee": 0.0, "shuttlecock_fee": 0.0, "penalty_fee": 0.0, "total_amount": 0.0}
    for s in settlements:
        totals["court_fee"] += s.court_fee
        totals["shuttlecock_fee"] += s.shuttlecock_fee
        totals["penalty_fee"] += s.penalty_fee
        totals["total_amount"] += s.total_amount
    return totals


def total_collected(settlements: Iterable[PlayerSettlement]) -> float:
    return round_money(sum(s.total_amount for s in settlements))
