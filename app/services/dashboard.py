"""
Monthly Dashboard Service

Visit results for one month rolled up per company against the month's
goals (getGoals), plus the list of visits behind the numbers.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from app.models.enums import VisitResult
from app.models.schemas import Activity, to_int
from app.services.action_list import shift_month, year_month_label
from app.services.activity_log import ActivityLog, get_activity_log
from app.services.sales_api_client import SalesApiClient, SalesApiError, get_sales_api_client

logger = logging.getLogger(__name__)

TOTAL_LABEL = "計"

# Activity times are wall-clock Japan time; aware values are converted to it
JST = timezone(timedelta(hours=9))


def percent(part: int, whole: int) -> int:
    """Whole percent, halves rounded up; 0 when there is nothing to divide by"""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (2 * whole)


def parse_activity_time(value: str) -> Optional[datetime]:
    text = (value or "").strip().replace("/", "-")
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(JST).replace(tzinfo=None)
    return parsed


def parse_goals(data: Any) -> Dict[str, int]:
    """{company: target}; blank company names are dropped"""
    if not isinstance(data, dict):
        return {}
    return {str(company): to_int(target) for company, target in data.items() if company}


@dataclass
class CompanyStat:
    """One summary row: goal progress and visit results for a company"""
    company: str
    target: int = 0
    count: int = 0
    total_attack: int = 0
    hit_count: int = 0
    triangle_count: int = 0
    miss_count: int = 0
    visits: List[Activity] = field(default_factory=list)

    @property
    def progress(self) -> int:
        return percent(self.count, self.target)

    @property
    def remaining(self) -> int:
        return max(0, self.target - self.count)

    @property
    def hit_rate(self) -> int:
        return percent(self.hit_count, self.total_attack)

    def record(self, activity: Activity) -> None:
        self.total_attack += 1
        if activity.met == VisitResult.MET.value:
            self.hit_count += 1
            self.count += 1
        elif activity.met == VisitResult.PARTIAL.value:
            self.triangle_count += 1
        elif activity.met == VisitResult.MISSED.value:
            self.miss_count += 1
        else:
            return
        self.visits.append(activity)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company": self.company,
            "target": self.target,
            "count": self.count,
            "progress": self.progress,
            "remaining": self.remaining,
            "total_attack": self.total_attack,
            "hit_count": self.hit_count,
            "triangle_count": self.triangle_count,
            "miss_count": self.miss_count,
            "hit_rate": self.hit_rate,
        }


def _in_month(activity: Activity, year: int, month: int) -> bool:
    when = parse_activity_time(activity.datetime)
    return when is not None and when.year == year and when.month == month


def _goal_for(company: str, goal_companies: Sequence[str]) -> Optional[str]:
    # Last goal whose name contains, or is contained in, the company wins
    if not company:
        return None
    matched = None
    for goal_company in goal_companies:
        if goal_company in company or company in goal_company:
            matched = goal_company
    return matched


def company_stats(
    activities: Sequence[Activity],
    goals: Dict[str, int],
    year: int,
    month: int,
    sales_rep: Optional[str] = None
) -> List[CompanyStat]:
    """Goal companies first (in goal order), then companies without a goal"""
    stats: Dict[str, CompanyStat] = {
        company: CompanyStat(company=company, target=target)
        for company, target in goals.items()
    }

    for activity in activities:
        if not _in_month(activity, year, month):
            continue
        if sales_rep and activity.sales_rep != sales_rep:
            continue

        company = _goal_for(activity.company, list(goals)) or activity.company
        stat = stats.get(company)
        if stat is None:
            stat = stats[company] = CompanyStat(company=company)
        stat.record(activity)

    return list(stats.values())


def total_row(stats: Sequence[CompanyStat]) -> CompanyStat:
    return CompanyStat(
        company=TOTAL_LABEL,
        target=sum(s.target for s in stats),
        count=sum(s.count for s in stats),
        total_attack=sum(s.total_attack for s in stats),
        hit_count=sum(s.hit_count for s in stats),
        triangle_count=sum(s.triangle_count for s in stats),
        miss_count=sum(s.miss_count for s in stats),
    )


def visit_rows(stats: Sequence[CompanyStat], result: Optional[str] = None) -> List[Dict[str, Any]]:
    """Visits with a recorded result, newest first"""
    visits = [
        (stat.company, activity, parse_activity_time(activity.datetime))
        for stat in stats
        for activity in stat.visits
        if not result or activity.met == result
    ]
    visits.sort(key=lambda v: v[2] or datetime.min, reverse=True)

    return [
        {
            "company": company,
            "department": activity.department,
            "contact": activity.contact,
            "datetime": activity.datetime,
            "date_label": f"{when.month}月{when.day}日" if when else "",
            "met": activity.met,
            "sales_rep": activity.sales_rep,
        }
        for company, activity, when in visits
    ]


class DashboardService:
    """Goals and activities for one month"""

    def __init__(
        self,
        client: Optional[SalesApiClient] = None,
        activity_log: Optional[ActivityLog] = None
    ):
        self.client = client or get_sales_api_client()
        self.activity_log = activity_log or ActivityLog(self.client)

    async def goals(self, year: int, month: int) -> Dict[str, int]:
        """Targets for the month; a failed fetch reads as no goals"""
        try:
            data = await self.client.fetch_data("getGoals", {"yearMonth": year_month_label(year, month)})
        except SalesApiError as e:
            logger.warning(f"[Dashboard] getGoals failed for {year_month_label(year, month)}: {e}")
            return {}
        return parse_goals(data)

    async def build(
        self,
        year: int,
        month: int,
        sales_rep: Optional[str] = None,
        result: Optional[str] = None
    ) -> Dict[str, Any]:
        """Summary table, total row and visit list; raises SalesApiError when activities fail"""
        goals, activities = await asyncio.gather(
            self.goals(year, month),
            self.activity_log.list()
        )

        stats = company_stats(activities, goals, year, month, sales_rep=sales_rep)
        month_reps = {a.sales_rep for a in activities if a.sales_rep and _in_month(a, year, month)}
        prev_year, prev_month = shift_month(year, month, -1)
        next_year, next_month = shift_month(year, month, 1)

        logger.info(f"[Dashboard] {year_month_label(year, month)}: {len(goals)} goals, {len(stats)} companies")
        return {
            "year_month": year_month_label(year, month),
            "prev": {"year": prev_year, "month": prev_month},
            "next": {"year": next_year, "month": next_month},
            "sales_reps": sorted(month_reps),
            "companies": [s.to_dict() for s in stats],
            "total": total_row(stats).to_dict(),
            "visits": visit_rows(stats, result=result),
        }


# Singleton instance
_dashboard_service: Optional[DashboardService] = None


def get_dashboard_service() -> DashboardService:
    global _dashboard_service
    if _dashboard_service is None:
        _dashboard_service = DashboardService(activity_log=get_activity_log())
    return _dashboard_service
