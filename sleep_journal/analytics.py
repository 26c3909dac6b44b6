"""Sleep journal analytics module. Pure functions over sleep entries, no I/O.

Every function recomputes its result from the full entry list it is given
and never mutates that list. User-facing text is Spanish.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum, IntEnum
from itertools import groupby
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from sleep_journal.entries import SleepEntry, entries_to_dataframe

# Coarse trend: least-squares slope of rating against entry index
COARSE_TREND_MIN_ENTRIES = 3
COARSE_TREND_SLOPE_THRESHOLD = 0.1

# Detailed trend: mean of the most recent window vs the window before it
DETAILED_TREND_MIN_ENTRIES = 7
TREND_WINDOW_SIZE = 14
STABLE_CHANGE_THRESHOLD = 0.3
STRONG_TREND_PERCENTAGE = 20
MODERATE_TREND_PERCENTAGE = 10

# Ratings live in [1, 10], so their standard deviation stays below ~4.5.
# Dividing by 5 and clamping at 0 maps "no variance" to 1 and "high variance" towards 0.
CONSISTENCY_NORMALIZER = 5

GOOD_RATING_THRESHOLD = 7  # rating >= 7 is a good night
BAD_RATING_THRESHOLD = 4  # rating <= 4 is a bad night

# Only the 30 most recent entries (by position) can make up the current streak
CURRENT_STREAK_WINDOW = 30

# Insight thresholds
EXCELLENT_AVERAGE = 8
MODERATE_AVERAGE = 6
LOW_CONSISTENCY = 0.5
HIGH_CONSISTENCY = 0.8
WEEKEND_GAP_THRESHOLD = 1.5
RECENT_WEEK_SIZE = 7
RECENT_WEEK_DIP = 1


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class TrendStrength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"


class StreakType(str, Enum):
    GOOD = "good"
    BAD = "bad"
    NEUTRAL = "neutral"


class InsightType(str, Enum):
    POSITIVE = "positive"
    WARNING = "warning"
    INFO = "info"


class Weekday(IntEnum):
    """Day of week, Sunday first. Also the fixed iteration order for best/worst ties."""
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6


DAY_NAMES = ("Domingo", "Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado")
WORKING_DAYS = (Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY)
WEEKEND_DAYS = (Weekday.SATURDAY, Weekday.SUNDAY)
NO_DAY = "N/A"


def weekday_of(day: date) -> Weekday:
    """Map a calendar date to its Sunday-first weekday."""
    return Weekday((day.weekday() + 1) % 7)


@dataclass
class SleepStatistics:
    """Overview statistics over all entries."""
    average: float
    highest: int
    lowest: int
    total: int
    trend: TrendDirection
    consistency: float  # 0-1

    @classmethod
    def empty(cls) -> "SleepStatistics":
        """Create an empty SleepStatistics instance with default values."""
        return cls(
            average=0.0,
            highest=0,
            lowest=0,
            total=0,
            trend=TrendDirection.STABLE,
            consistency=0.0,
        )


@dataclass
class SleepTrend:
    direction: TrendDirection
    strength: TrendStrength
    percentage: float
    description: str

    @classmethod
    def stable(cls, description: str) -> "SleepTrend":
        return cls(
            direction=TrendDirection.STABLE,
            strength=TrendStrength.WEAK,
            percentage=0.0,
            description=description,
        )


@dataclass
class SleepPattern:
    """Day-of-week breakdown."""
    weekday_average: float
    weekend_average: float
    best_day: str
    worst_day: str
    consistency_score: float
    patterns: dict[str, float]  # day name -> average (0 for days without entries)


@dataclass
class SleepStreaks:
    current: int
    longest: int
    type: StreakType

    @classmethod
    def empty(cls) -> "SleepStreaks":
        return cls(current=0, longest=0, type=StreakType.NEUTRAL)


@dataclass
class PeriodComparison:
    """Mean rating over trailing windows anchored at the evaluation instant."""
    this_week: float
    last_week: float
    this_month: float
    last_month: float


@dataclass
class SleepInsight:
    type: InsightType
    title: str
    description: str
    actionable: bool
    recommendation: Optional[str] = None


def _plain_values(items: list[tuple[str, object]]) -> dict:
    return {key: value.value if isinstance(value, Enum) else value for key, value in items}


@dataclass
class AdvancedAnalytics:
    """Everything the dashboard shows, computed in one pass."""
    overview: SleepStatistics
    trend: SleepTrend
    pattern: SleepPattern
    insights: list[SleepInsight] = field(default_factory=list)
    streaks: SleepStreaks = field(default_factory=SleepStreaks.empty)
    period_comparison: PeriodComparison = field(
        default_factory=lambda: PeriodComparison(0.0, 0.0, 0.0, 0.0)
    )

    def to_dict(self) -> dict:
        """JSON-ready nested dict with enum members replaced by their values."""
        return asdict(self, dict_factory=_plain_values)


def _consistency_score(values: np.ndarray) -> float:
    """Normalised inverse (population) standard deviation, clamped to [0, 1]."""
    if len(values) == 0:
        return 0.0
    score = max(0.0, 1 - float(np.std(values)) / CONSISTENCY_NORMALIZER)
    return float(round(score, 2))


def calculate_statistics(entries: Sequence[SleepEntry]) -> SleepStatistics:
    """Compute average, extremes, coarse trend and consistency of the ratings."""
    if not entries:
        return SleepStatistics.empty()

    ratings = entries_to_dataframe(entries)["rating"].to_numpy(dtype=np.float64)

    return SleepStatistics(
        average=float(round(ratings.mean(), 2)),
        highest=int(ratings.max()),
        lowest=int(ratings.min()),
        total=len(ratings),
        trend=calculate_trend(entries),
        consistency=_consistency_score(ratings),
    )


def calculate_trend(entries: Sequence[SleepEntry]) -> TrendDirection:
    """Classify the trend by the least-squares slope of rating over entry index.

    Entries are ordered by date first; x is the position (0..n-1), not the
    calendar distance, so gaps between entries don't flatten the slope.
    """
    if len(entries) < COARSE_TREND_MIN_ENTRIES:
        return TrendDirection.STABLE

    df = entries_to_dataframe(entries).sort_values("date", kind="stable")
    y = df["rating"].to_numpy(dtype=np.float64)
    n = len(y)
    x = np.arange(n, dtype=np.float64)

    sum_x = x.sum()
    sum_y = y.sum()
    sum_xy = (x * y).sum()
    sum_xx = (x * x).sum()
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)

    if slope > COARSE_TREND_SLOPE_THRESHOLD:
        return TrendDirection.IMPROVING
    if slope < -COARSE_TREND_SLOPE_THRESHOLD:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def _trend_strength(percentage: float) -> TrendStrength:
    if percentage > STRONG_TREND_PERCENTAGE:
        return TrendStrength.STRONG
    if percentage > MODERATE_TREND_PERCENTAGE:
        return TrendStrength.MODERATE
    return TrendStrength.WEAK


def analyze_trend(entries: Sequence[SleepEntry]) -> SleepTrend:
    """
    Compare the last two weeks of entries against the two weeks before.

    The recent window is the 14 most recent entries by date and the earlier
    window the (up to) 14 entries preceding them. Windows count entries,
    not calendar days.
    """
    if len(entries) < DETAILED_TREND_MIN_ENTRIES:
        return SleepTrend.stable("Necesitas más datos para análisis de tendencias")

    ratings = (
        entries_to_dataframe(entries)
        .sort_values("date", kind="stable")["rating"]
        .to_numpy(dtype=np.float64)
    )
    recent = ratings[-TREND_WINDOW_SIZE:]
    earlier = ratings[-2 * TREND_WINDOW_SIZE:-TREND_WINDOW_SIZE]

    if len(earlier) == 0:
        return SleepTrend.stable("Datos insuficientes para comparación")

    recent_avg = float(recent.mean())
    earlier_avg = float(earlier.mean())
    change = recent_avg - earlier_avg
    percentage = abs(change / earlier_avg) * 100

    if abs(change) < STABLE_CHANGE_THRESHOLD:
        direction = TrendDirection.STABLE
        strength = TrendStrength.WEAK
        description = f"Tu calidad de sueño se mantiene estable en {recent_avg:.1f}/10"
    elif change > 0:
        direction = TrendDirection.IMPROVING
        strength = _trend_strength(percentage)
        description = f"Tu sueño ha mejorado {percentage:.1f}% en las últimas 2 semanas"
    else:
        direction = TrendDirection.DECLINING
        strength = _trend_strength(percentage)
        description = f"Tu sueño ha empeorado {percentage:.1f}% en las últimas 2 semanas"

    return SleepTrend(
        direction=direction,
        strength=strength,
        percentage=float(round(percentage, 1)),
        description=description,
    )


def analyze_patterns(entries: Sequence[SleepEntry]) -> SleepPattern:
    """Break ratings down by day of week.

    Per-day sums and counts are 7-slot arrays indexed by `Weekday`.
    Days without entries report 0 and take no part in best/worst or
    consistency. Ties for best/worst go to the earliest day in
    Sunday..Saturday order.
    """
    df = entries_to_dataframe(entries)
    weekdays = ((df["date"].dt.dayofweek.to_numpy() + 1) % 7).astype(np.int64)
    ratings = df["rating"].to_numpy(dtype=np.float64)

    day_sums = np.bincount(weekdays, weights=ratings, minlength=len(Weekday))
    day_counts = np.bincount(weekdays, minlength=len(Weekday))
    day_averages = np.divide(
        day_sums, day_counts, out=np.zeros(len(Weekday)), where=day_counts > 0
    )

    patterns: dict[str, float] = {}
    best_day = worst_day = NO_DAY
    best_avg: Optional[float] = None
    worst_avg: Optional[float] = None

    for day in Weekday:
        name = DAY_NAMES[day]
        if day_counts[day] == 0:
            patterns[name] = 0.0
            continue

        avg = float(day_averages[day])
        patterns[name] = float(round(avg, 2))
        if best_avg is None or avg > best_avg:
            best_avg, best_day = avg, name
        if worst_avg is None or avg < worst_avg:
            worst_avg, worst_day = avg, name

    weekday_ratings = ratings[np.isin(weekdays, [int(day) for day in WORKING_DAYS])]
    weekend_ratings = ratings[np.isin(weekdays, [int(day) for day in WEEKEND_DAYS])]
    weekday_average = float(weekday_ratings.mean()) if len(weekday_ratings) > 0 else 0.0
    weekend_average = float(weekend_ratings.mean()) if len(weekend_ratings) > 0 else 0.0

    valid_averages = np.array([avg for avg in patterns.values() if avg > 0])

    return SleepPattern(
        weekday_average=float(round(weekday_average, 2)),
        weekend_average=float(round(weekend_average, 2)),
        best_day=best_day,
        worst_day=worst_day,
        consistency_score=_consistency_score(valid_averages),
        patterns=patterns,
    )


def classify_rating(rating: int) -> StreakType:
    if rating >= GOOD_RATING_THRESHOLD:
        return StreakType.GOOD
    if rating <= BAD_RATING_THRESHOLD:
        return StreakType.BAD
    return StreakType.NEUTRAL


def calculate_streaks(entries: Sequence[SleepEntry]) -> SleepStreaks:
    """
    Find the current and the longest run of same-classified nights.

    Entries are walked most recent first and consecutive entries of the
    same type are merged into runs. The current streak is the run that
    starts at the most recent entry, capped at the first
    CURRENT_STREAK_WINDOW positions; the longest streak spans the whole
    history.
    """
    if not entries:
        return SleepStreaks.empty()

    newest_first = sorted(entries, key=lambda e: e.date, reverse=True)
    types = [classify_rating(entry.rating) for entry in newest_first]
    runs = [(streak_type, len(list(group))) for streak_type, group in groupby(types)]

    current_type, current_run = runs[0]
    return SleepStreaks(
        current=min(current_run, CURRENT_STREAK_WINDOW),
        longest=max(length for _, length in runs),
        type=current_type,
    )


def compare_periods(entries: Sequence[SleepEntry], now: Optional[datetime] = None) -> PeriodComparison:
    """Mean rating over four trailing windows ending at `now`.

    Windows: this week [now-7d, now], last week [now-14d, now-7d),
    this month [now-30d, now], last month [now-60d, now-30d). They slide
    with `now` and ignore calendar week/month boundaries. Entry dates are
    taken at local midnight; an aware `now` is converted to local time.
    """
    if now is None:
        now = datetime.now()
    elif now.tzinfo is not None:
        now = now.astimezone().replace(tzinfo=None)
    anchor = pd.Timestamp(now)

    df = entries_to_dataframe(entries)
    dates = df["date"]
    ratings = df["rating"]

    this_week_start = anchor - timedelta(days=7)
    last_week_start = anchor - timedelta(days=14)
    this_month_start = anchor - timedelta(days=30)
    last_month_start = anchor - timedelta(days=60)

    def window_mean(mask: pd.Series) -> float:
        if not mask.any():
            return 0.0
        return float(round(ratings[mask].mean(), 2))

    return PeriodComparison(
        this_week=window_mean((dates >= this_week_start) & (dates <= anchor)),
        last_week=window_mean((dates >= last_week_start) & (dates < this_week_start)),
        this_month=window_mean((dates >= this_month_start) & (dates <= anchor)),
        last_month=window_mean((dates >= last_month_start) & (dates < this_month_start)),
    )


def generate_insights(
    entries: Sequence[SleepEntry],
    overview: SleepStatistics,
    trend: SleepTrend,
    pattern: SleepPattern,
) -> list[SleepInsight]:
    """Run the advisory rules in order. Rules are independent; any subset may fire."""
    insights: list[SleepInsight] = []

    # Average quality tier
    if overview.average >= EXCELLENT_AVERAGE:
        insights.append(SleepInsight(
            type=InsightType.POSITIVE,
            title="Excelente calidad de sueño",
            description=f"Tu promedio de {overview.average:g}/10 indica una excelente calidad de sueño.",
            actionable=False,
        ))
    elif overview.average >= MODERATE_AVERAGE:
        insights.append(SleepInsight(
            type=InsightType.INFO,
            title="Calidad de sueño moderada",
            description=f"Tu promedio de {overview.average:g}/10 es bueno, pero hay espacio para mejoras.",
            actionable=True,
            recommendation="Considera mantener una rutina de sueño más consistente",
        ))
    else:
        insights.append(SleepInsight(
            type=InsightType.WARNING,
            title="Calidad de sueño preocupante",
            description=f"Tu promedio de {overview.average:g}/10 indica problemas de sueño que necesitan atención.",
            actionable=True,
            recommendation="Considera consultar con un profesional de la salud",
        ))

    # Trend
    if trend.strength != TrendStrength.WEAK:
        if trend.direction == TrendDirection.IMPROVING:
            insights.append(SleepInsight(
                type=InsightType.POSITIVE,
                title="Tendencia positiva",
                description=trend.description,
                actionable=False,
            ))
        elif trend.direction == TrendDirection.DECLINING:
            insights.append(SleepInsight(
                type=InsightType.WARNING,
                title="Tendencia preocupante",
                description=trend.description,
                actionable=True,
                recommendation="Revisa qué cambios recientes podrían estar afectando tu sueño",
            ))

    # Consistency (the 0.5..0.8 band says nothing)
    if overview.consistency < LOW_CONSISTENCY:
        insights.append(SleepInsight(
            type=InsightType.WARNING,
            title="Sueño inconsistente",
            description="Tu calidad de sueño varía mucho día a día.",
            actionable=True,
            recommendation="Intenta mantener horarios regulares de sueño y rutinas nocturnas",
        ))
    elif overview.consistency > HIGH_CONSISTENCY:
        insights.append(SleepInsight(
            type=InsightType.POSITIVE,
            title="Sueño muy consistente",
            description="Mantienes una calidad de sueño muy estable.",
            actionable=False,
        ))

    # Weekday vs weekend. A side with no entries averages 0 and still counts toward the gap.
    weekend_gap = abs(pattern.weekend_average - pattern.weekday_average)
    if weekend_gap > WEEKEND_GAP_THRESHOLD:
        if pattern.weekend_average > pattern.weekday_average:
            insights.append(SleepInsight(
                type=InsightType.INFO,
                title="Mejor sueño en fines de semana",
                description=f"Duermes {weekend_gap:.1f} puntos mejor los fines de semana.",
                actionable=True,
                recommendation="Trata de aplicar tus rutinas de fin de semana a los días laborables",
            ))
        else:
            insights.append(SleepInsight(
                type=InsightType.WARNING,
                title="Peor sueño en fines de semana",
                description=f"Tu sueño empeora {weekend_gap:.1f} puntos los fines de semana.",
                actionable=True,
                recommendation="Mantén horarios regulares incluso los fines de semana",
            ))

    # Recent week dip: the last 7 entries in the order given, not re-sorted
    if len(entries) >= RECENT_WEEK_SIZE:
        recent_avg = float(np.mean([entry.rating for entry in entries[-RECENT_WEEK_SIZE:]]))
        if recent_avg < overview.average - RECENT_WEEK_DIP:
            insights.append(SleepInsight(
                type=InsightType.WARNING,
                title="Semana difícil",
                description="Tu sueño esta semana ha sido peor que tu promedio general.",
                actionable=True,
                recommendation="Identifica qué factores podrían estar afectando tu sueño recientemente",
            ))

    return insights


def generate_advanced_analytics(
    entries: Sequence[SleepEntry],
    now: Optional[datetime] = None,
) -> AdvancedAnalytics:
    """Compute the full dashboard aggregate.

    Order: statistics, detailed trend, pattern, insights (which read the
    first three), streaks, period comparison.

    Args:
        entries: All entries of one user. Pass them oldest first so the
            recent-week insight looks at the latest nights.
        now: Evaluation instant for the period comparison, defaults to
            the current local time.
    """
    overview = calculate_statistics(entries)
    trend = analyze_trend(entries)
    pattern = analyze_patterns(entries)
    insights = generate_insights(entries, overview, trend, pattern)
    streaks = calculate_streaks(entries)
    period_comparison = compare_periods(entries, now)

    return AdvancedAnalytics(
        overview=overview,
        trend=trend,
        pattern=pattern,
        insights=insights,
        streaks=streaks,
        period_comparison=period_comparison,
    )
