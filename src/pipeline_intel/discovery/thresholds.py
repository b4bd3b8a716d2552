"""Named thresholds for the pipeline scoring formulas.

Every constant the stage, performer, forecast and risk calculations compare
against lives here so the formulas read symbolically and can be tuned in one
place.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Stage aggregation
# ---------------------------------------------------------------------------

STAGE_DWELL_CAP_DAYS = 90
CLOSED_WON_CONVERSION = 100
CLOSED_LOST_CONVERSION = 0
MAX_RATE = 100

# ---------------------------------------------------------------------------
# Bottleneck scoring
# ---------------------------------------------------------------------------

DWELL_SEVERE_DAYS = 30
DWELL_HIGH_DAYS = 14
DWELL_ELEVATED_DAYS = 7

DWELL_SEVERE_POINTS = 30
DWELL_HIGH_POINTS = 20
DWELL_ELEVATED_POINTS = 10

CONVERSION_CRITICAL_PCT = 20
CONVERSION_WEAK_PCT = 40
CONVERSION_CRITICAL_POINTS = 40
CONVERSION_WEAK_POINTS = 20

PROSPECTING_DWELL_DAYS = 14
PROSPECTING_DWELL_POINTS = 15
NEGOTIATION_CONVERSION_PCT = 50
NEGOTIATION_CONVERSION_POINTS = 25

BOTTLENECK_REPORT_RISK = 40
BOTTLENECK_MEDIUM_RISK = 50
BOTTLENECK_HIGH_RISK = 70
PROSPECTING_ACTION_RISK = 50
NEGOTIATION_ACTION_RISK = 60
VELOCITY_BOTTLENECK_RISK = 50

# ---------------------------------------------------------------------------
# Performer ranking
# ---------------------------------------------------------------------------

EXCELLENT_WIN_RATE = 70
EXCELLENT_AVG_DEAL = 100_000
GOOD_WIN_RATE = 50
GOOD_AVG_DEAL = 50_000
NEEDS_IMPROVEMENT_WIN_RATE = 20
TOP_PERFORMER_LIMIT = 5

# ---------------------------------------------------------------------------
# Velocity
# ---------------------------------------------------------------------------

DEFAULT_TIME_TO_CLOSE_DAYS = 30
DEFAULT_SALES_CYCLE_DAYS = 45
DEFAULT_DEAL_CYCLE_DAYS = 60
CRITICAL_DEALS_PER_MONTH = 1
LOW_DEALS_PER_MONTH = 3
DAYS_PER_MONTH = 30

# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------

STAGE_FORECAST_PROBABILITY = {
    "PROSPECTING": 0.1,
    "QUALIFICATION": 0.2,
    "PROPOSAL": 0.4,
    "NEGOTIATION": 0.6,
    "FINAL_APPROVAL": 0.8,
    "CLOSED_WON": 1.0,
    "CLOSED_LOST": 0.0,
}
DEFAULT_FORECAST_PROBABILITY = 0.1

OPTIMISTIC_MULTIPLIER = 1.3
PESSIMISTIC_MULTIPLIER = 0.7
DEFAULT_HISTORICAL_CONVERSION = 0.3

PROJECTION_MONTHS = 6
PROJECTION_BASE_DIVISOR = 3
PROJECTION_VARIANCE = 0.1
PROJECTION_MONTHLY_GROWTH = 0.05
PROJECTION_CONFIDENCE_START = 0.9
PROJECTION_CONFIDENCE_DECAY = 0.1
PROJECTION_CONFIDENCE_FLOOR = 0.5

QUARTER_EARLY_STAGE_WEIGHT = 0.3
YEAR_QUARTERS = 4

CONFIDENT_PROBABILITY = 70
HIGH_CONFIDENCE_DEALS = 10
LOW_CONFIDENCE_DEALS = 3

ANOMALY_CHANGE_PCT = 50
ANOMALY_HIGH_CHANGE_PCT = 75

STRONG_PIPELINE_DEALS = 5
OVERDUE_FOLLOW_UP_FACTOR = 3
STUCK_DEAL_DAYS = 30
FORECAST_HIGH_VALUE_DEAL = 1_000_000

# ---------------------------------------------------------------------------
# Risk assessment
# ---------------------------------------------------------------------------

HIGH_VALUE_DEAL = 100_000
HIGH_VALUE_POINTS = 10
OVERDUE_OPPORTUNITY_POINTS = 15
OVERDUE_FOLLOW_UP_POINTS = 5
INACTIVE_CONTACT_POINTS = 2
INACTIVE_CONTACT_DAYS = 90
UNKNOWN_INTERACTION_DAYS = 999
MAX_RISK_SCORE = 100

RISK_CRITICAL = 70
RISK_HIGH = 50
RISK_MEDIUM = 30

LOW_PROBABILITY = 30
AT_RISK_DEAL_VALUE = 200_000
STAGNANT_PROSPECT_DAYS = 60
LONG_CYCLE_DAYS = 90
HIGH_RISK_MIN_FACTORS = 2
LOW_CONTACT_SCORE = 30
HIGH_PRIORITY_SCORE = 4

HEALTHY_PROBABILITY = 50
HEALTHY_CLOSE_HORIZON_DAYS = 30
LOW_HEALTH_SCORE = 50
MISSING_CLOSE_DATE_SHARE = 0.3

# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

LOW_STAGE_CONVERSION_PCT = 25
LOW_HISTORICAL_CONVERSION = 0.25
FORECAST_TARGET = 1_000_000
LOW_PIPELINE_PROBABILITY = 0.3
ON_HOLD_ALERT_COUNT = 5
HOT_DEAL_PROBABILITY = 70
WARM_DEAL_PROBABILITY = 50
IDLE_HOT_DEAL_DAYS = 7
IDLE_WARM_DEAL_DAYS = 14
IDLE_PROSPECT_DAYS = 30
STAGNANT_PROSPECT_SHARE = 0.2
STRONG_WIN_RATE = 60
WEAK_WIN_RATE = 30
EFFECTIVE_ACTIVITY_PCT = 75
IMMEDIATE_ACTION_LIMIT = 5
STRATEGIC_INSIGHT_LIMIT = 3

# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------

ACTIVE_CONTACT_DAYS = 30
RECENT_ACTIVITY_DAYS = 30
SENTIMENT_TREND_RATIO = 1.2
TOP_INFLUENCER_LIMIT = 10
