from dataclasses import dataclass, field, asdict
from functools import total_ordering
from typing import Optional, List, Dict, Any
from enum import Enum

import pandas as pd


class SubscriptionType(Enum):
    """Enum for subscription tiers"""
    FREE = "Free"
    PREMIUM = "Premium"


@total_ordering
class RiskCategory(Enum):
    """Enum for risk categories, ordered Low < Medium < High"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return list(RiskCategory).index(self)

    def __lt__(self, other):
        if other.__class__ is self.__class__:
            return self.rank < other.rank
        return NotImplemented


class AtRiskDefinition(Enum):
    """Which users count towards a segment's at-risk total"""
    HIGH_RISK = "high_risk"
    CHURNED = "churned"


@dataclass(frozen=True)
class UserRecord:
    """Data class representing one observed or hypothetical user"""
    user_id: Optional[int]
    subscription_type: SubscriptionType
    age: int
    country: str
    avg_listening_hours_per_week: float
    login_frequency_per_week: int
    songs_skipped_per_week: int
    playlists_created: int
    days_since_last_login: int
    monthly_spend: float
    churn: Optional[bool] = None

    @property
    def is_labeled(self) -> bool:
        return self.churn is not None

    def to_row(self) -> Dict[str, Any]:
        """Row in upload-schema column names"""
        return {
            "user_id": self.user_id,
            "subscription_type": self.subscription_type.value,
            "age": self.age,
            "country": self.country,
            "avg_listening_hours_per_week": self.avg_listening_hours_per_week,
            "login_frequency_per_week": self.login_frequency_per_week,
            "songs_skipped_per_week": self.songs_skipped_per_week,
            "playlists_created": self.playlists_created,
            "days_since_last_login": self.days_since_last_login,
            "monthly_spend_usd": self.monthly_spend,
            "churn": None if self.churn is None else int(self.churn),
        }


@dataclass(frozen=True)
class ScoredUser:
    """A user record annotated with its churn probability and risk category"""
    record: UserRecord
    churn_probability: float
    risk_category: RiskCategory

    def to_row(self) -> Dict[str, Any]:
        row = self.record.to_row()
        row["churn_probability"] = self.churn_probability
        row["risk_category"] = self.risk_category.value
        return row


@dataclass
class Segment:
    """Data class for one aggregated population segment"""
    segment_label: str
    total_users: int
    at_risk_users: int
    churn_rate_pct: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Violation:
    """One field of one input row that failed validation"""
    row: int
    column: str
    reason: str

    def __str__(self) -> str:
        return f"row {self.row}, column '{self.column}': {self.reason}"


class MalformedRecord(ValueError):
    """Raised when one or more rows fail type coercion or range checks"""

    def __init__(self, violations: List[Violation]):
        self.violations = list(violations)
        preview = "; ".join(str(v) for v in self.violations[:5])
        more = f" (+{len(self.violations) - 5} more)" if len(self.violations) > 5 else ""
        super().__init__(f"{len(self.violations)} invalid field(s): {preview}{more}")


class SchemaMismatch(ValueError):
    """Raised when required columns are absent from a batch source"""

    def __init__(self, missing_columns: List[str]):
        self.missing_columns = list(missing_columns)
        super().__init__(f"Missing required columns: {self.missing_columns}")


@dataclass
class PredictionResult:
    """Data class for a single user prediction"""
    user_id: Optional[int]
    churn_probability: float
    risk_category: RiskCategory
    record: UserRecord
    contributions: Dict[str, float] = field(default_factory=dict)


@dataclass
class BatchPrediction:
    """Data class for a batch prediction run"""
    predictions: pd.DataFrame
    risk_counts: Dict[str, int]
    total_rows: int
    processed_rows: int

    @property
    def truncated(self) -> bool:
        return self.processed_rows < self.total_rows


@dataclass
class DatasetStats:
    """Summary of an uploaded dataset"""
    total_rows: int
    columns: List[str]
    churn_rate: float
    free_users: int
    premium_users: int
    countries_count: int
    age_min: Optional[int]
    age_max: Optional[int]
    avg_listening_hours: float


@dataclass
class Insight:
    """Data class for a generated churn insight"""
    kind: str  # 'warning', 'success' or 'info'
    title: str
    description: str


@dataclass
class RetentionAction:
    """Data class for a recommended retention action"""
    user_id: int
    risk_level: RiskCategory
    churn_driver: str
    recommended_action: str
    action_type: str
    priority: int


@dataclass
class WhatIfScenario:
    """Slider settings, in percent change"""
    streaming_change: float = 0.0
    skip_rate_change: float = 0.0
    login_frequency_change: float = 0.0
    subscription_upgrade: bool = False


@dataclass
class WhatIfResult:
    """Data class for simulated scenario impact"""
    baseline_churn_rate: float
    high_risk_count: int
    churn_reduction: float
    new_churn_rate: float
    users_retained: int
    revenue_impact: float
    message: str
