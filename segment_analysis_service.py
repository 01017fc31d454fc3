import math
import pandas as pd
from typing import Callable, Dict, List, Optional, Sequence, Union

from config import Config
from models import Segment, AtRiskDefinition, RiskCategory, SchemaMismatch


def get_age_group(age: float) -> str:
    """Age band label for an age in years"""
    for upper, label in Config.AGE_GROUPS:
        if upper is None or age < upper:
            return label


def get_engagement_level(hours: float) -> str:
    """Engagement band label for weekly listening hours"""
    for upper, label in Config.ENGAGEMENT_LEVELS:
        if upper is None or hours < upper:
            return label


def churn_rate_pct(at_risk: int, total: int) -> float:
    """Percentage rounded half up to one decimal; 0.0 for an empty group"""
    if total == 0:
        return 0.0
    return math.floor(at_risk / total * 100 * 10 + 0.5) / 10


class SegmentAnalysisService:
    """Service for rolling a scored population up into segments"""

    def __init__(self):
        self.config = Config()

    def _at_risk_mask(self, df: pd.DataFrame, at_risk: AtRiskDefinition) -> pd.Series:
        if not isinstance(at_risk, AtRiskDefinition):
            raise ValueError(f"at_risk must be an AtRiskDefinition, got {at_risk!r}")

        if at_risk == AtRiskDefinition.HIGH_RISK:
            risk_col = self.config.get_column('risk_category')
            if risk_col not in df.columns:
                raise SchemaMismatch([risk_col])
            return df[risk_col] == RiskCategory.HIGH.value

        label_col = self.config.LABEL_COLUMN
        if label_col not in df.columns or df[label_col].isna().any():
            raise SchemaMismatch([label_col])
        return df[label_col].astype(int) == 1

    def aggregate(self,
                  df: pd.DataFrame,
                  key: Union[str, Callable[[pd.Series], str]],
                  at_risk: AtRiskDefinition,
                  order: Optional[Sequence[str]] = None) -> List[Segment]:
        """
        Group a scored population and compute per-group churn rates

        Args:
            df: Scored users dataframe
            key: Column name, or a function mapping a row to its group label
            at_risk: Which users count as at risk
            order: Fixed label enumeration; every label is emitted, zero-filled
                when absent. Defaults to order of first appearance.

        Returns:
            List of Segment
        """
        if df.empty:
            return [Segment(label, 0, 0, 0.0) for label in (order or [])]

        if callable(key):
            labels = df.apply(key, axis=1)
        else:
            labels = df[key]
        labels = labels.astype(str)
        mask = self._at_risk_mask(df, at_risk)

        grouped = pd.DataFrame({'label': labels, 'at_risk': mask.astype(int)}).groupby('label', sort=False)
        totals = grouped.size()
        at_risk_counts = grouped['at_risk'].sum()

        if order is None:
            order = list(totals.index)
        else:
            unknown = [label for label in totals.index if label not in order]
            if unknown:
                raise ValueError(f"Group labels {unknown} not in the fixed order {list(order)}")

        segments = []
        for label in order:
            total = int(totals.get(label, 0))
            risky = int(at_risk_counts.get(label, 0))
            segments.append(Segment(label, total, risky, churn_rate_pct(risky, total)))
        return segments

    def by_subscription(self, df: pd.DataFrame, at_risk: AtRiskDefinition) -> List[Segment]:
        return self.aggregate(df, 'subscription_type', at_risk, order=self.config.SUBSCRIPTION_TYPES)

    def by_age_group(self, df: pd.DataFrame, at_risk: AtRiskDefinition) -> List[Segment]:
        return self.aggregate(df, lambda row: get_age_group(row['age']), at_risk,
                              order=self.config.get_age_group_labels())

    def by_engagement(self, df: pd.DataFrame, at_risk: AtRiskDefinition) -> List[Segment]:
        return self.aggregate(df, lambda row: get_engagement_level(row['avg_listening_hours_per_week']),
                              at_risk, order=self.config.get_engagement_labels())

    def by_country(self, df: pd.DataFrame, at_risk: AtRiskDefinition,
                   top_n: Optional[int] = None) -> List[Segment]:
        """Country segments, largest first"""
        segments = self.aggregate(df, 'country', at_risk)
        segments = sorted(segments, key=lambda s: s.total_users, reverse=True)
        if top_n is not None:
            segments = segments[:top_n]
        return segments

    def risk_distribution(self, df: pd.DataFrame) -> Dict[str, int]:
        """Users per risk category, always including all three"""
        distribution = {category.value: 0 for category in RiskCategory}
        if df.empty:
            return distribution

        risk_col = self.config.get_column('risk_category')
        if risk_col not in df.columns:
            raise SchemaMismatch([risk_col])
        for label, count in df[risk_col].value_counts().items():
            distribution[label] = int(count)
        return distribution

    def compute_all_segments(self, df: pd.DataFrame, at_risk: AtRiskDefinition) -> Dict[str, List[Segment]]:
        """All standard segmentations keyed by dimension name"""
        return {
            'subscription': self.by_subscription(df, at_risk),
            'age_group': self.by_age_group(df, at_risk),
            'country': self.by_country(df, at_risk),
            'engagement': self.by_engagement(df, at_risk),
        }

    @staticmethod
    def to_dataframe(segments: List[Segment]) -> pd.DataFrame:
        """Segments as a table with the aggregation output columns"""
        columns = ['segment_label', 'total_users', 'at_risk_users', 'churn_rate_pct']
        return pd.DataFrame([s.to_dict() for s in segments], columns=columns)
