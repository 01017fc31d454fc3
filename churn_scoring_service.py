import operator
import warnings
from typing import Optional, Dict, Any, Mapping

import numpy as np
import pandas as pd

from config import Config
from models import (UserRecord, ScoredUser, RiskCategory, SubscriptionType, Violation,
                    MalformedRecord, SchemaMismatch)


_COMPARATORS = {
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
}


def band_contribution(value: float, bands) -> float:
    """Return the contribution of the first band the value falls in"""
    if pd.isna(value):
        raise ValueError("Cannot band a missing value")
    for comparison, bound, contribution in bands:
        if comparison is None or _COMPARATORS[comparison](value, bound):
            return contribution
    raise ValueError(f"Band list has no fallback band: {bands}")


def _feature_problem(value: Any) -> str:
    """Why a raw feature value cannot be scored"""
    if value is None or (isinstance(value, str) and not value.strip()) or pd.isna(value):
        return "missing value"
    try:
        number = float(value)
    except (TypeError, ValueError):
        return f"expected a number, got {value!r}"
    if not np.isfinite(number):
        return f"expected a finite number, got {value!r}"
    return f"must be non-negative, got {value!r}"


def _subscription_problem(value: Any) -> str:
    return f"unknown subscription type {value!r}"


def feature_values(user: UserRecord) -> Dict[str, Any]:
    """Feature vector of a record, keyed by upload column name"""
    row = user.to_row()
    row.pop("churn", None)
    row.pop("user_id", None)
    return row


class RiskClassifier:
    """Maps a churn probability to a risk category"""

    def __init__(self, low_risk_max: Optional[float] = None, medium_risk_max: Optional[float] = None):
        self.config = Config()
        self.low_risk_max = self.config.LOW_RISK_MAX if low_risk_max is None else low_risk_max
        self.medium_risk_max = self.config.MEDIUM_RISK_MAX if medium_risk_max is None else medium_risk_max

        if not 0 < self.low_risk_max < self.medium_risk_max <= 1:
            raise ValueError(
                f"Risk thresholds must satisfy 0 < low < medium <= 1, "
                f"got low={self.low_risk_max}, medium={self.medium_risk_max}"
            )

    def classify(self, probability: float) -> RiskCategory:
        if probability >= self.medium_risk_max:
            return RiskCategory.HIGH
        if probability >= self.low_risk_max:
            return RiskCategory.MEDIUM
        return RiskCategory.LOW

    def classify_series(self, probabilities: pd.Series) -> pd.Series:
        """Vectorized classify, returning category labels"""
        labels = np.select(
            [probabilities >= self.medium_risk_max, probabilities >= self.low_risk_max],
            [RiskCategory.HIGH.value, RiskCategory.MEDIUM.value],
            default=RiskCategory.LOW.value,
        )
        return pd.Series(labels, index=probabilities.index, name=self.config.get_column('risk_category'))

    def get_description(self) -> str:
        return (f"Low < {self.low_risk_max:.0%} <= Medium < "
                f"{self.medium_risk_max:.0%} <= High")


class ChurnScoringService:
    """
    Scores users with the banded churn heuristic

    Every feature maps through its configured bands to a fixed contribution;
    contributions are summed and clamped to [0, 1]. Jitter is only applied
    when enabled, and then drawn from the injected generator so results
    stay reproducible for a given seed.
    """

    def __init__(self,
                 classifier: Optional[RiskClassifier] = None,
                 enable_jitter: Optional[bool] = None,
                 rng: Optional[np.random.Generator] = None):
        self.config = Config()
        self.classifier = classifier or RiskClassifier()
        self.enable_jitter = self.config.ENABLE_JITTER if enable_jitter is None else enable_jitter
        self.rng = rng if rng is not None else np.random.default_rng()

    def _contributions(self, values: Mapping[str, Any]) -> Dict[str, float]:
        contributions = {}
        for item in self.config.FEATURE_IMPORTANCE:
            column = item["column"]
            value = values[column]
            if column == "subscription_type":
                contributions[column] = self.config.SUBSCRIPTION_CONTRIBUTION[value]
            elif column == "age":
                young, old = self.config.AGE_EDGE_BOUNDS
                edge = value < young or value > old
                contributions[column] = (self.config.AGE_EDGE_CONTRIBUTION if edge
                                         else self.config.AGE_CORE_CONTRIBUTION)
            else:
                contributions[column] = band_contribution(value, self.config.get_scoring_bands(column))
        return contributions

    def _probability(self, contributions: Dict[str, float]) -> float:
        total = sum(contributions.values())
        if self.enable_jitter:
            amplitude = self.config.JITTER_AMPLITUDE
            total += self.rng.uniform(-amplitude, amplitude)
        total = min(1.0, max(0.0, total))
        return round(total, self.config.PROBABILITY_DECIMALS)

    def explain(self, user: UserRecord) -> Dict[str, float]:
        """Per-feature contribution to the score, in importance order"""
        return self._contributions(feature_values(user))

    def score(self, user: UserRecord) -> float:
        """Churn probability of a validated user record"""
        return self._probability(self.explain(user))

    def classify(self, probability: float) -> RiskCategory:
        return self.classifier.classify(probability)

    def score_user(self, user: UserRecord) -> ScoredUser:
        probability = self.score(user)
        return ScoredUser(record=user,
                          churn_probability=probability,
                          risk_category=self.classify(probability))

    def _validated_features(self, df: pd.DataFrame) -> pd.DataFrame:
        """Feature columns coerced to numbers, raising on any value the bands cannot score"""
        columns = [item["column"] for item in self.config.FEATURE_IMPORTANCE]
        missing_columns = [col for col in columns if col not in df.columns]
        if missing_columns:
            raise SchemaMismatch(missing_columns)

        features = df[columns].copy()
        violations = []
        for column in columns:
            raw = features[column]
            if column == "subscription_type":
                invalid = ~raw.isin(list(self.config.SUBSCRIPTION_CONTRIBUTION))
                describe = _subscription_problem
            else:
                numbers = pd.to_numeric(raw, errors="coerce").astype(float)
                invalid = ~np.isfinite(numbers) | (numbers < 0)
                describe = _feature_problem
                features[column] = numbers

            for position in np.flatnonzero(invalid.to_numpy()):
                violations.append(Violation(int(position), column, describe(raw.iloc[position])))

        if violations:
            # stable sort keeps feature order within a row
            raise MalformedRecord(sorted(violations, key=lambda v: v.row))
        return features

    def score_dataframe(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Score every row of a validated users dataframe

        Args:
            df: Dataframe in upload-schema column names, as returned by
                DataProcessor

        Returns:
            Copy of df with churn_probability and risk_category columns

        Raises:
            SchemaMismatch: a feature column is absent
            MalformedRecord: any feature value is missing, non-numeric,
                non-finite or negative
        """
        prob_col = self.config.get_column('churn_probability')
        risk_col = self.config.get_column('risk_category')

        df = df.copy()
        if df.empty:
            df[prob_col] = pd.Series(dtype=float)
            df[risk_col] = pd.Series(dtype=object)
            return df

        features = self._validated_features(df)
        df[prob_col] = features.apply(lambda row: self._probability(self._contributions(row)), axis=1).astype(float)
        df[risk_col] = self.classifier.classify_series(df[prob_col])
        return df


def legacy_risk_score(user: UserRecord) -> int:
    """Additive 0-100+ risk score used by the old labeled-data view"""
    score = 0

    if user.days_since_last_login > 60:
        score += 30
    elif user.days_since_last_login > 30:
        score += 20
    elif user.days_since_last_login > 14:
        score += 10

    if user.avg_listening_hours_per_week < 5:
        score += 25
    elif user.avg_listening_hours_per_week < 15:
        score += 15
    elif user.avg_listening_hours_per_week < 25:
        score += 5

    if user.songs_skipped_per_week > 60:
        score += 20
    elif user.songs_skipped_per_week > 40:
        score += 10

    if user.login_frequency_per_week < 2:
        score += 15
    elif user.login_frequency_per_week < 5:
        score += 5

    if user.subscription_type == SubscriptionType.FREE:
        score += 10

    if user.playlists_created == 0:
        score += 5

    return score


def legacy_risk_category(user: UserRecord) -> RiskCategory:
    """
    Deprecated risk rule: additive score with High forced for churned users.

    Kept only to compare old reports against the probability thresholds.
    """
    warnings.warn(
        "legacy_risk_category is deprecated; use ChurnScoringService.classify",
        DeprecationWarning,
        stacklevel=2,
    )
    if user.churn:
        return RiskCategory.HIGH

    score = legacy_risk_score(user)
    if score >= Config.LEGACY_HIGH_RISK_SCORE:
        return RiskCategory.HIGH
    if score >= Config.LEGACY_MEDIUM_RISK_SCORE:
        return RiskCategory.MEDIUM
    return RiskCategory.LOW
