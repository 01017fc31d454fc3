import math
import pandas as pd
import numpy as np
from typing import Optional, Dict, Any

from config import Config
from churn_scoring_service import ChurnScoringService
from models import WhatIfScenario, WhatIfResult, RiskCategory


class WhatIfSimulator:
    """Estimates the churn impact of retention scenarios"""

    def __init__(self, scoring_service: Optional[ChurnScoringService] = None):
        self.config = Config()
        self.scoring_service = scoring_service or ChurnScoringService()

    def baseline_churn_rate(self, df: pd.DataFrame) -> float:
        """Observed churn rate, or expected churn from probabilities for unlabeled data"""
        if df.empty:
            return 0.0
        label_col = self.config.LABEL_COLUMN
        if label_col in df.columns and df[label_col].notna().all():
            return float(df[label_col].astype(int).mean() * 100)
        prob_col = self.config.get_column('churn_probability')
        if prob_col in df.columns:
            return float(df[prob_col].mean() * 100)
        raise ValueError("Population has neither churn labels nor churn probabilities. Score it first.")

    def churn_reduction(self, scenario: WhatIfScenario) -> float:
        """Percentage points of churn removed by a scenario (negative when it worsens)"""
        weights = self.config.WHAT_IF_WEIGHTS
        reduction = 0.0
        reduction += scenario.streaming_change * weights['streaming']
        reduction -= scenario.skip_rate_change * weights['skip_rate']
        reduction += scenario.login_frequency_change * weights['login_frequency']
        if scenario.subscription_upgrade:
            reduction += weights['subscription'] * 100 * self.config.PREMIUM_SHARE
        return reduction

    def simulate(self, df: pd.DataFrame, scenario: WhatIfScenario) -> WhatIfResult:
        baseline = self.baseline_churn_rate(df)
        reduction = self.churn_reduction(scenario)
        risk_col = self.config.get_column('risk_category')
        high_risk = int((df[risk_col] == RiskCategory.HIGH.value).sum()) if risk_col in df.columns else 0

        # revenue follows the signed estimate; the retained count never goes below zero
        retained_estimate = math.floor(reduction / 100 * len(df) + 0.5)
        users_retained = max(0, retained_estimate)
        return WhatIfResult(
            baseline_churn_rate=round(baseline, 1),
            high_risk_count=high_risk,
            churn_reduction=round(min(reduction, baseline), 1),
            new_churn_rate=round(max(0.0, baseline - reduction), 1),
            users_retained=users_retained,
            revenue_impact=round(retained_estimate * self.config.ARPU, 2),
            message=self.insight_message(scenario),
        )

    @staticmethod
    def insight_message(scenario: WhatIfScenario) -> str:
        insights = []
        if scenario.streaming_change > 0:
            insights.append(f"Increasing engagement by {scenario.streaming_change:g}% "
                            f"through personalized playlists and recommendations")
        if scenario.skip_rate_change < 0:
            insights.append(f"Improving music matching to reduce skip rate by {abs(scenario.skip_rate_change):g}%")
        if scenario.login_frequency_change > 0:
            insights.append(f"Boosting daily active usage by {scenario.login_frequency_change:g}% "
                            f"with push notifications and daily mixes")
        if scenario.subscription_upgrade:
            insights.append("Converting free users to Premium with targeted upgrade campaigns")

        if not insights:
            return "Adjust the sliders to simulate retention strategies and see their potential impact on churn."
        return ". ".join(insights) + "."

    def apply_scenario(self, df: pd.DataFrame, scenario: WhatIfScenario) -> pd.DataFrame:
        """Users dataframe with the scenario's behavior changes applied"""
        adjusted = df.copy()

        listening = adjusted['avg_listening_hours_per_week'] * (1 + scenario.streaming_change / 100)
        adjusted['avg_listening_hours_per_week'] = listening.clip(lower=0).round(1)

        for column, change in [('songs_skipped_per_week', scenario.skip_rate_change),
                               ('login_frequency_per_week', scenario.login_frequency_change)]:
            values = np.floor(adjusted[column] * (1 + change / 100) + 0.5)
            adjusted[column] = values.clip(lower=0).astype(int)

        if scenario.subscription_upgrade:
            free_mask = adjusted['subscription_type'] == 'Free'
            adjusted.loc[free_mask, 'subscription_type'] = 'Premium'
            adjusted.loc[free_mask, 'monthly_spend_usd'] = adjusted.loc[free_mask, 'monthly_spend_usd'].clip(
                lower=self.config.PREMIUM_PRICE)
        return adjusted

    def rescore_scenario(self, df: pd.DataFrame, scenario: WhatIfScenario) -> Dict[str, Any]:
        """
        Re-score every user under a scenario with the scoring heuristic

        Returns:
            Dictionary with the re-scored dataframe and before/after means
            and high-risk counts
        """
        prob_col = self.config.get_column('churn_probability')
        risk_col = self.config.get_column('risk_category')

        before = self.scoring_service.score_dataframe(df)
        after = self.scoring_service.score_dataframe(self.apply_scenario(df, scenario))

        def _mean(frame):
            return round(float(frame[prob_col].mean()), 4) if not frame.empty else 0.0

        return {
            'scored': after,
            'mean_probability_before': _mean(before),
            'mean_probability_after': _mean(after),
            'high_risk_before': int((before[risk_col] == RiskCategory.HIGH.value).sum()),
            'high_risk_after': int((after[risk_col] == RiskCategory.HIGH.value).sum()),
        }
