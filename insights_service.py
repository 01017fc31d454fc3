import pandas as pd
from typing import List, Optional, Tuple

from config import Config
from models import Insight, RetentionAction, RiskCategory, SchemaMismatch


CHURN_DRIVER_ACTIONS = {
    'Inactivity': ('Send re-engagement email with personalized content', 'email'),
    'High Skip Rate': ('Curate improved personalized playlists', 'playlist'),
    'Low Engagement': ('Push notification with trending music', 'notification'),
    'Low Login Frequency': ('Weekly digest email with new releases', 'email'),
}


def get_churn_driver(row: pd.Series) -> str:
    """Dominant churn driver of a user, checked in order of severity"""
    if row['days_since_last_login'] > 30:
        return 'Inactivity'
    if row['songs_skipped_per_week'] > 50:
        return 'High Skip Rate'
    if row['avg_listening_hours_per_week'] < 5:
        return 'Low Engagement'
    if row['login_frequency_per_week'] < 2:
        return 'Low Login Frequency'
    if row['subscription_type'] == 'Free':
        return 'Free Tier'
    return 'Multiple Factors'


def get_recommended_action(driver: str, subscription: str) -> Tuple[str, str]:
    if driver in CHURN_DRIVER_ACTIONS:
        return CHURN_DRIVER_ACTIONS[driver]
    if driver == 'Free Tier':
        action = 'Offer Premium trial discount' if subscription == 'Free' else 'Loyalty reward'
        return action, 'discount'
    return 'Personalized retention outreach', 'email'


class InsightsService:
    """Service for narrative churn insights and retention action lists"""

    def __init__(self):
        self.config = Config()

    def generate_insights(self, df: pd.DataFrame) -> List[Insight]:
        """
        Compare churned and retained users and describe what stands out

        Requires a scored, labeled population. The overall churn-rate line
        is always included.
        """
        label_col = self.config.LABEL_COLUMN
        risk_col = self.config.get_column('risk_category')
        if df.empty:
            return []
        missing = [col for col in (label_col, risk_col) if col not in df.columns]
        if missing:
            raise SchemaMismatch(missing)

        total = len(df)
        churned_mask = df[label_col].astype(int) == 1
        churned, retained = df[churned_mask], df[~churned_mask]
        free, premium = df[df['subscription_type'] == 'Free'], df[df['subscription_type'] == 'Premium']

        churn_rate = churned_mask.mean() * 100
        free_rate = free[label_col].astype(int).mean() * 100 if len(free) else 0.0
        premium_rate = premium[label_col].astype(int).mean() * 100 if len(premium) else 0.0

        def _avg(frame, column):
            return frame[column].mean() if len(frame) else 0.0

        # churned vs retained comparisons need both groups
        comparable = len(churned) > 0 and len(retained) > 0

        insights = []

        high_risk = int((df[risk_col] == RiskCategory.HIGH.value).sum())
        high_risk_pct = high_risk / total * 100
        if high_risk_pct > 30:
            insights.append(Insight(
                'warning',
                f"{high_risk_pct:.1f}% of users are high-risk",
                f"{high_risk:,} users require immediate retention intervention. "
                f"Consider personalized outreach campaigns."))

        if free_rate > premium_rate * 1.5:
            overall_gain = (free_rate - premium_rate) * len(free) / total
            insights.append(Insight(
                'info',
                'Free tier shows higher churn',
                f"Free users churn at {free_rate:.1f}% vs {premium_rate:.1f}% for Premium. "
                f"Premium conversion could reduce overall churn by ~{overall_gain:.1f}%."))

        listening_churned = _avg(churned, 'avg_listening_hours_per_week')
        listening_retained = _avg(retained, 'avg_listening_hours_per_week')
        if comparable and listening_retained - listening_churned > 5:
            insights.append(Insight(
                'success',
                'Engagement strongly predicts retention',
                f"Retained users stream {listening_retained:.1f} hrs/week vs {listening_churned:.1f} hrs "
                f"for churned. Focus on increasing early engagement."))

        skips_churned = _avg(churned, 'songs_skipped_per_week')
        skips_retained = _avg(retained, 'songs_skipped_per_week')
        if comparable and skips_churned - skips_retained > 10:
            insights.append(Insight(
                'warning',
                'High skip rate correlates with churn',
                f"Churned users skip {skips_churned:.0f} songs/week vs {skips_retained:.0f} for retained. "
                f"Improve recommendation algorithms to reduce skips."))

        inactive_churned = _avg(churned, 'days_since_last_login')
        inactive_retained = _avg(retained, 'days_since_last_login')
        if comparable and inactive_churned > inactive_retained * 2:
            insights.append(Insight(
                'warning',
                'Inactivity is a strong churn predictor',
                f"Churned users were inactive for {inactive_churned:.0f} days on avg vs "
                f"{inactive_retained:.0f} for retained. Re-engagement emails after 14 days "
                f"of inactivity recommended."))

        above_benchmark = churn_rate > self.config.INDUSTRY_CHURN_BENCHMARK
        insights.append(Insight(
            'warning' if above_benchmark else 'info',
            f"Overall churn rate: {churn_rate:.1f}%",
            'This is above industry average (25-30%). Prioritize retention initiatives.'
            if above_benchmark else
            'This is within acceptable range. Focus on maintaining engagement.'))

        return insights

    def build_retention_actions(self, df: pd.DataFrame, limit: Optional[int] = None) -> List[RetentionAction]:
        """High and Medium risk users with their driver and next best action, High first"""
        limit = self.config.MAX_RETENTION_ACTIONS if limit is None else limit
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        risk_col = self.config.get_column('risk_category')
        if df.empty:
            return []
        if risk_col not in df.columns:
            raise SchemaMismatch([risk_col])

        at_risk = df[df[risk_col].isin([RiskCategory.HIGH.value, RiskCategory.MEDIUM.value])].head(limit)

        actions = []
        for _, row in at_risk.iterrows():
            driver = get_churn_driver(row)
            action, action_type = get_recommended_action(driver, row['subscription_type'])
            risk = RiskCategory(row[risk_col])
            actions.append(RetentionAction(
                user_id=int(row['user_id']),
                risk_level=risk,
                churn_driver=driver,
                recommended_action=action,
                action_type=action_type,
                priority=1 if risk == RiskCategory.HIGH else 2,
            ))

        return sorted(actions, key=lambda a: a.priority)

    @staticmethod
    def actions_to_dataframe(actions: List[RetentionAction]) -> pd.DataFrame:
        rows = [{
            'user_id': a.user_id,
            'risk_level': a.risk_level.value,
            'churn_driver': a.churn_driver,
            'recommended_action': a.recommended_action,
            'action_type': a.action_type,
            'priority': a.priority,
        } for a in actions]
        return pd.DataFrame(rows, columns=['user_id', 'risk_level', 'churn_driver',
                                           'recommended_action', 'action_type', 'priority'])
