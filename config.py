from typing import Dict, Any, List, Tuple


class Config:
    """Centralized configuration for the churn risk analytics system"""

    # File paths
    USERS_FILE = "data/spotify_users.csv"
    EXPORT_BASENAME = "churn_risk"

    # Column names
    COLUMNS = {
        "user_id": "user_id",
        "subscription_type": "subscription_type",
        "age": "age",
        "country": "country",
        "listening_hours": "avg_listening_hours_per_week",
        "login_frequency": "login_frequency_per_week",
        "songs_skipped": "songs_skipped_per_week",
        "playlists_created": "playlists_created",
        "days_since_last_login": "days_since_last_login",
        "monthly_spend": "monthly_spend_usd",
        "churn": "churn",
        "churn_probability": "churn_probability",
        "risk_category": "risk_category",
    }

    # Upload schema, in file order. 'churn' is only required for labeled data.
    EXPECTED_COLUMNS = [
        "user_id", "subscription_type", "age", "country",
        "avg_listening_hours_per_week", "login_frequency_per_week",
        "songs_skipped_per_week", "playlists_created",
        "days_since_last_login", "monthly_spend_usd", "churn",
    ]
    LABEL_COLUMN = "churn"

    # Column -> kind used when coercing rows
    INTEGER_COLUMNS = [
        "user_id", "age", "login_frequency_per_week", "songs_skipped_per_week",
        "playlists_created", "days_since_last_login",
    ]
    FLOAT_COLUMNS = ["avg_listening_hours_per_week", "monthly_spend_usd"]

    # Scoring bands: feature -> (comparison, bound, contribution) checked in
    # order, first match wins; the trailing None bound is the fallback band.
    SCORING_BANDS = {
        "days_since_last_login": [(">", 60, 0.20), (">", 30, 0.14), (">", 14, 0.08), (None, None, 0.02)],
        "songs_skipped_per_week": [(">", 60, 0.18), (">", 40, 0.12), (">", 20, 0.06), (None, None, 0.02)],
        "avg_listening_hours_per_week": [("<", 5, 0.16), ("<", 15, 0.10), ("<", 25, 0.04), (None, None, 0.01)],
        "login_frequency_per_week": [("<", 2, 0.12), ("<", 5, 0.06), (None, None, 0.02)],
        "monthly_spend_usd": [("==", 0, 0.10), ("<", 5, 0.06), (None, None, 0.02)],
        "playlists_created": [("==", 0, 0.04), ("<", 5, 0.02), (None, None, 0.01)],
    }
    SUBSCRIPTION_CONTRIBUTION = {"Free": 0.08, "Premium": 0.02}
    AGE_EDGE_BOUNDS = (25, 55)
    AGE_EDGE_CONTRIBUTION = 0.02
    AGE_CORE_CONTRIBUTION = 0.01
    PROBABILITY_DECIMALS = 4

    # Jitter is off unless explicitly enabled
    ENABLE_JITTER = False
    JITTER_AMPLITUDE = 0.025

    # Risk thresholds on the probability scale
    LOW_RISK_MAX = 0.30
    MEDIUM_RISK_MAX = 0.60
    # Bounds of the Settings sliders (fractions)
    LOW_RISK_MAX_RANGE = (0.10, 0.50)
    MEDIUM_RISK_MAX_RANGE = (0.20, 0.80)

    # Deprecated additive risk score, 0-100+ scale
    LEGACY_HIGH_RISK_SCORE = 50
    LEGACY_MEDIUM_RISK_SCORE = 25

    # Segmentation
    AGE_GROUPS = [(25, "18-24"), (35, "25-34"), (45, "35-44"), (55, "45-54"), (None, "55+")]
    ENGAGEMENT_LEVELS = [
        (10, "Very Low (0-10h)"),
        (20, "Low (10-20h)"),
        (35, "Medium (20-35h)"),
        (50, "High (35-50h)"),
        (None, "Very High (50h+)"),
    ]
    SUBSCRIPTION_TYPES = ["Free", "Premium"]

    # Batch / dashboard sizing
    MAX_BATCH_SIZE = 100
    SAMPLE_SIZE = 10000
    PREVIEW_ROWS = 10
    TOP_COUNTRIES = 10
    MAX_RETENTION_ACTIONS = 100

    # Business constants
    ARPU = 9.99
    INDUSTRY_CHURN_BENCHMARK = 30.0

    # What-if weights (share of churn explained per driver)
    WHAT_IF_WEIGHTS = {
        "streaming": 0.18,
        "skip_rate": 0.20,
        "login_frequency": 0.14,
        "subscription": 0.08,
    }
    PREMIUM_SHARE = 0.5

    # Feature importance shown next to the score breakdown
    FEATURE_IMPORTANCE = [
        {"feature": "Days Since Last Login", "column": "days_since_last_login", "importance": 0.24,
         "description": "Days since last app usage"},
        {"feature": "Songs Skipped/Week", "column": "songs_skipped_per_week", "importance": 0.20,
         "description": "Weekly song skip frequency"},
        {"feature": "Listening Hours/Week", "column": "avg_listening_hours_per_week", "importance": 0.18,
         "description": "Average weekly listening time"},
        {"feature": "Login Frequency", "column": "login_frequency_per_week", "importance": 0.14,
         "description": "Weekly login frequency"},
        {"feature": "Monthly Spend", "column": "monthly_spend_usd", "importance": 0.10,
         "description": "Monthly spending in USD"},
        {"feature": "Subscription Type", "column": "subscription_type", "importance": 0.08,
         "description": "Free vs Premium subscription"},
        {"feature": "Playlists Created", "column": "playlists_created", "importance": 0.04,
         "description": "Number of user-created playlists"},
        {"feature": "Age", "column": "age", "importance": 0.02,
         "description": "User age demographic"},
    ]

    # Synthetic data
    DEFAULT_SEED = 42
    DEFAULT_SYNTHETIC_USERS = 5000
    COUNTRIES = ["US", "UK", "DE", "CA", "IN", "BR", "AU", "FR", "PK", "MX"]
    PREMIUM_PRICE = 9.99

    @classmethod
    def get_column(cls, key: str) -> str:
        """Get column name by key"""
        return cls.COLUMNS.get(key, key)

    @classmethod
    def get_required_columns(cls, labeled: bool = True) -> List[str]:
        """Columns an upload must carry"""
        if labeled:
            return list(cls.EXPECTED_COLUMNS)
        return [col for col in cls.EXPECTED_COLUMNS if col != cls.LABEL_COLUMN]

    @classmethod
    def get_scoring_bands(cls, feature: str) -> List[Tuple[Any, Any, float]]:
        """Get the ordered band list for a numeric feature"""
        if feature not in cls.SCORING_BANDS:
            raise KeyError(f"No scoring bands configured for {feature}")
        return cls.SCORING_BANDS[feature]

    @classmethod
    def get_age_group_labels(cls) -> List[str]:
        return [label for _, label in cls.AGE_GROUPS]

    @classmethod
    def get_engagement_labels(cls) -> List[str]:
        return [label for _, label in cls.ENGAGEMENT_LEVELS]

    @classmethod
    def get_feature_importance(cls) -> Dict[str, float]:
        """Feature column -> importance weight"""
        return {item["column"]: item["importance"] for item in cls.FEATURE_IMPORTANCE}
