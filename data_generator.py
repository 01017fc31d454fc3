"""
data_generator.py
=================
Simulates streaming-service user behavior in the upload schema.

The generator is a plain function of (count, seed): nothing is generated at
import time, and the same seed always yields the same frame. Churn labels are
drawn from the scoring heuristic so the synthetic population behaves like the
dashboards expect (inactive, skip-heavy Free users churn more).
"""

import numpy as np
import pandas as pd
from typing import Optional

from config import Config
from churn_scoring_service import ChurnScoringService


SUBSCRIPTION_W = [0.55, 0.45]          # Free, Premium
FREE_SPEND     = [0.0, 0.99, 2.99, 4.99]
FREE_SPEND_W   = [0.80, 0.08, 0.07, 0.05]
PREMIUM_SPEND  = [4.99, 9.99, 14.99]    # student, individual, family
PREMIUM_SPEND_W = [0.15, 0.65, 0.20]


def generate_users(count: Optional[int] = None,
                   seed: Optional[int] = None,
                   labeled: bool = True) -> pd.DataFrame:
    """
    Build a synthetic users dataframe

    Args:
        count: Number of users
        seed: Random seed; Config.DEFAULT_SEED when omitted
        labeled: Whether to draw a churn column

    Returns:
        Dataframe in upload-schema column order
    """
    config = Config()
    count = config.DEFAULT_SYNTHETIC_USERS if count is None else count
    seed = config.DEFAULT_SEED if seed is None else seed
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")

    rng = np.random.default_rng(seed)

    subscription = rng.choice(config.SUBSCRIPTION_TYPES, size=count, p=SUBSCRIPTION_W)
    is_premium = subscription == 'Premium'

    # Premium users engage more on every axis
    listening = rng.gamma(shape=2.0, scale=np.where(is_premium, 11.0, 7.0))
    login_freq = rng.poisson(np.where(is_premium, 6.0, 3.5))
    skips = rng.poisson(np.where(is_premium, 18.0, 32.0) * rng.uniform(0.3, 2.2, size=count))
    playlists = rng.poisson(np.where(is_premium, 6.0, 2.5))
    inactivity = rng.exponential(np.where(is_premium, 8.0, 20.0))

    spend = np.where(
        is_premium,
        rng.choice(PREMIUM_SPEND, size=count, p=PREMIUM_SPEND_W),
        rng.choice(FREE_SPEND, size=count, p=FREE_SPEND_W),
    )

    df = pd.DataFrame({
        'user_id': np.arange(1, count + 1),
        'subscription_type': subscription,
        'age': rng.integers(16, 66, size=count),
        'country': rng.choice(config.COUNTRIES, size=count),
        'avg_listening_hours_per_week': np.clip(listening, 0, 80).round(1),
        'login_frequency_per_week': np.clip(login_freq, 0, 21),
        'songs_skipped_per_week': np.clip(skips, 0, 150),
        'playlists_created': np.clip(playlists, 0, 50),
        'days_since_last_login': np.clip(inactivity, 0, 120).astype(int),
        'monthly_spend_usd': spend,
    })

    if labeled:
        scored = ChurnScoringService(enable_jitter=False).score_dataframe(df)
        df[config.LABEL_COLUMN] = (rng.random(count) < scored['churn_probability'].to_numpy()).astype(int)

    return df
