#!/usr/bin/env python3
"""
Tests for the seeded synthetic user factory
"""

import pandas as pd
import pytest

from config import Config
from data_generator import generate_users
from data_processor import DataProcessor


def test_same_seed_same_population():
    pd.testing.assert_frame_equal(generate_users(300, seed=21), generate_users(300, seed=21))


def test_different_seeds_differ():
    assert not generate_users(300, seed=21).equals(generate_users(300, seed=22))


def test_schema_and_count():
    users = generate_users(250, seed=1)

    assert list(users.columns) == Config.EXPECTED_COLUMNS
    assert len(users) == 250
    assert users['user_id'].is_unique
    assert set(users['churn'].unique()) <= {0, 1}


def test_unlabeled_population():
    users = generate_users(50, seed=1, labeled=False)
    assert Config.LABEL_COLUMN not in users.columns


def test_generated_users_pass_validation():
    users = generate_users(400, seed=8)
    validated = DataProcessor().validate_dataframe(users)

    assert len(validated) == 400
    assert validated['age'].between(16, 65).all()
    assert (validated['monthly_spend_usd'] >= 0).all()


def test_default_count():
    assert len(generate_users(seed=3)) == Config.DEFAULT_SYNTHETIC_USERS


def test_empty_and_negative_counts():
    assert generate_users(0, seed=1).empty
    with pytest.raises(ValueError):
        generate_users(-1)


def test_free_users_churn_more():
    users = generate_users(4000, seed=42)
    rates = users.groupby('subscription_type')['churn'].mean()

    assert rates['Free'] > rates['Premium']
