#!/usr/bin/env python3
"""
Tests for the what-if retention simulator
"""

import pandas as pd
import pytest

from churn_scoring_service import ChurnScoringService
from data_generator import generate_users
from models import WhatIfScenario
from what_if_service import WhatIfSimulator


def create_test_data(churned=5, total=10):
    """Scored population with a known number of churned users"""
    users = generate_users(total, seed=5)
    users['churn'] = [1] * churned + [0] * (total - churned)
    return ChurnScoringService().score_dataframe(users)


def test_churn_reduction_weights():
    simulator = WhatIfSimulator()

    assert simulator.churn_reduction(WhatIfScenario()) == 0.0
    assert simulator.churn_reduction(WhatIfScenario(streaming_change=10)) == pytest.approx(1.8)
    assert simulator.churn_reduction(WhatIfScenario(skip_rate_change=-10)) == pytest.approx(2.0)
    assert simulator.churn_reduction(WhatIfScenario(login_frequency_change=10)) == pytest.approx(1.4)
    assert simulator.churn_reduction(WhatIfScenario(subscription_upgrade=True)) == pytest.approx(4.0)


def test_simulate():
    scenario = WhatIfScenario(streaming_change=10, skip_rate_change=-10,
                              login_frequency_change=10, subscription_upgrade=True)
    result = WhatIfSimulator().simulate(create_test_data(), scenario)

    assert result.baseline_churn_rate == 50.0
    assert result.churn_reduction == 9.2
    assert result.new_churn_rate == 40.8
    assert result.users_retained == 1
    assert result.revenue_impact == pytest.approx(9.99)
    assert "Premium" in result.message


def test_reduction_is_capped_at_baseline():
    scenario = WhatIfScenario(streaming_change=100, skip_rate_change=-50,
                              login_frequency_change=100, subscription_upgrade=True)
    result = WhatIfSimulator().simulate(create_test_data(churned=1), scenario)

    assert result.baseline_churn_rate == 10.0
    assert result.churn_reduction == 10.0
    assert result.new_churn_rate == 0.0


def test_worsening_scenario_retains_nobody():
    result = WhatIfSimulator().simulate(create_test_data(), WhatIfScenario(streaming_change=-50))

    assert result.churn_reduction == -9.0
    assert result.new_churn_rate == 59.0
    assert result.users_retained == 0
    assert result.revenue_impact == pytest.approx(-9.99)


def test_baseline_from_probabilities_when_unlabeled():
    scored = create_test_data().drop(columns=['churn'])
    baseline = WhatIfSimulator().baseline_churn_rate(scored)

    assert baseline == pytest.approx(scored['churn_probability'].mean() * 100)


def test_baseline_needs_labels_or_scores():
    with pytest.raises(ValueError):
        WhatIfSimulator().baseline_churn_rate(generate_users(5, seed=1, labeled=False))


def test_default_message():
    assert WhatIfSimulator.insight_message(WhatIfScenario()).startswith("Adjust the sliders")


def test_apply_scenario_upgrades_free_users():
    users = generate_users(50, seed=9)
    adjusted = WhatIfSimulator().apply_scenario(users, WhatIfScenario(subscription_upgrade=True))

    assert (adjusted['subscription_type'] == 'Premium').all()
    was_free = users['subscription_type'] == 'Free'
    assert (adjusted.loc[was_free, 'monthly_spend_usd'] >= 9.99).all()
    assert (users['subscription_type'] == 'Free').any()


def test_apply_scenario_keeps_counts_whole_and_non_negative():
    users = generate_users(50, seed=9)
    adjusted = WhatIfSimulator().apply_scenario(users, WhatIfScenario(skip_rate_change=-150,
                                                                      login_frequency_change=25))

    assert (adjusted['songs_skipped_per_week'] == 0).all()
    assert pd.api.types.is_integer_dtype(adjusted['login_frequency_per_week'])


def test_rescore_scenario_improves_scores():
    users = generate_users(200, seed=4)
    scenario = WhatIfScenario(streaming_change=30, skip_rate_change=-30,
                              login_frequency_change=30, subscription_upgrade=True)
    outcome = WhatIfSimulator().rescore_scenario(users, scenario)

    assert outcome['mean_probability_after'] <= outcome['mean_probability_before']
    assert outcome['high_risk_after'] <= outcome['high_risk_before']
    assert len(outcome['scored']) == 200
