#!/usr/bin/env python3
"""
Tests for segment aggregation
"""

import pandas as pd
import pytest

from config import Config
from models import AtRiskDefinition, SchemaMismatch
from segment_analysis_service import (SegmentAnalysisService, churn_rate_pct, get_age_group,
                                      get_engagement_level)


def create_test_data():
    """Five scored, labeled users across both tiers"""
    return pd.DataFrame({
        'user_id': [1, 2, 3, 4, 5],
        'subscription_type': ['Free', 'Free', 'Free', 'Premium', 'Premium'],
        'age': [19, 30, 30, 47, 61],
        'country': ['UK', 'US', 'US', 'DE', 'US'],
        'avg_listening_hours_per_week': [2.0, 12.0, 18.5, 40.0, 55.0],
        'churn': pd.array([1, 0, 1, 0, 0], dtype="Int64"),
        'churn_probability': [0.90, 0.20, 0.45, 0.10, 0.65],
        'risk_category': ['High', 'Low', 'Medium', 'Low', 'High'],
    })


@pytest.mark.parametrize("age, label", [(16, "18-24"), (24, "18-24"), (25, "25-34"), (44, "35-44"),
                                        (54, "45-54"), (55, "55+"), (80, "55+")])
def test_age_groups(age, label):
    assert get_age_group(age) == label


@pytest.mark.parametrize("hours, label", [(0, "Very Low (0-10h)"), (9.9, "Very Low (0-10h)"),
                                          (10, "Low (10-20h)"), (34.9, "Medium (20-35h)"),
                                          (35, "High (35-50h)"), (50, "Very High (50h+)")])
def test_engagement_levels(hours, label):
    assert get_engagement_level(hours) == label


def test_churn_rate_pct():
    assert churn_rate_pct(0, 0) == 0.0
    assert churn_rate_pct(1, 3) == 33.3
    assert churn_rate_pct(2, 3) == 66.7
    assert churn_rate_pct(4, 4) == 100.0


@pytest.mark.parametrize("at_risk, total, expected", [(1, 80, 1.3), (1, 400, 0.3), (1, 8, 12.5), (3, 16, 18.8)])
def test_churn_rate_rounds_half_up(at_risk, total, expected):
    assert churn_rate_pct(at_risk, total) == expected


def test_by_subscription_churned():
    segments = SegmentAnalysisService().by_subscription(create_test_data(), AtRiskDefinition.CHURNED)

    assert [s.segment_label for s in segments] == ['Free', 'Premium']
    assert [(s.total_users, s.at_risk_users, s.churn_rate_pct) for s in segments] == [
        (3, 2, 66.7), (2, 0, 0.0)]


def test_by_subscription_high_risk():
    segments = SegmentAnalysisService().by_subscription(create_test_data(), AtRiskDefinition.HIGH_RISK)

    assert [(s.total_users, s.at_risk_users, s.churn_rate_pct) for s in segments] == [
        (3, 1, 33.3), (2, 1, 50.0)]


def test_segment_totals_partition_population():
    df = create_test_data()
    all_segments = SegmentAnalysisService().compute_all_segments(df, AtRiskDefinition.CHURNED)

    assert set(all_segments) == {'subscription', 'age_group', 'country', 'engagement'}
    for segments in all_segments.values():
        assert sum(s.total_users for s in segments) == len(df)
        assert sum(s.at_risk_users for s in segments) == 2
        assert all(0 <= s.at_risk_users <= s.total_users for s in segments)


def test_fixed_order_is_zero_filled():
    segments = SegmentAnalysisService().by_age_group(create_test_data(), AtRiskDefinition.CHURNED)

    assert [s.segment_label for s in segments] == Config.get_age_group_labels()
    by_label = {s.segment_label: s for s in segments}
    assert by_label['25-34'].total_users == 2
    assert by_label['35-44'].total_users == 0
    assert by_label['35-44'].churn_rate_pct == 0.0


def test_first_appearance_order():
    segments = SegmentAnalysisService().aggregate(create_test_data(), 'country', AtRiskDefinition.CHURNED)
    assert [s.segment_label for s in segments] == ['UK', 'US', 'DE']


def test_by_country_sorted_by_size():
    segments = SegmentAnalysisService().by_country(create_test_data(), AtRiskDefinition.CHURNED, top_n=2)

    assert [s.segment_label for s in segments] == ['US', 'UK']
    assert segments[0].total_users == 3


def test_unknown_label_in_fixed_order():
    with pytest.raises(ValueError):
        SegmentAnalysisService().aggregate(create_test_data(), 'country', AtRiskDefinition.CHURNED,
                                           order=['US', 'UK'])


def test_empty_population():
    service = SegmentAnalysisService()
    empty = create_test_data().iloc[0:0]

    segments = service.by_engagement(empty, AtRiskDefinition.HIGH_RISK)
    assert len(segments) == len(Config.ENGAGEMENT_LEVELS)
    assert all(s.total_users == 0 and s.churn_rate_pct == 0.0 for s in segments)
    assert service.by_country(empty, AtRiskDefinition.HIGH_RISK) == []


def test_churned_requires_labels():
    df = create_test_data().drop(columns=['churn'])

    with pytest.raises(SchemaMismatch) as exc_info:
        SegmentAnalysisService().by_subscription(df, AtRiskDefinition.CHURNED)
    assert exc_info.value.missing_columns == ['churn']


def test_churned_rejects_partial_labels():
    df = create_test_data()
    df['churn'] = pd.array([1, None, 0, 0, 0], dtype="Int64")

    with pytest.raises(SchemaMismatch):
        SegmentAnalysisService().by_subscription(df, AtRiskDefinition.CHURNED)


def test_at_risk_definition_must_be_explicit():
    with pytest.raises(ValueError):
        SegmentAnalysisService().by_subscription(create_test_data(), 'churned')


def test_risk_distribution():
    service = SegmentAnalysisService()

    assert service.risk_distribution(create_test_data()) == {'Low': 2, 'Medium': 1, 'High': 2}
    only_low = create_test_data().iloc[[1, 3]]
    assert service.risk_distribution(only_low) == {'Low': 2, 'Medium': 0, 'High': 0}


def test_to_dataframe():
    segments = SegmentAnalysisService().by_subscription(create_test_data(), AtRiskDefinition.CHURNED)
    table = SegmentAnalysisService.to_dataframe(segments)

    assert list(table.columns) == ['segment_label', 'total_users', 'at_risk_users', 'churn_rate_pct']
    assert table['total_users'].sum() == 5
