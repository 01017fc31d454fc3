#!/usr/bin/env python3
"""
End-to-end tests for the AnalysisManager pipeline
"""

import os

import pytest

from analysis_manager import AnalysisManager
from churn_scoring_service import RiskClassifier
from data_generator import generate_users
from filters import FilterChain, SubscriptionFilter
from models import AtRiskDefinition, SchemaMismatch, SubscriptionType


def test_full_pipeline():
    analyzer = (AnalysisManager()
                .generate_data(count=500, seed=7)
                .score_population()
                .compute_segment_analysis(at_risk=AtRiskDefinition.CHURNED))

    summary = analyzer.get_analysis_summary()
    assert summary['total_users'] == 500
    assert summary['filtered_users'] == 500
    assert sum(summary['risk_distribution'].values()) == 500
    assert summary['at_risk_definition'] == 'churned'
    assert summary['jitter_enabled'] is False
    assert summary['churned_users'] == int(generate_users(500, seed=7)['churn'].sum())

    for segments in analyzer.get_segments().values():
        assert sum(s.total_users for s in segments) == 500


def test_steps_must_run_in_order():
    analyzer = AnalysisManager()

    with pytest.raises(ValueError, match="Call load_data"):
        analyzer.score_population()
    with pytest.raises(ValueError, match="Call score_population"):
        analyzer.compute_segment_analysis(AtRiskDefinition.HIGH_RISK)
    with pytest.raises(ValueError, match="Call compute_segment_analysis"):
        analyzer.get_segments()


def test_filters_apply_before_segmentation():
    analyzer = (AnalysisManager(filters=[SubscriptionFilter(SubscriptionType.FREE)])
                .generate_data(count=300, seed=2)
                .score_population()
                .compute_segment_analysis(AtRiskDefinition.HIGH_RISK))

    filtered = analyzer.get_scored_users()
    assert (filtered['subscription_type'] == 'Free').all()
    assert len(analyzer.get_scored_users(filtered=False)) == 300

    premium = analyzer.get_segments('subscription')[1]
    assert (premium.segment_label, premium.total_users) == ('Premium', 0)

    filter_stats, summary_stats = analyzer.get_filter_statistics()
    assert summary_stats['total_included'] == len(filtered)
    assert summary_stats['total_original'] == 300


def test_changing_filters_or_thresholds_resets_results():
    analyzer = AnalysisManager().generate_data(count=100, seed=1).score_population()

    analyzer.set_filters(FilterChain([SubscriptionFilter('Premium')]))
    with pytest.raises(ValueError):
        analyzer.compute_segment_analysis(AtRiskDefinition.HIGH_RISK)

    analyzer.score_population().set_classifier(RiskClassifier(0.2, 0.4))
    with pytest.raises(ValueError):
        analyzer.get_scored_users()
    assert analyzer.get_analysis_summary()['risk_thresholds'] == "Low < 20% <= Medium < 40% <= High"


def test_sampling_large_population():
    analyzer = AnalysisManager(sample_size=100).generate_data(count=500, seed=3)
    assert len(analyzer.get_users()) == 100


def test_unlabeled_population_summary():
    analyzer = (AnalysisManager()
                .use_dataframe(generate_users(50, seed=4, labeled=False), labeled=False)
                .score_population())

    summary = analyzer.get_analysis_summary()
    assert summary['churned_users'] is None
    with pytest.raises(SchemaMismatch):
        analyzer.compute_segment_analysis(AtRiskDefinition.CHURNED)


def test_export_data(tmp_path):
    analyzer = (AnalysisManager()
                .generate_data(count=60, seed=5)
                .score_population()
                .compute_segment_analysis(AtRiskDefinition.HIGH_RISK))

    exported = analyzer.export_data(str(tmp_path / "run"))

    assert set(exported) == {'scored_users', 'segments_subscription', 'segments_age_group',
                             'segments_country', 'segments_engagement'}
    assert all(os.path.exists(path) for path in exported.values())
