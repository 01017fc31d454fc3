#!/usr/bin/env python3
"""
Test script for the filter tracking functionality
"""

import pandas as pd

from filters import FilterChain, RiskCategoryFilter, SubscriptionFilter, CountryFilter, SearchFilter
from models import RiskCategory, SubscriptionType


def create_test_data():
    """Create a small scored population for filter testing"""

    scored_data = {
        'user_id': [101, 102, 103, 104, 105, 106],
        'subscription_type': ['Free', 'Free', 'Premium', 'Free', 'Premium', 'Premium'],
        'age': [19, 33, 41, 27, 58, 36],
        'country': ['US', 'UK', 'US', 'DE', 'CA', 'US'],
        'avg_listening_hours_per_week': [2.0, 12.5, 30.0, 6.0, 22.0, 40.0],
        'login_frequency_per_week': [1, 3, 7, 2, 5, 9],
        'songs_skipped_per_week': [70, 45, 5, 61, 20, 8],
        'playlists_created': [0, 2, 8, 1, 4, 12],
        'days_since_last_login': [70, 20, 3, 45, 9, 1],
        'monthly_spend_usd': [0.0, 0.99, 9.99, 0.0, 4.99, 14.99],
        'churn_probability': [0.90, 0.45, 0.13, 0.72, 0.29, 0.11],
        'risk_category': ['High', 'Medium', 'Low', 'High', 'Low', 'Low'],
    }

    return pd.DataFrame(scored_data)


def test_filter_tracking():
    """Test the filter tracking functionality"""

    print("🧪 Testing Filter Tracking...")

    df = create_test_data()

    filter_chain = FilterChain()
    filter_chain.add_filter(SubscriptionFilter(SubscriptionType.FREE))  # Excludes 3 Premium rows
    filter_chain.add_filter(RiskCategoryFilter([RiskCategory.HIGH]))    # Excludes the Medium Free row

    filtered_df = filter_chain.apply(df)
    print(f"✅ Filters applied. Result: {len(filtered_df)} rows")

    assert list(filtered_df['user_id']) == [101, 104]

    filter_stats = filter_chain.get_filter_stats()
    summary_stats = filter_chain.get_summary_stats()

    assert filter_stats['Only include Free users'] == {
        'excluded': 3, 'included': 3, 'excluded_percentage': 50.0, 'included_percentage': 50.0,
    }
    assert filter_stats['Only include High risk users']['excluded'] == 1
    assert summary_stats == {
        'total_filters': 2, 'total_excluded': 4, 'total_included': 2, 'total_original': 6,
    }

    print("\n🎉 Filter tracking test completed!")


def test_filter_chain_methods():
    """Test all filter chain methods"""

    filter_chain = FilterChain()

    assert filter_chain.get_active_filters() == []
    assert filter_chain.get_filter_stats() == {}
    assert filter_chain.get_summary_stats() == {}

    df = create_test_data()
    assert filter_chain.apply(df) is df

    filter_chain.add_filter(CountryFilter(['US', 'UK']))
    assert filter_chain.get_active_filters() == ["Only include countries: UK, US"]
    assert len(filter_chain.apply(df)) == 4


def test_chain_stops_when_empty():
    filter_chain = FilterChain([
        CountryFilter(['FR']),
        SubscriptionFilter(SubscriptionType.PREMIUM),
    ])

    filtered_df = filter_chain.apply(create_test_data())

    assert filtered_df.empty
    assert list(filter_chain.get_filter_stats()) == ["Only include countries: FR"]


def test_search_filter():
    df = create_test_data()

    assert list(FilterChain([SearchFilter('103')]).apply(df)['user_id']) == [103]
    assert list(FilterChain([SearchFilter('de')]).apply(df)['user_id']) == [104]
    assert len(FilterChain([SearchFilter('  ')]).apply(df)) == len(df)


def test_filters_do_not_mutate_input():
    df = create_test_data()
    FilterChain([RiskCategoryFilter(['Low'])]).apply(df)

    assert len(df) == 6


if __name__ == "__main__":
    print("🚀 Starting Filter Tracking Tests...")
    print("=" * 60)

    test_filter_tracking()
    test_filter_chain_methods()

    print("\n" + "=" * 60)
    print("🎯 All filter tracking tests completed!")
