from abc import ABC, abstractmethod
from typing import Optional, Dict, List
import pandas as pd

from config import Config
from models import RiskCategory, SubscriptionType


class Filter(ABC):
    """Abstract base class for all filters"""

    @abstractmethod
    def should_exclude(self, row: pd.Series) -> bool:
        """Return True if the row should be excluded"""
        pass

    def get_description(self) -> str:
        """Get a human-readable description of this filter"""
        return self.__class__.__name__


class RiskCategoryFilter(Filter):
    """Keep only users in the given risk categories"""

    def __init__(self, categories: List[RiskCategory]):
        self.config = Config()
        self.categories = [RiskCategory(c) for c in categories]

    def should_exclude(self, row: pd.Series) -> bool:
        risk = row.get(self.config.get_column('risk_category'))
        return risk not in [c.value for c in self.categories]

    def get_description(self) -> str:
        return f"Only include {', '.join(c.value for c in self.categories)} risk users"


class SubscriptionFilter(Filter):
    """Keep only users on one subscription tier"""

    def __init__(self, subscription_type: SubscriptionType):
        self.subscription_type = SubscriptionType(subscription_type)

    def should_exclude(self, row: pd.Series) -> bool:
        return row.get('subscription_type') != self.subscription_type.value

    def get_description(self) -> str:
        return f"Only include {self.subscription_type.value} users"


class CountryFilter(Filter):
    """Keep only users from the given countries"""

    def __init__(self, countries: List[str]):
        self.countries = set(countries)

    def should_exclude(self, row: pd.Series) -> bool:
        return row.get('country') not in self.countries

    def get_description(self) -> str:
        return f"Only include countries: {', '.join(sorted(self.countries))}"


class SearchFilter(Filter):
    """Match the query against user id or country"""

    def __init__(self, query: str):
        self.query = query.strip()

    def should_exclude(self, row: pd.Series) -> bool:
        if not self.query:
            return False
        if self.query in str(row.get('user_id', '')):
            return False
        return self.query.lower() not in str(row.get('country', '')).lower()

    def get_description(self) -> str:
        return f"Search: '{self.query}'"


class FilterChain:
    """Chain multiple filters together with row tracking"""

    def __init__(self, filters: Optional[List[Filter]] = None):
        self.filters: List[Filter] = list(filters or [])
        self.filter_stats: Dict[str, Dict[str, float]] = {}

    def add_filter(self, filter_obj: Filter) -> 'FilterChain':
        """Add a filter to the chain"""
        self.filters.append(filter_obj)
        return self

    def apply(self, df: pd.DataFrame) -> pd.DataFrame:
        """Apply all filters to the dataframe with detailed tracking"""
        self.filter_stats = {}
        if not self.filters or df.empty:
            return df

        df = df.copy()
        total_rows = len(df)

        for filter_obj in self.filters:
            filter_name = filter_obj.get_description()

            exclude_mask = df.apply(filter_obj.should_exclude, axis=1).astype(bool)
            excluded_count = int(exclude_mask.sum())
            df = df.loc[~exclude_mask].copy()
            included_count = len(df)

            self.filter_stats[filter_name] = {
                'excluded': excluded_count,
                'included': included_count,
                'excluded_percentage': round((excluded_count / total_rows) * 100, 1),
                'included_percentage': round((included_count / total_rows) * 100, 1)
            }

            if df.empty:
                break

        return df

    def get_active_filters(self) -> List[str]:
        """Get descriptions of all active filters"""
        return [f.get_description() for f in self.filters]

    def get_filter_stats(self) -> Dict[str, Dict[str, float]]:
        """Get detailed statistics for each filter"""
        return self.filter_stats

    def get_summary_stats(self) -> Dict[str, int]:
        """Get overall filtering summary"""
        if not self.filter_stats:
            return {}

        total_excluded = sum(stats['excluded'] for stats in self.filter_stats.values())
        total_included = list(self.filter_stats.values())[-1]['included']

        return {
            'total_filters': len(self.filters),
            'total_excluded': total_excluded,
            'total_included': total_included,
            'total_original': total_excluded + total_included
        }
