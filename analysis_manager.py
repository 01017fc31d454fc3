from typing import Optional, Dict, List, Tuple
import pandas as pd

from config import Config
from data_processor import DataProcessor
from data_generator import generate_users
from churn_scoring_service import ChurnScoringService, RiskClassifier
from segment_analysis_service import SegmentAnalysisService, churn_rate_pct
from filters import FilterChain, Filter
from models import AtRiskDefinition, Segment, DatasetStats


class AnalysisManager:
    """
    Main orchestrator class for churn risk analysis

    This class coordinates all the components of the system:
    - Data loading and validation
    - Sampling
    - Scoring and risk classification
    - Filtering
    - Segment aggregation
    """

    def __init__(self, filters: Optional[List[Filter]] = None,
                 scoring_service: Optional[ChurnScoringService] = None,
                 sample_size: Optional[int] = None):

        self.config = Config()
        self.sample_size = self.config.SAMPLE_SIZE if sample_size is None else sample_size

        # Initialize services
        self.data_processor = DataProcessor()
        self.scoring_service = scoring_service or ChurnScoringService()
        self.segment_service = SegmentAnalysisService()
        self._filter_chain = FilterChain(filters)

        # Data storage
        self._users_df: Optional[pd.DataFrame] = None
        self._scored_df: Optional[pd.DataFrame] = None
        self._filtered_df: Optional[pd.DataFrame] = None

        # Analysis results
        self._segments: Optional[Dict[str, List[Segment]]] = None
        self._at_risk: Optional[AtRiskDefinition] = None

    def load_data(self, source=None, labeled: bool = True) -> 'AnalysisManager':
        """
        Load, validate and sample a users CSV

        Args:
            source: Path or buffer; Config.USERS_FILE when omitted
            labeled: Whether the churn column is required

        Returns:
            Self for method chaining
        """
        users_df = self.data_processor.load_users(source or self.config.USERS_FILE, labeled=labeled)
        self._users_df = self.data_processor.sample_users(users_df, self.sample_size)
        self._reset_results()
        return self

    def use_dataframe(self, df: pd.DataFrame, labeled: bool = True) -> 'AnalysisManager':
        """Validate and use an in-memory users dataframe"""
        self.data_processor.validate_columns(df, labeled)
        users_df = self.data_processor.validate_dataframe(df, labeled)
        self._users_df = self.data_processor.sample_users(users_df, self.sample_size)
        self._reset_results()
        return self

    def generate_data(self, count: Optional[int] = None, seed: Optional[int] = None) -> 'AnalysisManager':
        """Use a seeded synthetic population"""
        return self.use_dataframe(generate_users(count, seed))

    def _reset_results(self) -> None:
        self._scored_df = None
        self._filtered_df = None
        self._segments = None

    def set_filters(self, filter_chain: FilterChain) -> 'AnalysisManager':
        """Replace the filter chain; takes effect on the next score_population()"""
        self._filter_chain = filter_chain
        self._filtered_df = None
        self._segments = None
        return self

    def set_classifier(self, classifier: RiskClassifier) -> 'AnalysisManager':
        self.scoring_service.classifier = classifier
        self._reset_results()
        return self

    def score_population(self) -> 'AnalysisManager':
        """
        Score and classify every loaded user, then apply filters

        Returns:
            Self for method chaining
        """
        if self._users_df is None:
            raise ValueError("Must load data first. Call load_data() before this method.")

        self._scored_df = self.scoring_service.score_dataframe(self._users_df)
        self._filtered_df = self._filter_chain.apply(self._scored_df)
        return self

    def compute_segment_analysis(self, at_risk: AtRiskDefinition) -> 'AnalysisManager':
        """
        Compute all segmentations over the filtered population

        Args:
            at_risk: Which users count as at risk in every segment

        Returns:
            Self for method chaining
        """
        if self._filtered_df is None:
            raise ValueError("Must score population first. Call score_population() before this method.")

        self._segments = self.segment_service.compute_all_segments(self._filtered_df, at_risk)
        self._at_risk = at_risk
        return self

    def get_users(self) -> pd.DataFrame:
        if self._users_df is None:
            raise ValueError("Must load data first. Call load_data() before this method.")
        return self._users_df

    def get_scored_users(self, filtered: bool = True) -> pd.DataFrame:
        """Get the scored population, after filters by default"""
        if self._scored_df is None:
            raise ValueError("Must score population first. Call score_population() before this method.")
        return self._filtered_df if filtered else self._scored_df

    def get_segments(self, dimension: Optional[str] = None):
        """Get all segmentations, or the one for a single dimension"""
        if self._segments is None:
            raise ValueError("Must compute segment analysis first. "
                             "Call compute_segment_analysis() before this method.")
        if dimension is None:
            return self._segments
        return self._segments[dimension]

    def get_risk_distribution(self) -> Dict[str, int]:
        return self.segment_service.risk_distribution(self.get_scored_users())

    def get_dataset_stats(self) -> DatasetStats:
        return self.data_processor.compute_dataset_stats(self.get_users())

    def get_filter_statistics(self) -> Tuple[Dict, Dict]:
        """
        Get filter statistics showing how many rows are filtered vs included

        Returns:
            Tuple of (filter_stats, summary_stats)
        """
        if self._filter_chain is None:
            return {}, {}

        return (
            self._filter_chain.get_filter_stats(),
            self._filter_chain.get_summary_stats()
        )

    def get_analysis_summary(self) -> Dict:
        """Get comprehensive summary of the analysis"""
        summary = {
            'data_loaded': self._users_df is not None,
            'population_scored': self._scored_df is not None,
            'segments_computed': self._segments is not None,
            'total_users': len(self._users_df) if self._users_df is not None else 0,
            'active_filters': self._filter_chain.get_active_filters() if self._filter_chain else [],
            'risk_thresholds': self.scoring_service.classifier.get_description(),
            'jitter_enabled': self.scoring_service.enable_jitter,
        }

        if self._filtered_df is not None:
            scored = self._filtered_df
            label_col = self.config.LABEL_COLUMN
            prob_col = self.config.get_column('churn_probability')
            labeled = label_col in scored.columns and scored[label_col].notna().all()
            churned = int(scored[label_col].astype(int).sum()) if labeled else None

            summary.update({
                'filtered_users': len(scored),
                'risk_distribution': self.segment_service.risk_distribution(scored),
                'average_churn_probability': float(scored[prob_col].mean()) if len(scored) else 0.0,
                'churned_users': churned,
                'churn_rate': churn_rate_pct(churned, len(scored)) if churned is not None else 0.0,
            })

        if self._segments is not None:
            summary['at_risk_definition'] = self._at_risk.value

        return summary

    def export_data(self, base_filename: Optional[str] = None) -> Dict[str, str]:
        """
        Export analysis results to CSV files

        Args:
            base_filename: Base name for exported files

        Returns:
            Dictionary mapping data type to file path
        """
        if self._scored_df is None:
            raise ValueError("Must score population first. Call score_population() before this method.")

        base_filename = base_filename or self.config.EXPORT_BASENAME
        exported_files = {}

        filename = f"{base_filename}_scored_users.csv"
        self._filtered_df.to_csv(filename, index=False)
        exported_files['scored_users'] = filename

        if self._segments is not None:
            for dimension, segments in self._segments.items():
                filename = f"{base_filename}_segments_{dimension}.csv"
                self.segment_service.to_dataframe(segments).to_csv(filename, index=False)
                exported_files[f'segments_{dimension}'] = filename

        return exported_files
