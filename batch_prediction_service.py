import pandas as pd
from typing import Optional, Dict, Any, Mapping

from config import Config
from data_processor import DataProcessor
from churn_scoring_service import ChurnScoringService
from models import PredictionResult, BatchPrediction, RiskCategory


class BatchPredictionService:
    """Service for single-user and bulk churn predictions"""

    def __init__(self,
                 scoring_service: Optional[ChurnScoringService] = None,
                 data_processor: Optional[DataProcessor] = None,
                 max_batch_size: Optional[int] = None):
        self.config = Config()
        self.scoring_service = scoring_service or ChurnScoringService()
        self.data_processor = data_processor or DataProcessor()
        self.max_batch_size = self.config.MAX_BATCH_SIZE if max_batch_size is None else max_batch_size
        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be at least 1, got {self.max_batch_size}")

    def predict_single(self, fields: Mapping[str, Any]) -> PredictionResult:
        """
        Predict churn for operator-entered form values

        Args:
            fields: Upload-schema column names to raw values; user_id and
                churn are optional

        Returns:
            PredictionResult with per-feature contributions
        """
        record = self.data_processor.parse_record(fields)
        contributions = self.scoring_service.explain(record)
        probability = self.scoring_service.score(record)

        return PredictionResult(
            user_id=record.user_id,
            churn_probability=probability,
            risk_category=self.scoring_service.classify(probability),
            record=record,
            contributions=contributions,
        )

    def predict_batch(self, df: pd.DataFrame, labeled: bool = False) -> BatchPrediction:
        """
        Score and classify an externally parsed collection

        Every row is validated before anything is scored; a single bad field
        fails the whole batch with the complete violation list. Only the
        first max_batch_size rows are scored.

        Raises:
            SchemaMismatch: required columns are absent
            MalformedRecord: any row fails coercion
        """
        self.data_processor.validate_columns(df, labeled)
        users_df = self.data_processor.validate_dataframe(df, labeled)

        total_rows = len(users_df)
        if total_rows > self.max_batch_size:
            print(f"[batch] Truncated batch from {total_rows} to {self.max_batch_size} rows.")
            users_df = users_df.head(self.max_batch_size)

        scored_df = self.scoring_service.score_dataframe(users_df)
        return BatchPrediction(
            predictions=scored_df,
            risk_counts=self.count_by_risk(scored_df),
            total_rows=total_rows,
            processed_rows=len(scored_df),
        )

    def predict_file(self, source, labeled: bool = False) -> BatchPrediction:
        """Bulk prediction straight from a CSV path or buffer"""
        df = pd.read_csv(source, dtype=str, keep_default_na=False)
        df = self.data_processor._normalize_headers(df)
        return self.predict_batch(df, labeled=labeled)

    def count_by_risk(self, scored_df: pd.DataFrame) -> Dict[str, int]:
        counts = {category.value: 0 for category in RiskCategory}
        risk_col = self.config.get_column('risk_category')
        for label, count in scored_df[risk_col].value_counts().items():
            counts[label] = int(count)
        return counts
