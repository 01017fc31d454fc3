import math
import pandas as pd
from typing import Optional, Dict, Any, List, Mapping, Tuple, Iterable

from config import Config
from segment_analysis_service import churn_rate_pct
from models import (UserRecord, SubscriptionType, Violation, MalformedRecord,
                    SchemaMismatch, DatasetStats)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _coerce_number(value: Any) -> float:
    if _is_missing(value):
        raise ValueError("missing value")
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValueError(f"expected a number, got {value!r}")
    if not math.isfinite(number):
        raise ValueError(f"expected a finite number, got {value!r}")
    if number < 0:
        raise ValueError(f"must be non-negative, got {value!r}")
    return number


def _coerce_count(value: Any) -> int:
    number = _coerce_number(value)
    if not number.is_integer():
        raise ValueError(f"expected a whole number, got {value!r}")
    return int(number)


def _coerce_subscription(value: Any) -> SubscriptionType:
    if _is_missing(value):
        raise ValueError("missing value")
    if isinstance(value, SubscriptionType):
        return value
    text = str(value).strip().lower()
    for tier in SubscriptionType:
        if tier.value.lower() == text:
            return tier
    allowed = ", ".join(t.value for t in SubscriptionType)
    raise ValueError(f"unknown subscription type {value!r} (expected one of: {allowed})")


def _coerce_country(value: Any) -> str:
    if _is_missing(value):
        raise ValueError("missing value")
    return str(value).strip()


def _coerce_churn(value: Any) -> bool:
    flag = _coerce_count(value)
    if flag not in (0, 1):
        raise ValueError(f"churn must be 0 or 1, got {value!r}")
    return bool(flag)


class DataProcessor:
    """Handles loading, validation, and preprocessing of user data"""

    # upload column -> (record field, coercion)
    FIELD_PARSERS = {
        "user_id": ("user_id", _coerce_count),
        "subscription_type": ("subscription_type", _coerce_subscription),
        "age": ("age", _coerce_count),
        "country": ("country", _coerce_country),
        "avg_listening_hours_per_week": ("avg_listening_hours_per_week", _coerce_number),
        "login_frequency_per_week": ("login_frequency_per_week", _coerce_count),
        "songs_skipped_per_week": ("songs_skipped_per_week", _coerce_count),
        "playlists_created": ("playlists_created", _coerce_count),
        "days_since_last_login": ("days_since_last_login", _coerce_count),
        "monthly_spend_usd": ("monthly_spend", _coerce_number),
    }

    def __init__(self):
        self.config = Config()
        self._users_df: Optional[pd.DataFrame] = None

    def load_users(self, source, labeled: bool = True) -> pd.DataFrame:
        """
        Load and validate a users CSV

        Args:
            source: Path or file-like object readable by pandas
            labeled: Whether the churn column is required

        Returns:
            Normalized dataframe in upload-schema column order

        Raises:
            SchemaMismatch: required columns are absent
            MalformedRecord: any row fails coercion
        """
        df = pd.read_csv(source, dtype=str, keep_default_na=False)
        df = self._normalize_headers(df)
        self.validate_columns(df, labeled)

        df = self.validate_dataframe(df, labeled)
        self._users_df = df
        return df

    def _normalize_headers(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df.columns = [str(col).strip().lower() for col in df.columns]
        return df

    def validate_columns(self, df: pd.DataFrame, labeled: bool = True) -> None:
        """Validate that required columns exist"""
        required_columns = self.config.get_required_columns(labeled)
        missing_columns = [col for col in required_columns if col not in df.columns]
        if missing_columns:
            raise SchemaMismatch(missing_columns)

    def parse_row(self,
                  values: Mapping[str, Any],
                  row_index: int = 0,
                  labeled: bool = False,
                  require_id: bool = True) -> Tuple[Optional[UserRecord], List[Violation]]:
        """
        Coerce one row into a UserRecord

        Returns:
            Tuple of (record or None, list of violations)
        """
        fields: Dict[str, Any] = {}
        violations: List[Violation] = []

        for column, (field_name, coerce) in self.FIELD_PARSERS.items():
            if column == "user_id" and not require_id and _is_missing(values.get(column)):
                fields[field_name] = None
                continue
            if column not in values:
                violations.append(Violation(row_index, column, "missing column"))
                continue
            try:
                fields[field_name] = coerce(values[column])
            except ValueError as e:
                violations.append(Violation(row_index, column, str(e)))

        label_col = self.config.LABEL_COLUMN
        raw_churn = values.get(label_col)
        if labeled or not _is_missing(raw_churn):
            try:
                fields["churn"] = _coerce_churn(raw_churn)
            except ValueError as e:
                violations.append(Violation(row_index, label_col, str(e)))

        if violations:
            return None, violations
        return UserRecord(**fields), []

    def parse_record(self, values: Mapping[str, Any], labeled: bool = False) -> UserRecord:
        """Coerce operator-entered form values, raising on any violation"""
        record, violations = self.parse_row(values, 0, labeled=labeled, require_id=False)
        if violations:
            raise MalformedRecord(violations)
        return record

    def parse_records(self, df: pd.DataFrame, labeled: bool = True) -> List[UserRecord]:
        """
        Coerce every row, collecting violations across the whole frame

        Row numbers in violations are 0-based data row positions.
        """
        records: List[UserRecord] = []
        violations: List[Violation] = []
        seen_ids: Dict[int, int] = {}

        for position, (_, row) in enumerate(df.iterrows()):
            record, row_violations = self.parse_row(row, position, labeled=labeled)
            if row_violations:
                violations.extend(row_violations)
                continue
            if record.user_id in seen_ids:
                violations.append(Violation(
                    position, "user_id",
                    f"duplicate user_id {record.user_id} (first seen in row {seen_ids[record.user_id]})"))
                continue
            seen_ids[record.user_id] = position
            records.append(record)

        if violations:
            raise MalformedRecord(violations)
        return records

    def validate_dataframe(self, df: pd.DataFrame, labeled: bool = True) -> pd.DataFrame:
        """Validate a raw frame and return it normalized"""
        records = self.parse_records(df, labeled)
        return self.records_to_dataframe(records)

    def records_to_dataframe(self, records: Iterable[UserRecord]) -> pd.DataFrame:
        """Build a normalized users dataframe from records"""
        records = list(records)
        label_col = self.config.LABEL_COLUMN
        df = pd.DataFrame([r.to_row() for r in records], columns=self.config.EXPECTED_COLUMNS)

        if not any(r.is_labeled for r in records):
            return df.drop(columns=[label_col])

        df[label_col] = df[label_col].astype("Int64")
        return df

    def to_records(self, df: pd.DataFrame) -> List[UserRecord]:
        """Convert a normalized users dataframe back to records"""
        labeled = self.config.LABEL_COLUMN in df.columns and df[self.config.LABEL_COLUMN].notna().all()
        return self.parse_records(df, labeled=labeled)

    def sample_users(self, df: pd.DataFrame, sample_size: Optional[int] = None) -> pd.DataFrame:
        """Take every k-th row so the sample spans the whole file"""
        sample_size = self.config.SAMPLE_SIZE if sample_size is None else sample_size
        if sample_size < 1:
            raise ValueError(f"sample_size must be at least 1, got {sample_size}")
        if len(df) <= sample_size:
            return df

        step = max(1, len(df) // sample_size)
        sampled = df.iloc[::step].head(sample_size).reset_index(drop=True)
        print(f"[data] Sampled {len(sampled)} of {len(df)} rows (every {step}th row).")
        return sampled

    def compute_dataset_stats(self, df: pd.DataFrame) -> DatasetStats:
        """Summary statistics shown after an upload"""
        total = len(df)
        label_col = self.config.LABEL_COLUMN
        free_users = int((df['subscription_type'] == 'Free').sum()) if total else 0

        churned = int(df[label_col].fillna(0).astype(int).sum()) if total and label_col in df.columns else 0

        return DatasetStats(
            total_rows=total,
            columns=list(df.columns),
            churn_rate=churn_rate_pct(churned, total),
            free_users=free_users,
            premium_users=total - free_users,
            countries_count=int(df['country'].nunique()) if total else 0,
            age_min=int(df['age'].min()) if total else None,
            age_max=int(df['age'].max()) if total else None,
            avg_listening_hours=float(df['avg_listening_hours_per_week'].mean()) if total else 0.0,
        )

    def get_users_df(self) -> pd.DataFrame:
        """Get the processed users dataframe"""
        if self._users_df is None:
            raise ValueError("Users data not loaded. Call load_users() first.")
        return self._users_df
