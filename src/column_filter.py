import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.utils.validation import check_is_fitted

from config import DROP_PATTERN, FREQ_CUT, LABEL_COLUMN, UNIQUE_CUT
from utils import setup_logger

logger = setup_logger('column_filter')


class DegenerateFilterError(ValueError):
    """Raised when filtering leaves nothing to train on"""


def missing_value_mask(df: pd.DataFrame) -> pd.Series:
    """Keep-mask: False for columns holding any missing value or blank string"""
    missing = df.isnull().any()
    blank = pd.Series(False, index=df.columns)
    for col in df.columns:
        if not pd.api.types.is_numeric_dtype(df[col]):
            blank[col] = df[col].dropna().astype(str).str.strip().eq('').any()
    return ~(missing | blank)


def unlabeled_rows(labels: pd.Series) -> pd.Series:
    """True where the label is missing or a blank string"""
    return labels.isnull() | labels.astype(str).str.strip().eq('')


def _nzv_metrics(series: pd.Series):
    counts = series.dropna().value_counts()
    # categorical columns report unused categories with a zero count
    counts = counts[counts > 0]
    n_unique = len(counts)

    if n_unique <= 1:
        freq_ratio = 0.0
    else:
        freq_ratio = counts.iloc[0] / counts.iloc[1]

    percent_unique = 100.0 * n_unique / len(series) if len(series) else 0.0
    zero_var = n_unique <= 1
    return freq_ratio, percent_unique, zero_var


def near_zero_variance(df: pd.DataFrame, freq_cut=FREQ_CUT, unique_cut=UNIQUE_CUT) -> pd.DataFrame:
    """
    Near-zero-variance diagnostics, one row per column

    A column is flagged when it has a single distinct value, or when the
    ratio of the most common to the second most common value count exceeds
    freq_cut while the percentage of distinct values is at most unique_cut.

    Returns:
    --------
    pandas.DataFrame
        Columns freqRatio, percentUnique, zeroVar, nzv indexed by column name
    """
    rows = {col: _nzv_metrics(df[col]) for col in df.columns}
    metrics = pd.DataFrame.from_dict(
        rows, orient='index', columns=['freqRatio', 'percentUnique', 'zeroVar']
    )
    metrics = metrics.reindex(df.columns)
    metrics['zeroVar'] = metrics['zeroVar'].astype(bool)
    metrics['nzv'] = (
        ((metrics['freqRatio'] > freq_cut) & (metrics['percentUnique'] <= unique_cut))
        | metrics['zeroVar']
    )
    return metrics


def name_pattern_mask(columns, pattern=DROP_PATTERN) -> pd.Series:
    """Keep-mask: False for column names matching pattern anywhere"""
    columns = pd.Index([str(col) for col in columns])
    matched = columns.str.contains(pattern, regex=True)
    return pd.Series(~np.asarray(matched, dtype=bool), index=columns)


class ColumnFilter(BaseEstimator, TransformerMixin):
    """
    Drops uninformative predictor columns from a sensor table.
    Scikit-learn compatible transformer following the fit/transform pattern.

    Rules, applied in order:
      1. missing      - any missing value or blank string
      2. near_zero_variance - near-constant value distribution
      3. name_pattern - index, timestamp and window bookkeeping columns
    The label column is never dropped.
    """

    def __init__(self, label_col=LABEL_COLUMN, freq_cut=FREQ_CUT,
                 unique_cut=UNIQUE_CUT, drop_pattern=DROP_PATTERN):
        """
        Parameters:
        -----------
        label_col : str
            Outcome column, always kept
        freq_cut : float
            Most-common / second-most-common count ratio above which a column
            may be near-constant
        unique_cut : float
            Percentage of distinct values at or below which a column may be
            near-constant
        drop_pattern : str
            Regular expression matched against column names
        """
        self.label_col = label_col
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut
        self.drop_pattern = drop_pattern

    def fit(self, X, y=None):
        """
        Compute the keep-masks of all three rules

        Parameters:
        -----------
        X : pandas.DataFrame
            Labeled training table
        y : ignored

        Returns:
        --------
        self : ColumnFilter
        """
        if self.label_col not in X.columns:
            logger.error(f"Label column '{self.label_col}' not found")
            raise DegenerateFilterError(f"Label column '{self.label_col}' not found")

        unlabeled = unlabeled_rows(X[self.label_col])
        if unlabeled.any():
            logger.error(f"{int(unlabeled.sum())} rows have no '{self.label_col}' value")
            raise DegenerateFilterError(
                f"{int(unlabeled.sum())} rows have no '{self.label_col}' value"
            )

        predictors = X.drop(columns=[self.label_col])
        logger.info(f"Filtering {predictors.shape[1]} predictor columns")

        self.nzv_metrics_ = near_zero_variance(predictors, self.freq_cut, self.unique_cut)
        self.masks_ = {
            'missing': missing_value_mask(predictors),
            'near_zero_variance': ~self.nzv_metrics_['nzv'],
            'name_pattern': name_pattern_mask(predictors.columns, self.drop_pattern),
        }

        keep = pd.Series(True, index=predictors.columns)
        self.steps_ = [('input', int(keep.sum()))]
        self.dropped_ = {}
        for rule, mask in self.masks_.items():
            mask = mask.reindex(predictors.columns).astype(bool)
            self.dropped_[rule] = keep.index[keep & ~mask].tolist()
            keep &= mask
            self.steps_.append((rule, int(keep.sum())))
            logger.info(f"After {rule} rule: {int(keep.sum())} columns "
                        f"({len(self.dropped_[rule])} dropped)")

        self.feature_columns_ = keep.index[keep].tolist()
        if not self.feature_columns_:
            logger.error("All predictor columns were removed by filtering")
            raise DegenerateFilterError("All predictor columns were removed by filtering")

        logger.info(f"Retained features: {self.feature_columns_}")
        return self

    def transform(self, X):
        """
        Select the retained predictors (and the label, when present)

        Parameters:
        -----------
        X : pandas.DataFrame
            Training or test table

        Returns:
        --------
        pandas.DataFrame
            The filtered table
        """
        check_is_fitted(self, 'feature_columns_')

        missing_cols = [col for col in self.feature_columns_ if col not in X.columns]
        if missing_cols:
            logger.error(f"Input is missing retained columns: {missing_cols}")
            raise DegenerateFilterError(f"Input is missing retained columns: {missing_cols}")

        columns = list(self.feature_columns_)
        if self.label_col in X.columns:
            columns.append(self.label_col)

        logger.info(f"Filtered shape: ({X.shape[0]}, {len(columns)})")
        return X[columns].copy()
