import pandas as pd

from config import LABEL_COLUMN
from utils import setup_logger

logger = setup_logger('eda')


def summarize_dataset(df: pd.DataFrame, label_col=LABEL_COLUMN, mostly_missing=0.9):
    """
    Log and return a text summary of a sensor table

    Columns are counted as complete (no missing values), mostly missing
    (missing share at or above mostly_missing) or partially missing.
    """
    missing_share = df.isnull().mean()

    summary = {
        'n_rows': int(df.shape[0]),
        'n_columns': int(df.shape[1]),
        'complete_columns': int((missing_share == 0).sum()),
        'mostly_missing_columns': int((missing_share >= mostly_missing).sum()),
    }
    summary['partially_missing_columns'] = (
        summary['n_columns'] - summary['complete_columns'] - summary['mostly_missing_columns']
    )

    logger.info(f"Data shape: {df.shape}")
    logger.info(f"Complete columns: {summary['complete_columns']}, "
                f"mostly missing: {summary['mostly_missing_columns']}, "
                f"partially missing: {summary['partially_missing_columns']}")

    if label_col in df.columns:
        counts = df[label_col].astype(str).value_counts().sort_index()
        summary['label_counts'] = {k: int(v) for k, v in counts.items()}
        summary['label_proportions'] = {k: float(v) / len(df) for k, v in counts.items()}
        logger.info(f"Label distribution: {summary['label_counts']}")

    return summary
