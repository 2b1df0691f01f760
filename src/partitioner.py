import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from config import LABEL_COLUMN, RANDOM_STATE, TRAIN_FRACTION
from utils import setup_logger

logger = setup_logger('partitioner')


class InsufficientDataError(ValueError):
    """Raised when a stratified split cannot be drawn from the data"""


def partition_data(df, label_col=LABEL_COLUMN, train_fraction=TRAIN_FRACTION,
                   random_state=RANDOM_STATE):
    """
    Stratified random split of row positions into training and validation sets

    Parameters:
    -----------
    df : pandas.DataFrame
        Labeled table
    label_col : str
        Column whose category proportions are preserved on both sides
    train_fraction : float
        Share of rows assigned to training, strictly between 0 and 1
    random_state : int
        Seed for the draw; the same seed gives the same split

    Returns:
    --------
    tuple
        (train_idx, valid_idx) sorted numpy arrays of row positions
    """
    if not 0 < train_fraction < 1:
        raise InsufficientDataError(f"train_fraction must be in (0, 1), got {train_fraction}")
    if label_col not in df.columns:
        raise InsufficientDataError(f"Label column '{label_col}' not found")

    unlabeled = df[label_col].isnull()
    if unlabeled.any():
        logger.error(f"{int(unlabeled.sum())} rows have no '{label_col}' value")
        raise InsufficientDataError(f"{int(unlabeled.sum())} rows have no '{label_col}' value")

    y = df[label_col].astype(str).to_numpy()
    counts = pd.Series(y).value_counts()
    too_small = counts[counts < 2]
    if len(too_small) > 0:
        logger.error(f"Categories with fewer than two rows: {dict(too_small)}")
        raise InsufficientDataError(f"Categories with fewer than two rows: {dict(too_small)}")

    logger.info(f"Partitioning {len(df)} rows with train_fraction={train_fraction}, "
                f"random_state={random_state}")

    positions = np.arange(len(df))
    try:
        train_idx, valid_idx = train_test_split(
            positions, train_size=train_fraction, stratify=y, random_state=random_state
        )
    except ValueError as e:
        logger.error(f"Stratified split failed: {e}", exc_info=True)
        raise InsufficientDataError(f"Stratified split failed: {e}") from e

    train_idx = np.sort(train_idx)
    valid_idx = np.sort(valid_idx)

    logger.info(f"Data split: train={len(train_idx)}, valid={len(valid_idx)}")
    logger.info(f"Class distribution in train: {dict(pd.Series(y[train_idx]).value_counts().sort_index())}")
    logger.info(f"Class distribution in valid: {dict(pd.Series(y[valid_idx]).value_counts().sort_index())}")

    return train_idx, valid_idx


def split_frame(df, train_idx, valid_idx):
    """Return the (training, validation) sub-tables for two position arrays"""
    return df.iloc[train_idx].copy(), df.iloc[valid_idx].copy()
