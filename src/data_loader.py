import csv

import pandas as pd

from config import DTYPE_MAPPING, INDEX_COLUMN, LABEL_COLUMN, NA_VALUES
from column_filter import DegenerateFilterError
from utils import setup_logger

logger = setup_logger('data_loader')


class MalformedInputError(IOError):
    """Raised when an input file is missing, unreadable or not valid CSV"""


def _read_header(file_path, na_values):
    return pd.read_csv(file_path, nrows=0, na_values=na_values).columns.tolist()


def _mismatched_rows(file_path, n_fields):
    """Line numbers of data rows whose field count differs from the header's"""
    mismatched = []
    with open(file_path, newline='', encoding='utf-8') as f:
        reader = csv.reader(f)
        rows = (row for row in reader if row)
        next(rows, None)
        for row in rows:
            if len(row) != n_fields:
                mismatched.append(reader.line_num)
    return mismatched


def load_data(file_path, is_train=True, label_col=LABEL_COLUMN, na_values=None,
              dtype_mapping=None):
    """
    Load a sensor-reading CSV file into a DataFrame

    Parameters:
    -----------
    file_path : str
        Path to a delimited text file with a header row
    is_train : bool
        Whether the file is a labeled training file (label column required)
    label_col : str
        Name of the outcome label column
    na_values : list, optional
        Strings read as missing values (defaults to config.NA_VALUES)
    dtype_mapping : dict, optional
        Column dtypes declared at load time (defaults to config.DTYPE_MAPPING).
        Entries for columns absent from the file are ignored.

    Returns:
    --------
    pandas.DataFrame
        The loaded table
    """
    if na_values is None:
        na_values = NA_VALUES
    if dtype_mapping is None:
        dtype_mapping = DTYPE_MAPPING

    logger.info(f"Loading data from {file_path}")

    try:
        header = _read_header(file_path, na_values)
        dtypes = {col: dtype for col, dtype in dtype_mapping.items() if col in header}
        df = pd.read_csv(
            file_path,
            dtype=dtypes,
            na_values=na_values,
            keep_default_na=True
        )
    except (OSError, ValueError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.error(f"Error loading data from {file_path}: {e}", exc_info=True)
        raise MalformedInputError(f"Could not read {file_path}: {e}") from e

    # pandas pads short rows with NaN instead of raising
    mismatched = _mismatched_rows(file_path, len(header))
    if mismatched:
        logger.error(f"{len(mismatched)} rows of {file_path} do not match the header "
                     f"({len(header)} fields), first at line {mismatched[0]}")
        raise MalformedInputError(
            f"Could not read {file_path}: line {mismatched[0]} does not have "
            f"{len(header)} fields"
        )

    # The row-number column is written without a header name
    if 'Unnamed: 0' in df.columns:
        df = df.rename(columns={'Unnamed: 0': INDEX_COLUMN})

    if is_train and label_col not in df.columns:
        logger.error(f"Label column '{label_col}' not found in {file_path}")
        raise DegenerateFilterError(f"Label column '{label_col}' not found in {file_path}")

    logger.info(f"Data shape: {df.shape}")

    missing_values = df.isnull().sum()
    missing_values = missing_values[missing_values > 0]
    if len(missing_values) > 0:
        logger.warning(f"{len(missing_values)} of {df.shape[1]} columns contain missing values")

    if is_train:
        logger.info(f"Class distribution: {dict(df[label_col].value_counts().sort_index())}")

    return df
