"""
Default settings for the weight-lifting exercise classification pipeline.

Plain constants only; every function takes these as keyword defaults and
main.py exposes them on the command line.
"""

# -------------------------
# Data Settings
# -------------------------

TRAIN_FILE = 'data/pml-training.csv'
TEST_FILE = 'data/pml-testing.csv'

LABEL_COLUMN = 'classe'
ID_COLUMN = 'problem_id'
INDEX_COLUMN = 'X'

# "#DIV/0!" shows up in the summary columns of the raw export
NA_VALUES = ['NA', '', '#DIV/0!']

DTYPE_MAPPING = {
    'user_name': 'category',
    'raw_timestamp_part_1': 'int64',
    'raw_timestamp_part_2': 'int64',
    'cvtd_timestamp': 'object',
    'new_window': 'category',
    'num_window': 'int64',
    'problem_id': 'int64',
    LABEL_COLUMN: 'category',
}

# -------------------------
# Column Filter Settings
# -------------------------

# caret::nearZeroVar defaults
FREQ_CUT = 95 / 5
UNIQUE_CUT = 10

DROP_PATTERN = r'timestamp|X|num_window'

# -------------------------
# Model Settings
# -------------------------

TRAIN_FRACTION = 0.75
RANDOM_STATE = 42

RF_N_ESTIMATORS = 100
RF_JOBS = -1
# With few trees some rows are in every bootstrap sample and count as OOB errors,
# so the first points of the error curve run high
OOB_STEP = 10

TOP_N_FEATURES = 15

# -------------------------
# Output Settings
# -------------------------

MODEL_DIR = 'models'
RESULTS_DIR = 'results'
ANSWERS_DIR = 'answers'
