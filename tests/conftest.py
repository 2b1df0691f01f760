import numpy as np
import pandas as pd
import pytest

CLASSES = ['A', 'B', 'C', 'D', 'E']
USERS = ['adelmo', 'carlitos', 'charles', 'eurico', 'jeremy', 'pedro']
INFORMATIVE = ['roll_belt', 'pitch_forearm', 'accel_arm_x']
EXPECTED_FEATURES = ['user_name', 'roll_belt', 'pitch_forearm', 'accel_arm_x',
                     'gyros_dumbbell_y', 'magnet_belt_z']


def make_sensor_frame(n_per_class=40, seed=0, class_sizes=None):
    """
    Synthetic table shaped like the weight-lifting sensor export:
    bookkeeping columns, a few informative sensors, noise sensors,
    a constant column, a near-constant window flag and mostly-empty
    summary columns that are only filled on window rows.
    """
    rng = np.random.default_rng(seed)
    if class_sizes is None:
        class_sizes = [n_per_class] * len(CLASSES)

    labels = np.concatenate([[c] * size for c, size in zip(CLASSES, class_sizes)])
    labels = labels[rng.permutation(len(labels))]
    class_idx = np.array([CLASSES.index(c) for c in labels])
    n = len(labels)

    new_window = np.array(['no'] * n, dtype=object)
    new_window[::50] = 'yes'
    window_rows = new_window == 'yes'

    kurtosis = np.full(n, np.nan)
    kurtosis[window_rows] = rng.normal(size=window_rows.sum())

    df = pd.DataFrame({
        'X': np.arange(1, n + 1),
        'user_name': pd.Categorical([USERS[i % len(USERS)] for i in range(n)]),
        'raw_timestamp_part_1': 1322489600 + np.arange(n),
        'raw_timestamp_part_2': rng.integers(0, 999999, size=n),
        'cvtd_timestamp': ['28/11/2011 14:13'] * n,
        'new_window': pd.Categorical(new_window),
        'num_window': np.arange(n) // 4 + 1,
        'roll_belt': class_idx * 10.0 + rng.normal(scale=1.0, size=n),
        'pitch_forearm': -class_idx * 5.0 + rng.normal(scale=1.0, size=n),
        'accel_arm_x': class_idx * 3.0 + rng.normal(scale=1.0, size=n),
        'gyros_dumbbell_y': rng.normal(size=n),
        'magnet_belt_z': rng.normal(loc=-300, scale=20, size=n),
        'kurtosis_roll_belt': kurtosis,
        'max_roll_belt': np.where(window_rows, 20.0, np.nan),
        'amplitude_yaw_belt': np.zeros(n),
        'classe': pd.Categorical(labels, categories=CLASSES),
    })
    return df


def make_test_frame(train_df, n_rows=20, seed=1):
    """Unlabeled rows with the training schema plus a problem_id column"""
    test_df = train_df.drop(columns=['classe']).sample(n=n_rows, random_state=seed)
    test_df = test_df.reset_index(drop=True)
    test_df['problem_id'] = np.arange(1, n_rows + 1)
    return test_df


def write_export_csv(df, path):
    """Write like the raw export: unnamed row-number column, #DIV/0! in a summary column"""
    out = df.drop(columns=['X']).copy()
    out['kurtosis_yaw_belt'] = np.where(out['new_window'] == 'yes', '#DIV/0!', '')
    out.index = np.arange(1, len(out) + 1)
    out.to_csv(path, index=True)
    return path


@pytest.fixture
def sensor_df():
    return make_sensor_frame()


@pytest.fixture
def test_df(sensor_df):
    return make_test_frame(sensor_df)


@pytest.fixture
def train_csv(tmp_path, sensor_df):
    return str(write_export_csv(sensor_df, tmp_path / 'pml-training.csv'))


@pytest.fixture
def test_csv(tmp_path, test_df):
    return str(write_export_csv(test_df, tmp_path / 'pml-testing.csv'))


@pytest.fixture
def filtered_df(sensor_df):
    return sensor_df[EXPECTED_FEATURES + ['classe']].copy()
