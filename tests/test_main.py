import glob
import json
import os

import pandas as pd
import pytest

from conftest import EXPECTED_FEATURES
from main import build_parser, main, run_full_pipeline


@pytest.fixture
def output_dirs(tmp_path):
    return {
        'model_dir': str(tmp_path / 'models'),
        'results_dir': str(tmp_path / 'results'),
        'answers_dir': str(tmp_path / 'answers'),
    }


def test_full_pipeline(train_csv, test_csv, output_dirs):
    info = run_full_pipeline(
        train_path=train_csv, test_path=test_csv, n_estimators=20, n_jobs=1,
        top_n=3, random_state=42, **output_dirs
    )

    assert info['train_samples'] == 200
    assert info['test_samples'] == 20
    assert info['feature_count'] == len(EXPECTED_FEATURES)
    assert len(info['reduced_features']) == 3
    assert set(info['metrics']) == {'full', 'reduced'}
    for metrics in info['metrics'].values():
        assert metrics['accuracy_pct'] > 90
        assert 0 <= metrics['oob_error'] <= 1
    assert isinstance(info['predictions_identical'], bool)

    counts = [count for _, count in info['filter_steps']]
    assert all(a >= b for a, b in zip(counts, counts[1:]))


def test_full_pipeline_outputs(train_csv, test_csv, output_dirs):
    run_full_pipeline(train_path=train_csv, test_path=test_csv, n_estimators=10, n_jobs=1,
                      top_n=3, write_answers=True, **output_dirs)

    results_dir = output_dirs['results_dir']
    experiments = glob.glob(os.path.join(results_dir, 'experiment_*.json'))
    assert len(experiments) == 1
    with open(experiments[0]) as f:
        assert 'metrics' in json.load(f)

    predictions = pd.read_csv(os.path.join(results_dir, 'test_predictions.csv'))
    assert predictions.columns.tolist() == ['problem_id', 'full', 'reduced', 'agree']
    assert len(os.listdir(output_dirs['answers_dir'])) == 20
    assert os.path.exists(os.path.join(output_dirs['model_dir'], 'reduced_model.pkl'))


def test_same_seed_same_results(train_csv, test_csv, tmp_path):
    runs = []
    for i in range(2):
        runs.append(run_full_pipeline(
            train_path=train_csv, test_path=test_csv, n_estimators=10, n_jobs=1, top_n=3,
            random_state=5, model_dir=str(tmp_path / f'm{i}'), results_dir=str(tmp_path / f'r{i}')
        ))

    assert runs[0]['metrics'] == runs[1]['metrics']
    assert runs[0]['reduced_features'] == runs[1]['reduced_features']


def test_cli_full_then_predict(train_csv, test_csv, output_dirs):
    common = ['--model-dir', output_dirs['model_dir'], '--output-dir', output_dirs['results_dir']]

    main(['--train', train_csv, '--test', test_csv, '--n-estimators', '10',
          '--n-jobs', '1', '--top-n', '3', '--seed', '1'] + common)
    output = main(['--mode', 'predict', '--test', test_csv, '--model', 'reduced_model.pkl'] + common)

    assert len(output) == 20
    assert os.path.exists(os.path.join(output_dirs['results_dir'], 'predictions.csv'))


def test_parser_defaults():
    args = build_parser().parse_args([])

    assert args.mode == 'full'
    assert args.train_fraction == 0.75
    assert args.top_n == 15
    assert not args.write_answers
