import os

import numpy as np
import pandas as pd
import pytest

from conftest import CLASSES, EXPECTED_FEATURES
from model_evaluation import ModelEvaluator
from train_model import ModelTrainer


class ConstantModel:
    """Predicts one label for every row"""

    def __init__(self, label, feature_columns):
        self.label = label
        self.feature_columns = feature_columns
        self.oob_error = 0.5

    def predict(self, X):
        return np.array([self.label] * len(X))


@pytest.fixture
def evaluator(tmp_path):
    return ModelEvaluator(results_dir=str(tmp_path / 'results'))


@pytest.fixture
def trained(tmp_path, filtered_df):
    trainer = ModelTrainer(model_dir=str(tmp_path / 'models'), results_dir=str(tmp_path / 'results'),
                           n_estimators=20, n_jobs=1, oob_step=10, random_state=0)
    return trainer.train(filtered_df, top_n=3, save=False)


def test_evaluate_model_metrics(evaluator, trained):
    model = trained['full']['model']
    valid_df = trained['full']['valid']

    result = evaluator.evaluate_model(model, valid_df[model.feature_columns], valid_df['classe'],
                                      model_name='full')
    metrics = result['metrics']

    assert metrics['accuracy_pct'] == pytest.approx(100 * metrics['accuracy'])
    assert metrics['misclassification_rate'] == pytest.approx(1 - metrics['accuracy'])
    assert metrics['oob_error'] == model.oob_error
    assert metrics['n_features'] == len(EXPECTED_FEATURES)
    assert metrics['n_valid'] == len(valid_df)
    assert metrics['accuracy'] > 0.9
    assert int(result['confusion_matrix'].to_numpy().sum()) == len(valid_df)


def test_accuracy_counts_matching_rows(evaluator, filtered_df):
    model = ConstantModel('A', EXPECTED_FEATURES)

    result = evaluator.evaluate_model(model, filtered_df, filtered_df['classe'], save=False)

    assert result['metrics']['accuracy'] == pytest.approx(0.2)
    assert result['metrics']['accuracy_pct'] == pytest.approx(20.0)


def test_metrics_are_appended(evaluator, filtered_df):
    model = ConstantModel('B', EXPECTED_FEATURES)

    evaluator.evaluate_model(model, filtered_df, filtered_df['classe'], model_name='first')
    evaluator.evaluate_model(model, filtered_df, filtered_df['classe'], model_name='second')

    metrics = pd.read_csv(os.path.join(evaluator.results_dir, 'model_metrics.csv'))
    assert metrics['model'].tolist() == ['first', 'second']


def test_identical_models_agree(evaluator, trained, test_df):
    model = trained['full']['model']

    comparison = evaluator.compare_predictions(model, model, test_df)

    assert comparison['identical']
    assert comparison['n_agree'] == comparison['n_rows'] == len(test_df)
    assert comparison['predictions']['agree'].all()


def test_models_fit_on_same_data_agree(tmp_path, evaluator, filtered_df, test_df):
    models = []
    for i in range(2):
        trainer = ModelTrainer(model_dir=str(tmp_path / f'm{i}'), results_dir=str(tmp_path / f'r{i}'),
                               n_estimators=15, n_jobs=1, random_state=9)
        models.append(trainer.train_model(filtered_df))

    comparison = evaluator.compare_predictions(models[0], models[1], test_df)

    assert comparison['identical']


def test_disagreement_is_counted(evaluator, filtered_df):
    always_a = ConstantModel('A', EXPECTED_FEATURES)
    always_b = ConstantModel('B', EXPECTED_FEATURES)

    comparison = evaluator.compare_predictions(always_a, always_b, filtered_df)

    assert not comparison['identical']
    assert comparison['n_agree'] == 0
    assert comparison['predictions'].columns.tolist() == ['full', 'reduced', 'agree']


def test_full_and_reduced_prediction_columns(evaluator, trained, test_df):
    comparison = evaluator.compare_predictions(trained['full']['model'], trained['reduced']['model'],
                                               test_df)

    predictions = comparison['predictions']
    assert set(predictions['full']) <= set(CLASSES)
    assert set(predictions['reduced']) <= set(CLASSES)
    assert comparison['n_agree'] == int((predictions['full'] == predictions['reduced']).sum())


def test_cross_validate(evaluator, trained, filtered_df):
    model = trained['full']['model']

    result = evaluator.cross_validate(model, filtered_df, filtered_df['classe'], cv=3)

    assert len(result['fold_scores']) == 3
    assert 0.0 <= result['cv_accuracy'] <= 1.0
