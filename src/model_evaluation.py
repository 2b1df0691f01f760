import os
from datetime import datetime

import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.metrics import accuracy_score, classification_report, confusion_matrix
from sklearn.model_selection import StratifiedKFold, cross_val_score

from config import RANDOM_STATE, RESULTS_DIR
from train_model import as_model_input
from utils import create_dirs, setup_logger

logger = setup_logger('model_evaluation')


class ModelEvaluator:
    """
    Out-of-sample evaluation of fitted forests: validation accuracy,
    out-of-bag error and agreement between two models on unlabeled data.
    """

    def __init__(self, results_dir=RESULTS_DIR):
        """
        Initialize the model evaluator

        Parameters:
        -----------
        results_dir : str
            Directory to save evaluation results
        """
        self.results_dir = results_dir
        create_dirs(self.results_dir)

        logger.info("ModelEvaluator initialized")

    def evaluate_model(self, model, X_valid, y_valid, model_name='model', save=True):
        """
        Evaluate a fitted model on a labeled validation set

        Parameters:
        -----------
        model : FittedForest
            Trained model
        X_valid : pandas.DataFrame
            Validation features
        y_valid : array-like
            Validation labels
        model_name : str
            Name of the model
        save : bool
            Whether to append the metrics to model_metrics.csv

        Returns:
        --------
        dict
            metrics, confusion_matrix, classification_report, y_pred
        """
        try:
            logger.info(f"Evaluating {model_name} on {len(X_valid)} validation rows")

            y_true = pd.Series(y_valid).astype(str).to_numpy()
            y_pred = np.asarray(model.predict(X_valid)).astype(str)

            accuracy = accuracy_score(y_true, y_pred)
            misclassification = 1.0 - accuracy
            metrics = {
                'accuracy': accuracy,
                'misclassification_rate': misclassification,
                'accuracy_pct': 100.0 - 100.0 * misclassification,
                'oob_error': model.oob_error,
                'n_features': len(model.feature_columns),
                'n_valid': len(y_true),
            }

            labels = sorted(set(y_true) | set(y_pred))
            cm = pd.DataFrame(
                confusion_matrix(y_true, y_pred, labels=labels),
                index=pd.Index(labels, name='actual'),
                columns=pd.Index(labels, name='predicted')
            )
            report = classification_report(y_true, y_pred, labels=labels,
                                           output_dict=True, zero_division=0)

            logger.info(f"{model_name} validation accuracy: {metrics['accuracy_pct']:.2f}%")
            logger.info(f"{model_name} OOB error: {metrics['oob_error']:.4f}")
            logger.info(f"Confusion matrix:\n{cm}")

            if save:
                self._append_metrics(metrics, model_name)

            return {
                'metrics': metrics,
                'confusion_matrix': cm,
                'classification_report': report,
                'y_pred': y_pred,
            }

        except Exception as e:
            logger.error(f"Error evaluating model: {e}", exc_info=True)
            raise

    def _append_metrics(self, metrics, model_name):
        metrics_df = pd.DataFrame([metrics])
        metrics_df['model'] = model_name
        metrics_df['timestamp'] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        metrics_file = os.path.join(self.results_dir, 'model_metrics.csv')

        # Append to existing file if it exists
        if os.path.exists(metrics_file):
            existing_metrics = pd.read_csv(metrics_file)
            updated_metrics = pd.concat([existing_metrics, metrics_df], ignore_index=True)
            updated_metrics.to_csv(metrics_file, index=False)
        else:
            metrics_df.to_csv(metrics_file, index=False)

    def compare_predictions(self, model_a, model_b, test_df, names=('full', 'reduced')):
        """
        Apply two models to the same unlabeled rows and compare their labels

        Parameters:
        -----------
        model_a, model_b : FittedForest
            Trained models
        test_df : pandas.DataFrame
            Rows to predict; must hold both models' features
        names : tuple
            Column names for the two prediction columns

        Returns:
        --------
        dict
            identical (bool), n_agree, n_rows, predictions (DataFrame)
        """
        pred_a = np.asarray(model_a.predict(test_df)).astype(str)
        pred_b = np.asarray(model_b.predict(test_df)).astype(str)

        predictions = pd.DataFrame({names[0]: pred_a, names[1]: pred_b}, index=test_df.index)
        predictions['agree'] = predictions[names[0]] == predictions[names[1]]

        n_agree = int(predictions['agree'].sum())
        identical = n_agree == len(predictions)

        if identical:
            logger.info(f"Predictions of {names[0]} and {names[1]} are identical on {len(predictions)} rows")
        else:
            logger.warning(f"Predictions differ on {len(predictions) - n_agree} of {len(predictions)} rows")

        return {
            'identical': identical,
            'n_agree': n_agree,
            'n_rows': len(predictions),
            'predictions': predictions,
        }

    def cross_validate(self, model, X, y, cv=5, random_state=RANDOM_STATE):
        """
        Stratified k-fold accuracy of a model's configuration on X, y

        The model's pipeline is cloned and refit on each fold.

        Returns:
        --------
        dict
            cv_accuracy (mean), cv_accuracy_std, fold_scores
        """
        try:
            logger.info(f"Performing {cv}-fold cross-validation for {model.name}")

            pipeline = clone(model.pipeline)
            pipeline.set_params(classifier__warm_start=False, classifier__oob_score=False)

            X_model = as_model_input(X, model.feature_columns, model.categorical)
            y = pd.Series(y).astype(str).to_numpy()

            cv_stratified = StratifiedKFold(n_splits=cv, shuffle=True, random_state=random_state)
            scores = cross_val_score(pipeline, X_model, y, cv=cv_stratified, scoring='accuracy')

            logger.info(f"CV accuracy: {scores.mean():.4f} (+/- {scores.std():.4f})")

            return {
                'cv_accuracy': float(scores.mean()),
                'cv_accuracy_std': float(scores.std()),
                'fold_scores': scores.tolist(),
            }

        except Exception as e:
            logger.error(f"Error in cross-validation: {e}", exc_info=True)
            raise
