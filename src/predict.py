import json
import os

import joblib
import numpy as np
import pandas as pd

from config import ANSWERS_DIR, ID_COLUMN, MODEL_DIR, RESULTS_DIR
from utils import create_dirs, setup_logger

logger = setup_logger('predict')


class ModelPredictor:
    """
    Predicts exercise-quality labels for unlabeled sensor rows
    using a model saved by ModelTrainer.
    """

    def __init__(self, model_dir=MODEL_DIR, output_dir=RESULTS_DIR, id_col=ID_COLUMN):
        """
        Initialize model predictor

        Parameters:
        -----------
        model_dir : str
            Directory where models are stored
        output_dir : str
            Directory where to save prediction outputs
        id_col : str
            Row identifier column of the test file
        """
        self.model_dir = model_dir
        self.output_dir = output_dir
        self.id_col = id_col

        create_dirs(self.output_dir)

        self.model = None
        self.feature_columns = None

        logger.info("ModelPredictor initialized")

    def load_model(self, model_path='full_model.pkl', features_path=None):
        """
        Load the trained model and feature columns

        Parameters:
        -----------
        model_path : str
            Saved model file: a bare file name is looked up in model_dir, any other
            path is used as given
        features_path : str
            Path to the saved feature columns file
        """
        try:
            if not os.path.isabs(model_path) and not os.path.dirname(model_path):
                model_path = os.path.join(self.model_dir, model_path)

            logger.info(f"Loading model from {model_path}")
            self.model = joblib.load(model_path)

            if features_path is None:
                features_path = os.path.splitext(model_path)[0] + '_features.json'

            if os.path.exists(features_path):
                logger.info(f"Loading feature columns from {features_path}")
                with open(features_path, 'r') as f:
                    self.feature_columns = json.load(f)
            else:
                logger.warning(f"Feature columns file not found at {features_path}, using model's own list")
                self.feature_columns = list(self.model.feature_columns)

            logger.info(f"Model loaded successfully: {self.model!r}")

        except Exception as e:
            logger.error(f"Error loading model: {e}", exc_info=True)
            raise

    def prepare_features(self, test_df):
        """
        Align test rows to the training feature list

        Returns:
        --------
        tuple
            (features DataFrame, id Series or None)
        """
        if self.feature_columns is None:
            raise ValueError("Model not loaded. Call load_model() first.")

        logger.info(f"Aligning features with training schema ({len(self.feature_columns)} features)")

        id_column = test_df[self.id_col].copy() if self.id_col in test_df.columns else None

        missing_cols = [col for col in self.feature_columns if col not in test_df.columns]
        if missing_cols:
            logger.error(f"Missing columns in test data: {missing_cols}")
            raise ValueError(f"Missing columns in test data: {missing_cols}")

        test_features = test_df[self.feature_columns].copy()

        na_counts = test_features.isna().sum()
        if na_counts.sum() > 0:
            logger.warning(f"Test data contains missing values:\n{na_counts[na_counts > 0]}")

        logger.info(f"Features prepared: shape={test_features.shape}")
        return test_features, id_column

    def make_predictions(self, test_features):
        if self.model is None:
            raise ValueError("Model not loaded. Call load_model() first.")

        predictions = np.asarray(self.model.predict(test_features)).astype(str)
        logger.info(f"Predictions made: {len(predictions)}")
        logger.info(f"Predicted class counts: {dict(pd.Series(predictions).value_counts().sort_index())}")
        return predictions

    def write_answer_files(self, predictions, id_column=None, answers_dir=ANSWERS_DIR):
        """
        Write one text file per test row holding its predicted label

        Files are named problem_id_<id>.txt, with ids taken from id_column
        or numbered from 1.
        """
        create_dirs(answers_dir)

        if id_column is None:
            ids = range(1, len(predictions) + 1)
        else:
            ids = list(id_column)

        paths = []
        for row_id, label in zip(ids, predictions):
            path = os.path.join(answers_dir, f"problem_id_{row_id}.txt")
            with open(path, 'w') as f:
                f.write(str(label))
            paths.append(path)

        logger.info(f"Wrote {len(paths)} answer files to {answers_dir}")
        return paths

    def predict(self, test_df, model_path='full_model.pkl', output_filename='predictions.csv',
                write_answers=False, answers_dir=ANSWERS_DIR):
        """
        End-to-end prediction pipeline

        Returns:
        --------
        pandas.DataFrame
            One row per test row: identifier and predicted label
        """
        try:
            logger.info("Starting prediction pipeline")

            self.load_model(model_path)
            test_features, id_column = self.prepare_features(test_df)
            predictions = self.make_predictions(test_features)

            if id_column is None:
                id_column = pd.Series(np.arange(1, len(predictions) + 1), name=self.id_col)

            output = pd.DataFrame({self.id_col: id_column.to_numpy(), 'prediction': predictions})
            output_path = os.path.join(self.output_dir, output_filename)
            output.to_csv(output_path, index=False)
            logger.info(f"Predictions saved to {output_path}")

            if write_answers:
                self.write_answer_files(predictions, id_column, answers_dir)

            logger.info("Prediction pipeline completed successfully")
            return output

        except Exception as e:
            logger.error(f"Error in prediction pipeline: {e}", exc_info=True)
            raise
