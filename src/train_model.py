import os
import json

import joblib
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.ensemble import RandomForestClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OrdinalEncoder

from config import (
    LABEL_COLUMN, MODEL_DIR, OOB_STEP, RANDOM_STATE, RESULTS_DIR,
    RF_JOBS, RF_N_ESTIMATORS, TOP_N_FEATURES, TRAIN_FRACTION
)
from partitioner import partition_data, split_frame
from utils import create_dirs, setup_logger

logger = setup_logger('train_model')

CATEGORICAL_DTYPES = ['object', 'string', 'category', 'bool']


def categorical_columns(X: pd.DataFrame) -> list:
    return X.select_dtypes(include=CATEGORICAL_DTYPES).columns.tolist()


def as_model_input(X: pd.DataFrame, feature_columns, categorical) -> pd.DataFrame:
    """Select feature_columns in training order, with categoricals as plain strings"""
    X_model = X[feature_columns].copy()
    for col in categorical:
        X_model[col] = X_model[col].astype(str)
    return X_model


class FittedForest:
    """
    A trained random forest together with its training diagnostics.

    Attributes:
    -----------
    pipeline : sklearn.pipeline.Pipeline
        Categorical encoder followed by the forest
    feature_columns : list
        Input columns, in the order the model was trained on
    oob_error : float
        Out-of-bag misclassification rate of the full forest
    importance : pandas.Series
        Mean decrease in impurity per input column, descending
    error_curve : pandas.DataFrame
        Out-of-bag error by number of trees (columns n_trees, oob_error, n_unscored)
    """

    def __init__(self, name, pipeline, feature_columns, categorical,
                 oob_error, importance, error_curve):
        self.name = name
        self.pipeline = pipeline
        self.feature_columns = list(feature_columns)
        self.categorical = list(categorical)
        self.oob_error = oob_error
        self.importance = importance
        self.error_curve = error_curve

    @property
    def classes_(self):
        return self.pipeline.named_steps['classifier'].classes_

    @property
    def n_estimators(self):
        return len(self.pipeline.named_steps['classifier'].estimators_)

    def predict(self, X):
        missing_cols = [col for col in self.feature_columns if col not in X.columns]
        if missing_cols:
            raise ValueError(f"Input is missing model features: {missing_cols}")
        return self.pipeline.predict(as_model_input(X, self.feature_columns, self.categorical))

    def __repr__(self):
        return (f"FittedForest(name={self.name!r}, n_features={len(self.feature_columns)}, "
                f"oob_error={self.oob_error:.4f})")


class ModelTrainer:
    """
    Random forest training for the exercise-quality label.
    Fits a model on all retained predictors and a second one on the
    most important predictors of the first.
    """

    def __init__(self, model_dir=MODEL_DIR, results_dir=RESULTS_DIR, label_col=LABEL_COLUMN,
                 n_estimators=RF_N_ESTIMATORS, random_state=RANDOM_STATE, n_jobs=RF_JOBS,
                 oob_step=OOB_STEP, train_fraction=TRAIN_FRACTION):
        """
        Initialize the model trainer

        Parameters:
        -----------
        model_dir : str
            Directory to save trained models
        results_dir : str
            Directory to save importance and error-curve tables
        label_col : str
            Outcome column
        n_estimators : int
            Number of trees per forest
        random_state : int
            Seed for both the splits and the forests
        n_jobs : int
            Parallel jobs used while growing trees
        oob_step : int
            Tree-count increment between out-of-bag error measurements
        train_fraction : float
            Share of rows used for training in each split
        """
        self.model_dir = model_dir
        self.results_dir = results_dir
        self.label_col = label_col
        self.n_estimators = n_estimators
        self.random_state = random_state
        self.n_jobs = n_jobs
        self.oob_step = oob_step
        self.train_fraction = train_fraction

        create_dirs(self.model_dir, self.results_dir)

        self.models = {}

        logger.info("ModelTrainer initialized")

    def build_encoder(self, categorical):
        """Ordinal-encode categorical columns, pass numeric columns through"""
        return ColumnTransformer(
            [('categorical',
              OrdinalEncoder(handle_unknown='use_encoded_value', unknown_value=-1),
              categorical)],
            remainder='passthrough',
            verbose_feature_names_out=False
        )

    def build_classifier(self):
        return RandomForestClassifier(
            n_estimators=self.n_estimators,
            max_features='sqrt',
            oob_score=True,
            random_state=self.random_state,
            n_jobs=self.n_jobs,
            warm_start=True
        )

    def build_model(self, X):
        """Encoder plus forest pipeline for the columns of X"""
        return Pipeline([
            ('encoder', self.build_encoder(categorical_columns(X))),
            ('classifier', self.build_classifier())
        ])

    def tree_schedule(self):
        """Tree counts at which out-of-bag error is recorded; always ends at n_estimators"""
        if self.oob_step is None or self.oob_step <= 0 or self.oob_step >= self.n_estimators:
            return [self.n_estimators]
        return list(range(self.oob_step, self.n_estimators, self.oob_step)) + [self.n_estimators]

    def fit(self, X, y, feature_columns=None, name='model'):
        """
        Fit a random forest on X

        Parameters:
        -----------
        X : pandas.DataFrame
            Predictors
        y : array-like
            Labels
        feature_columns : list
            Columns of X to train on; all columns when None
        name : str
            Model name used in logs and saved files

        Returns:
        --------
        FittedForest
            The trained model and its diagnostics
        """
        if feature_columns is None:
            feature_columns = X.columns.tolist()
        X = X[list(feature_columns)]
        categorical = categorical_columns(X)
        logger.info(f"Training {name} on {X.shape[0]} rows, {len(feature_columns)} features "
                    f"({len(categorical)} categorical), n_estimators={self.n_estimators}")

        X_model = as_model_input(X, feature_columns, categorical)
        y = pd.Series(y).astype(str).to_numpy()

        pipeline = self.build_model(X)
        encoder = pipeline.named_steps['encoder']
        classifier = pipeline.named_steps['classifier']
        X_encoded = encoder.fit_transform(X_model)

        # Growing the forest with warm_start yields the same trees as a single fit
        curve = []
        for n_trees in self.tree_schedule():
            classifier.set_params(n_estimators=n_trees)
            classifier.fit(X_encoded, y)
            # Rows no tree has left out yet score zero for every class and count as errors
            n_unscored = int((classifier.oob_decision_function_.sum(axis=1) == 0).sum())
            if n_unscored:
                logger.warning(f"{name}: {n_unscored} rows have no out-of-bag trees at "
                               f"{n_trees} trees, OOB error at this point is overstated")
            curve.append({'n_trees': n_trees, 'oob_error': 1.0 - classifier.oob_score_,
                          'n_unscored': n_unscored})
        classifier.set_params(warm_start=False)

        importance = pd.Series(
            classifier.feature_importances_,
            index=encoder.get_feature_names_out(),
            name='importance'
        ).sort_values(ascending=False)

        error_curve = pd.DataFrame(curve, columns=['n_trees', 'oob_error', 'n_unscored'])
        oob_error = float(error_curve['oob_error'].iloc[-1])

        logger.info(f"{name} OOB error: {oob_error:.4f}")
        logger.info(f"Top 10 important features: {importance.head(10).index.tolist()}")

        return FittedForest(name, pipeline, feature_columns, categorical,
                            oob_error, importance, error_curve)

    def top_features(self, fitted, n=TOP_N_FEATURES):
        """Names of the n most important input columns of a fitted model"""
        if n <= 0:
            raise ValueError(f"n must be positive, got {n}")
        return fitted.importance.index[:n].tolist()

    def prepare_data(self, df, features=None, random_state=None):
        """
        Stratified split of df (restricted to features plus the label)

        Returns:
        --------
        tuple
            (train_df, valid_df)
        """
        if random_state is None:
            random_state = self.random_state
        if features is not None:
            df = df[list(features) + [self.label_col]]

        train_idx, valid_idx = partition_data(
            df, label_col=self.label_col, train_fraction=self.train_fraction,
            random_state=random_state
        )
        return split_frame(df, train_idx, valid_idx)

    def train_model(self, train_df, features=None, name='model'):
        """Fit on a labeled table, using features or every non-label column"""
        if features is None:
            features = [col for col in train_df.columns if col != self.label_col]
        return self.fit(train_df, train_df[self.label_col], feature_columns=features, name=name)

    def train_full(self, train_df, name='full'):
        """Fit on every retained predictor of an already partitioned training table"""
        return self.train_model(train_df, name=name)

    def train_reduced(self, df, features, name='reduced'):
        """
        Re-partition df on features only and fit on the new training part

        The stratified draw uses random_state + 1, so it is independent of
        the split the full model was trained on.

        Returns:
        --------
        tuple
            (fitted, train_df, valid_df)
        """
        train_df, valid_df = self.prepare_data(df, features=features,
                                               random_state=self.random_state + 1)
        fitted = self.train_model(train_df, features=features, name=name)
        return fitted, train_df, valid_df

    def train(self, df, top_n=TOP_N_FEATURES, save=True):
        """
        Full training run: full-feature model, then reduced top_n model

        Parameters:
        -----------
        df : pandas.DataFrame
            Filtered, labeled table
        top_n : int
            Number of most important variables kept for the reduced model
        save : bool
            Whether to persist models, importances and error curves

        Returns:
        --------
        dict
            Per model name: fitted model, training and validation tables
        """
        logger.info("Starting full training pipeline")

        try:
            train_df, valid_df = self.prepare_data(df)
            full = self.train_full(train_df)
            self.models['full'] = {'model': full, 'train': train_df, 'valid': valid_df}

            features = self.top_features(full, top_n)
            logger.info(f"Reduced model features: {features}")

            reduced, train_df, valid_df = self.train_reduced(df, features)
            self.models['reduced'] = {'model': reduced, 'train': train_df, 'valid': valid_df}
        except Exception as e:
            logger.error(f"Error training models: {e}", exc_info=True)
            raise

        if save:
            for result in self.models.values():
                self.save_model(result['model'])
                self.save_diagnostics(result['model'])

        logger.info("Training pipeline completed successfully")
        return self.models

    def save_model(self, fitted, name=None):
        """Persist a fitted model with joblib, plus its feature list as JSON"""
        name = name or fitted.name
        model_path = os.path.join(self.model_dir, f'{name}_model.pkl')
        joblib.dump(fitted, model_path)

        features_path = os.path.splitext(model_path)[0] + '_features.json'
        with open(features_path, 'w') as f:
            json.dump(fitted.feature_columns, f)

        logger.info(f"Saved {name} to {model_path}")
        return model_path

    def save_importance(self, fitted, name=None):
        """Write the importance table, most important first"""
        name = name or fitted.name
        importance_df = fitted.importance.rename_axis('Feature').reset_index()
        importance_df.columns = ['Feature', 'Importance']

        importance_path = os.path.join(self.results_dir, f'{name}_feature_importance.csv')
        importance_df.to_csv(importance_path, index=False)
        return importance_path

    def save_diagnostics(self, fitted, name=None):
        """Write importance and out-of-bag error curve tables"""
        name = name or fitted.name
        self.save_importance(fitted, name)
        fitted.error_curve.to_csv(
            os.path.join(self.results_dir, f'{name}_oob_error_curve.csv'), index=False
        )
