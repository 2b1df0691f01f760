import argparse
import json
import logging
import os
from datetime import datetime

from column_filter import ColumnFilter
from config import (
    ANSWERS_DIR, DROP_PATTERN, FREQ_CUT, ID_COLUMN, LABEL_COLUMN, MODEL_DIR, OOB_STEP,
    RANDOM_STATE, RESULTS_DIR, RF_JOBS, RF_N_ESTIMATORS, TEST_FILE, TOP_N_FEATURES,
    TRAIN_FILE, TRAIN_FRACTION, UNIQUE_CUT
)
from data_loader import load_data
from eda import summarize_dataset
from model_evaluation import ModelEvaluator
from predict import ModelPredictor
from train_model import ModelTrainer
from utils import create_dirs, setup_logger

logger = setup_logger('main')

PIPELINE_LOGGERS = ['main', 'data_loader', 'column_filter', 'partitioner', 'train_model',
                    'model_evaluation', 'predict', 'eda']


def configure_logging(level='INFO', log_file=None):
    """Apply one level (and optional log file) to every pipeline logger"""
    for name in PIPELINE_LOGGERS:
        setup_logger(name, level=getattr(logging, level.upper()), log_file=log_file)


def run_full_pipeline(train_path=TRAIN_FILE, test_path=TEST_FILE, model_dir=MODEL_DIR,
                      results_dir=RESULTS_DIR, label_col=LABEL_COLUMN,
                      train_fraction=TRAIN_FRACTION, random_state=RANDOM_STATE,
                      n_estimators=RF_N_ESTIMATORS, n_jobs=RF_JOBS, oob_step=OOB_STEP,
                      top_n=TOP_N_FEATURES, freq_cut=FREQ_CUT, unique_cut=UNIQUE_CUT,
                      drop_pattern=DROP_PATTERN, write_answers=False, answers_dir=ANSWERS_DIR,
                      save_models=True):
    """
    Run the complete pipeline: load, filter, split, train both forests,
    evaluate them and compare their test-set predictions

    Parameters:
    -----------
    train_path : str
        Path to the labeled training CSV
    test_path : str
        Path to the unlabeled test CSV
    model_dir, results_dir : str
        Output directories
    label_col : str
        Outcome column
    train_fraction : float
        Share of rows used for training
    random_state : int
        Seed threaded through the splits and the forests
    n_estimators : int
        Trees per forest
    top_n : int
        Variables kept for the reduced model
    write_answers : bool
        Whether to write one answer file per test row

    Returns:
    --------
    dict
        Experiment summary (also saved as JSON in results_dir)
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    logger.info(f"Starting weight-lifting classification pipeline at {timestamp}")

    create_dirs(model_dir, results_dir)

    # Step 1: Load data
    logger.info("Step 1: Loading data")
    train_df = load_data(train_path, is_train=True, label_col=label_col)
    test_df = load_data(test_path, is_train=False, label_col=label_col)
    data_summary = summarize_dataset(train_df, label_col=label_col)

    # Step 2: Column filtering
    logger.info("Step 2: Filtering columns")
    column_filter = ColumnFilter(label_col=label_col, freq_cut=freq_cut,
                                 unique_cut=unique_cut, drop_pattern=drop_pattern)
    train_filtered = column_filter.fit_transform(train_df)
    test_filtered = column_filter.transform(test_df)

    # Step 3: Train both models
    logger.info("Step 3: Training models")
    trainer = ModelTrainer(model_dir=model_dir, results_dir=results_dir, label_col=label_col,
                           n_estimators=n_estimators, random_state=random_state,
                           n_jobs=n_jobs, oob_step=oob_step, train_fraction=train_fraction)
    models = trainer.train(train_filtered, top_n=top_n, save=save_models)

    # Step 4: Validation accuracy
    logger.info("Step 4: Evaluating models")
    evaluator = ModelEvaluator(results_dir=results_dir)
    evaluations = {}
    for name, result in models.items():
        model = result['model']
        valid_df = result['valid']
        evaluations[name] = evaluator.evaluate_model(
            model, valid_df[model.feature_columns], valid_df[label_col], model_name=name
        )

    # Step 5: Agreement on the test file
    logger.info("Step 5: Comparing test-set predictions")
    full_model = models['full']['model']
    reduced_model = models['reduced']['model']
    comparison = evaluator.compare_predictions(full_model, reduced_model, test_filtered)

    predictions = comparison['predictions'].copy()
    if ID_COLUMN in test_df.columns:
        predictions.insert(0, ID_COLUMN, test_df[ID_COLUMN].to_numpy())
    predictions.to_csv(os.path.join(results_dir, 'test_predictions.csv'), index=False)

    if write_answers:
        predictor = ModelPredictor(model_dir=model_dir, output_dir=results_dir)
        ids = test_df[ID_COLUMN] if ID_COLUMN in test_df.columns else None
        predictor.write_answer_files(comparison['predictions']['full'].tolist(), ids, answers_dir)

    experiment_info = {
        'timestamp': timestamp,
        'random_state': random_state,
        'train_fraction': train_fraction,
        'n_estimators': n_estimators,
        'train_samples': len(train_df),
        'test_samples': len(test_df),
        'data_summary': data_summary,
        'filter_steps': column_filter.steps_,
        'feature_count': len(column_filter.feature_columns_),
        'reduced_features': reduced_model.feature_columns,
        'metrics': {name: evaluation['metrics'] for name, evaluation in evaluations.items()},
        'predictions_identical': comparison['identical'],
        'predictions_agree': comparison['n_agree'],
    }

    with open(os.path.join(results_dir, f'experiment_{timestamp}.json'), 'w') as f:
        json.dump(experiment_info, f, indent=4, default=str)

    for name, evaluation in evaluations.items():
        metrics = evaluation['metrics']
        logger.info(f"{name}: {metrics['n_features']} features, OOB error {metrics['oob_error']:.4f}, "
                    f"validation accuracy {metrics['accuracy_pct']:.2f}%")
    logger.info(f"Test predictions identical: {comparison['identical']}")
    logger.info("Pipeline completed successfully")

    return experiment_info


def run_prediction_only(test_path=TEST_FILE, model_path='full_model.pkl', model_dir=MODEL_DIR,
                        results_dir=RESULTS_DIR, write_answers=False, answers_dir=ANSWERS_DIR):
    """Predict a test file with a previously saved model"""
    logger.info("Starting prediction-only pipeline")

    test_df = load_data(test_path, is_train=False)

    predictor = ModelPredictor(model_dir=model_dir, output_dir=results_dir)
    output = predictor.predict(test_df, model_path=model_path,
                               write_answers=write_answers, answers_dir=answers_dir)

    logger.info("Prediction completed")
    return output


def build_parser():
    parser = argparse.ArgumentParser(description='Weight-Lifting Exercise Classification Pipeline')

    parser.add_argument('--mode', type=str, default='full', choices=['full', 'predict'],
                        help='Pipeline mode: full or predict-only')
    parser.add_argument('--train', type=str, default=TRAIN_FILE,
                        help='Path to training data')
    parser.add_argument('--test', type=str, default=TEST_FILE,
                        help='Path to test data')
    parser.add_argument('--model', type=str, default='full_model.pkl',
                        help='Saved model to use (for predict mode); a bare file name is looked up in --model-dir')
    parser.add_argument('--model-dir', type=str, default=MODEL_DIR,
                        help='Directory for saved models')
    parser.add_argument('--output-dir', type=str, default=RESULTS_DIR,
                        help='Directory for metrics and predictions')
    parser.add_argument('--seed', type=int, default=RANDOM_STATE,
                        help='Random seed for splits and forests')
    parser.add_argument('--train-fraction', type=float, default=TRAIN_FRACTION,
                        help='Share of rows used for training')
    parser.add_argument('--n-estimators', type=int, default=RF_N_ESTIMATORS,
                        help='Number of trees per forest')
    parser.add_argument('--n-jobs', type=int, default=RF_JOBS,
                        help='Parallel jobs for tree construction')
    parser.add_argument('--top-n', type=int, default=TOP_N_FEATURES,
                        help='Number of variables in the reduced model')
    parser.add_argument('--write-answers', action='store_true',
                        help='Write one answer file per test row')
    parser.add_argument('--answers-dir', type=str, default=ANSWERS_DIR,
                        help='Directory for answer files')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write logs to this file')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    if args.mode == 'full':
        return run_full_pipeline(
            train_path=args.train,
            test_path=args.test,
            model_dir=args.model_dir,
            results_dir=args.output_dir,
            train_fraction=args.train_fraction,
            random_state=args.seed,
            n_estimators=args.n_estimators,
            n_jobs=args.n_jobs,
            top_n=args.top_n,
            write_answers=args.write_answers,
            answers_dir=args.answers_dir
        )
    return run_prediction_only(
        test_path=args.test,
        model_path=args.model,
        model_dir=args.model_dir,
        results_dir=args.output_dir,
        write_answers=args.write_answers,
        answers_dir=args.answers_dir
    )


if __name__ == '__main__':
    main()
