import numpy as np
import pandas as pd
from sklearn.datasets import make_regression

from learnerkit import HotstartStack, LearnerFactory, TaskRegr, lrn, partition, set_plan


def create_sample_dataset(n_samples=10000, n_features=20):
    """Create a sample regression dataset with categorical features and weights."""
    # Generate regression data
    X, y = make_regression(
        n_samples=n_samples,
        n_features=n_features,
        n_informative=int(n_features * 0.8),
        noise=0.1,
        random_state=42
    )

    # Create dataframe
    feature_names = [f'num_feature_{i}' for i in range(n_features-3)] + ['cat_feature_1', 'cat_feature_2', 'cat_feature_3']
    df = pd.DataFrame(X, columns=feature_names)

    # Convert some features to categorical
    df['cat_feature_1'] = (df['cat_feature_1'] > 0).astype(str)
    df['cat_feature_2'] = pd.cut(df['cat_feature_2'], bins=5, labels=['A', 'B', 'C', 'D', 'E'])
    df['cat_feature_3'] = np.random.choice(['X', 'Y', 'Z'], size=n_samples)

    # Add target and weight
    df['target'] = y
    df['weight'] = np.random.uniform(0.5, 2.0, n_samples)  # Random weights

    return df


def weighted_correlation(prediction, weights):
    truth = prediction.truth.to_numpy()
    response = prediction.response.to_numpy()
    cov = np.cov(truth, response, aweights=weights)
    return cov[0, 1] / np.sqrt(cov[0, 0] * cov[1, 1])


def run_learner(name: str, task: TaskRegr, split: dict, weights: pd.Series, **params):
    """Train a learner with a featureless fallback and score it on the test rows."""
    print(f"\n{'='*50}")
    print(f"Running {name.upper()}")
    print(f"{'='*50}")

    learner = lrn(name, fallback=lrn("regr.featureless"), **params)
    learner.train(task, row_ids=split["train"])
    learner.parallel_predict = True
    prediction = learner.predict(task, row_ids=split["test"])

    correlation = weighted_correlation(prediction, weights.loc[split["test"]].to_numpy())
    print(f"Train time: {learner.timings['train']:.2f}s, predict time: {learner.timings['predict']:.2f}s")
    print(f"Weighted correlation: {correlation:.4f}")
    if learner.errors:
        print(f"Errors (fallback used): {learner.errors}")

    return {
        "learner": name,
        "correlation": correlation,
        "train_time": learner.timings["train"],
        "learner_object": learner,
    }


def main():
    """Compare the registered regression learners on the same dataset."""
    print("Creating sample dataset for comparison...")
    df = create_sample_dataset(n_samples=3000, n_features=12)
    print(f"Dataset shape: {df.shape}")

    task = TaskRegr("comparison", df, target="target")
    task.set_col_roles("weight", "weight")
    split = partition(task, ratio=0.8, seed=42)

    set_plan("thread", workers=4)

    names = [name for name in LearnerFactory.get_available_learners() if name.startswith("regr.")]
    results = []
    for name in names:
        params = {}
        if name == "regr.lightgbm":
            params = {"num_iterations": 100}
        elif name == "regr.random_forest":
            params = {"n_estimators": 50}
        elif name == "regr.catboost":
            params = {"iterations": 200}
        results.append(run_learner(name, task, split, df['weight'], **params))

    # Continue boosting the trained LightGBM model instead of starting over
    lightgbm = next((r["learner_object"] for r in results if r["learner"] == "regr.lightgbm"), None)
    if lightgbm is not None:
        stack = HotstartStack(lightgbm)
        learner = lrn("regr.lightgbm", num_iterations=200, fallback=lrn("regr.featureless"), hotstart_stack=stack)
        learner.train(task, row_ids=split["train"])
        prediction = learner.predict(task, row_ids=split["test"])
        correlation = weighted_correlation(prediction, df['weight'].loc[split["test"]].to_numpy())
        print(f"\nHotstarted LightGBM (200 rounds): correlation {correlation:.4f}, "
              f"train time {learner.timings['train']:.2f}s")

    # Compare results
    print(f"\n{'='*60}")
    print("COMPARISON RESULTS")
    print(f"{'='*60}")
    for result in sorted(results, key=lambda r: r["correlation"], reverse=True):
        print(f"{result['learner']:<22} correlation: {result['correlation']:.4f}  "
              f"train time: {result['train_time']:.2f}s")


if __name__ == "__main__":
    main()
