import importlib.util
import os
import shutil
import tempfile
import unittest

import numpy as np
import pandas as pd
from sklearn.datasets import make_classification, make_regression

from learnerkit import (
    Learner,
    LearnerFactory,
    TaskClassif,
    TaskRegr,
    load_learner,
    lrn,
    partition,
    save_learner,
)
from learnerkit.featureless_learner import FeaturelessClassifLearner
from learnerkit.lightgbm_learner import LightGBMClassifLearner, LightGBMRegrLearner
from learnerkit.random_forest_learner import RandomForestClassifLearner, RandomForestRegrLearner
from test_learner import make_iris


def make_regression_frame(n_samples=300) -> pd.DataFrame:
    X, y = make_regression(n_samples=n_samples, n_features=5, noise=0.1, random_state=42)
    df = pd.DataFrame(X, columns=['num1', 'num2', 'num3', 'cat1', 'cat2'])

    # Convert some to categorical
    df['cat1'] = (df['cat1'] > 0).astype(str)
    df['cat2'] = pd.cut(df['cat2'], bins=3, labels=['A', 'B', 'C'])

    df['target'] = y
    df['weight'] = np.random.RandomState(0).uniform(0.5, 2.0, n_samples)
    return df


def make_binary_frame(n_samples=200) -> pd.DataFrame:
    X, y = make_classification(n_samples=n_samples, n_features=4, n_informative=3, n_redundant=0, random_state=1)
    df = pd.DataFrame(X, columns=['x1', 'x2', 'x3', 'x4'])
    df['flag'] = df['x4'] > 0
    df['label'] = np.where(y == 1, 'yes', 'no')
    return df


class TestLearnerFactory(unittest.TestCase):

    def test_default_learners_registered(self):
        available = LearnerFactory.get_available_learners()
        for name in ("classif.featureless", "regr.featureless", "classif.debug",
                     "classif.random_forest", "regr.random_forest", "classif.lightgbm", "regr.lightgbm"):
            self.assertIn(name, available)
            self.assertTrue(LearnerFactory.is_learner_available(name))
        self.assertEqual(
            LearnerFactory.is_learner_available("regr.catboost"),
            importlib.util.find_spec("catboost") is not None,
        )

    def test_created_learners_match_their_key(self):
        for name in LearnerFactory.get_available_learners():
            learner = LearnerFactory.create_learner(name)
            self.assertIsInstance(learner, Learner)
            self.assertEqual(learner.id, name)
            self.assertIsNone(learner.state)

    def test_create_with_values_and_fields(self):
        with self.assertWarns(UserWarning):
            learner = lrn("classif.debug", error_train=1.0, predict_type="prob", fallback=FeaturelessClassifLearner())
        self.assertEqual(learner.param_set.values, {"error_train": 1.0})
        self.assertEqual(learner.predict_type, "prob")
        self.assertIsInstance(learner.fallback, FeaturelessClassifLearner)
        self.assertEqual(learner.encapsulate["train"], "evaluate")

    def test_create_errors(self):
        with self.assertRaises(ValueError):
            LearnerFactory.create_learner("classif.unknown")
        with self.assertRaises(ValueError):
            lrn("classif.featureless", method="median")

    def test_register_learner(self):
        saved = dict(LearnerFactory._learners)
        try:
            with self.assertRaises(ValueError):
                LearnerFactory.register_learner("bogus", dict)
            LearnerFactory.clear_registry()
            self.assertEqual(LearnerFactory.get_available_learners(), [])
            LearnerFactory.register_learner("baseline", FeaturelessClassifLearner)
            self.assertEqual(LearnerFactory.get_available_learners(), ["baseline"])
        finally:
            LearnerFactory._learners.clear()
            LearnerFactory._learners.update(saved)


class TestRandomForest(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.df = make_regression_frame()
        self.task = TaskRegr("regr", self.df.drop(columns="weight"), target="target")

    def test_regression(self):
        learner = RandomForestRegrLearner()
        learner.param_set.values = {"n_estimators": 20, "n_jobs": 1}
        learner.predict_type = "se"
        split = partition(self.task, ratio=0.8, seed=1)
        learner.train(self.task, row_ids=split["train"])
        prediction = learner.predict(self.task, row_ids=split["test"])

        self.assertEqual(len(prediction), len(split["test"]))
        self.assertTrue((prediction.se >= 0).all())
        correlation = np.corrcoef(prediction.truth, prediction.response)[0, 1]
        self.assertGreater(correlation, 0.5)

    def test_importance(self):
        learner = RandomForestRegrLearner()
        learner.param_set.values = {"n_estimators": 10, "n_jobs": 1}
        with self.assertRaises(ValueError):
            learner.importance()
        learner.train(self.task)
        importance = learner.importance()
        self.assertEqual(set(importance.index), set(self.task.feature_names))
        self.assertTrue(importance.is_monotonic_decreasing)
        self.assertAlmostEqual(importance.sum(), 1.0)

    def test_oob_error(self):
        learner = RandomForestRegrLearner()
        learner.param_set.values = {"n_estimators": 25, "n_jobs": 1}
        learner.train(self.task)
        with self.assertRaises(ValueError):
            learner.oob_error()

        learner.param_set.set_values(oob_score=True)
        learner.train(self.task)
        self.assertGreater(learner.oob_error(), 0)

    def test_weights(self):
        task = TaskRegr("weighted", self.df, target="target")
        task.set_col_roles("weight", "weight")
        learner = RandomForestRegrLearner()
        learner.param_set.values = {"n_estimators": 5, "n_jobs": 1}
        learner.train(task)
        self.assertNotIn("weight", learner.state["feature_names"])
        self.assertEqual(len(learner.predict(task)), len(self.df))

    def test_unseen_categories(self):
        learner = RandomForestRegrLearner()
        learner.param_set.values = {"n_estimators": 5, "n_jobs": 1}
        learner.train(self.task)
        newdata = self.df.drop(columns=["target", "weight"]).head(3).copy()
        newdata["cat1"] = "unseen"
        prediction = learner.predict_newdata(newdata)
        self.assertEqual(len(prediction), 3)
        self.assertFalse(prediction.response.isna().any())

    def test_classification(self):
        task = TaskClassif("iris", make_iris(), target="species")
        learner = RandomForestClassifLearner()
        learner.param_set.values = {"n_estimators": 20, "n_jobs": 1}
        learner.predict_type = "prob"
        prediction = learner.train(task).predict(task)

        np.testing.assert_allclose(prediction.prob.sum(axis=1), 1.0)
        accuracy = (prediction.response.astype(str) == prediction.truth.astype(str)).mean()
        self.assertGreater(accuracy, 0.9)


class TestLightGBM(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.df = make_regression_frame()

    def test_regression_with_categoricals(self):
        task = TaskRegr("regr", self.df.drop(columns="weight"), target="target")
        learner = LightGBMRegrLearner()
        learner.param_set.values = {"num_iterations": 50, "num_threads": 1}
        learner.train(task)
        prediction = learner.predict(task)
        correlation = np.corrcoef(prediction.truth, prediction.response)[0, 1]
        self.assertGreater(correlation, 0.8)
        self.assertEqual(learner.model.current_iteration(), 50)

        importance = learner.importance()
        self.assertEqual(set(importance.index), set(task.feature_names))

    def test_weighted_regression(self):
        task = TaskRegr("weighted", self.df, target="target")
        task.set_col_roles("weight", "weight")
        learner = LightGBMRegrLearner()
        learner.param_set.values = {"num_iterations": 10, "num_threads": 1}
        self.assertEqual(len(learner.train(task).predict(task)), len(self.df))

    def test_binary_classification(self):
        df = make_binary_frame()
        task = TaskClassif("binary", df, target="label")
        learner = LightGBMClassifLearner()
        learner.param_set.values = {"num_iterations": 30, "num_threads": 1}
        learner.predict_type = "prob"
        prediction = learner.train(task).predict(task)

        self.assertEqual(list(prediction.prob.columns), ["no", "yes"])
        np.testing.assert_allclose(prediction.prob.sum(axis=1), 1.0)
        accuracy = (prediction.response.astype(str) == prediction.truth.astype(str)).mean()
        self.assertGreater(accuracy, 0.8)

    def test_multiclass_classification(self):
        task = TaskClassif("iris", make_iris(), target="species")
        learner = LightGBMClassifLearner()
        learner.param_set.values = {"num_iterations": 20, "num_threads": 1}
        prediction = learner.train(task).predict(task)
        self.assertEqual(prediction.predict_types, ["response"])
        accuracy = (prediction.response.astype(str) == prediction.truth.astype(str)).mean()
        self.assertGreater(accuracy, 0.9)


@unittest.skipUnless(importlib.util.find_spec("catboost"), "catboost not installed")
class TestCatBoost(unittest.TestCase):

    def test_regression(self):
        df = make_regression_frame(n_samples=200)
        task = TaskRegr("regr", df.drop(columns="weight"), target="target")
        learner = lrn("regr.catboost", iterations=50, thread_count=1)
        prediction = learner.train(task).predict(task)
        self.assertEqual(len(prediction), 200)
        self.assertEqual(set(learner.importance().index), set(task.feature_names))


class TestSerialization(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = tempfile.mkdtemp()
        self.task = TaskClassif("iris", make_iris(), target="species")

    def tearDown(self):
        """Clean up test fixtures."""
        if os.path.exists(self.test_dir):
            shutil.rmtree(self.test_dir)

    def test_round_trip(self):
        learner = RandomForestClassifLearner()
        learner.param_set.values = {"n_estimators": 10, "n_jobs": 1}
        learner.predict_type = "prob"
        learner.train(self.task)
        path = save_learner(learner, os.path.join(self.test_dir, "learner.pkl"))
        self.assertTrue(os.path.exists(path))

        restored = load_learner(path)
        self.assertEqual(restored.hash, learner.hash)
        self.assertIsNone(restored.state["train_task"].backend)
        pd.testing.assert_frame_equal(
            restored.predict(self.task).data,
            learner.predict(self.task).data,
        )

    def test_fallback_survives(self):
        learner = lrn("classif.debug", error_train=1.0, fallback=FeaturelessClassifLearner())
        learner.train(self.task)
        path = save_learner(learner, os.path.join(self.test_dir, "debug.pkl"))
        restored = load_learner(path)
        self.assertEqual(restored.errors, learner.errors)
        self.assertEqual(len(restored.predict(self.task)), 150)

    def test_invalid_objects(self):
        with self.assertRaises(TypeError):
            save_learner("not a learner", os.path.join(self.test_dir, "x.pkl"))


if __name__ == '__main__':
    unittest.main()
