import math
import unittest

import numpy as np

from learnerkit import HotstartStack, TaskClassif
from learnerkit.debug_learner import DebugClassifLearner
from learnerkit.featureless_learner import FeaturelessClassifLearner
from learnerkit.lightgbm_learner import LightGBMClassifLearner
from learnerkit.random_forest_learner import RandomForestClassifLearner
from test_learner import make_iris


def debug_learner(iter):
    learner = DebugClassifLearner()
    learner.param_set.values = {"iter": iter}
    return learner


class TestHotstartStack(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.task = TaskClassif("iris", make_iris(), target="species")
        self.stored = debug_learner(1).train(self.task)
        self.stack = HotstartStack(self.stored)

    def test_stack_content(self):
        self.assertEqual(len(self.stack), 1)
        self.assertEqual(list(self.stack.stack.columns), ["start_learner", "task_hash", "learner_phash"])
        self.assertEqual(self.stack.stack["task_hash"].iloc[0], self.stored.state["task_hash"])
        self.assertEqual(self.stack.stack["learner_phash"].iloc[0], self.stored.phash)
        self.assertIsNot(self.stack.stack["start_learner"].iloc[0], self.stored)

    def test_add_requires_trained_learner(self):
        with self.assertRaises(ValueError):
            self.stack.add(DebugClassifLearner())

    def test_start_cost(self):
        task_hash = self.stored.state["task_hash"]
        np.testing.assert_array_equal(self.stack.start_cost(debug_learner(1), task_hash), [-1])
        np.testing.assert_array_equal(self.stack.start_cost(debug_learner(4), task_hash), [3])
        # forward only
        self.assertTrue(np.isnan(self.stack.start_cost(debug_learner(1), "other")).all())

        stack = HotstartStack(debug_learner(5).train(self.task))
        self.assertTrue(np.isnan(stack.start_cost(debug_learner(2), task_hash)).all())

    def test_start_cost_requires_matching_values(self):
        task_hash = self.stored.state["task_hash"]
        learner = DebugClassifLearner()
        learner.param_set.values = {"iter": 3, "x": 0.5}
        self.assertTrue(np.isnan(self.stack.start_cost(learner, task_hash)).all())

    def test_start_cost_without_hotstart_support(self):
        featureless = FeaturelessClassifLearner().train(self.task)
        stack = HotstartStack(featureless)
        costs = stack.start_cost(FeaturelessClassifLearner(), featureless.state["task_hash"])
        self.assertTrue(np.isnan(costs).all())

    def test_threshold(self):
        stack = HotstartStack(self.stored, hotstart_threshold=2)
        task_hash = self.stored.state["task_hash"]
        self.assertIsNone(stack.start_learner(debug_learner(4), task_hash))
        self.assertIsNotNone(stack.start_learner(debug_learner(2), task_hash))

    def test_cheapest_learner_is_selected(self):
        self.stack.add(debug_learner(3).train(self.task))
        start = self.stack.start_learner(debug_learner(4), self.stored.state["task_hash"])
        self.assertEqual(start.param_set.values["iter"], 3)


class TestLearnerHotstart(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.task = TaskClassif("iris", make_iris(), target="species")
        self.stored = debug_learner(1).train(self.task)
        self.stack = HotstartStack(self.stored)

    def test_train_continues_stored_model(self):
        learner = debug_learner(3)
        learner.hotstart_stack = self.stack
        learner.train(self.task)
        self.assertEqual(learner.model["iter"], 3)
        self.assertEqual(learner.model["id"], self.stored.model["id"])
        self.assertEqual(learner.state["param_vals"], {"iter": 3})

    def test_train_from_scratch_on_other_rows(self):
        learner = debug_learner(3)
        learner.hotstart_stack = self.stack
        learner.train(self.task, row_ids=range(100))
        self.assertNotEqual(learner.model["id"], self.stored.model["id"])

    def test_backward_not_supported(self):
        stack = HotstartStack(debug_learner(5).train(self.task))
        learner = debug_learner(2)
        learner.hotstart_stack = stack
        learner.train(self.task)
        self.assertNotEqual(learner.model["id"], stack.stack["start_learner"].iloc[0].model["id"])

    def test_stack_is_shared_between_clones(self):
        learner = debug_learner(2)
        learner.hotstart_stack = self.stack
        self.assertIs(learner.clone().hotstart_stack, self.stack)

    def test_hotstart_stack_type(self):
        with self.assertRaises(TypeError):
            DebugClassifLearner().hotstart_stack = [self.stored]

    def test_random_forest_grows_trees(self):
        stored = RandomForestClassifLearner()
        stored.param_set.values = {"n_estimators": 5, "n_jobs": 1}
        stored.train(self.task)

        learner = RandomForestClassifLearner()
        learner.param_set.values = {"n_estimators": 12, "n_jobs": 1}
        learner.hotstart_stack = HotstartStack(stored)
        learner.train(self.task)

        forest = learner.model.named_steps["forest"]
        self.assertEqual(len(forest.estimators_), 12)
        self.assertEqual(len(stored.model.named_steps["forest"].estimators_), 5)
        self.assertEqual(len(learner.predict(self.task)), 150)

    def test_lightgbm_continues_boosting(self):
        stored = LightGBMClassifLearner()
        stored.param_set.values = {"num_iterations": 5, "num_threads": 1}
        stored.train(self.task)

        learner = LightGBMClassifLearner()
        learner.param_set.values = {"num_iterations": 8, "num_threads": 1}
        learner.hotstart_stack = HotstartStack(stored)
        learner.train(self.task)

        self.assertEqual(learner.model.current_iteration(), 8)
        self.assertEqual(stored.model.current_iteration(), 5)
        self.assertFalse(math.isnan(learner.timings["train"]))


if __name__ == '__main__':
    unittest.main()
