import math
import pickle
import unittest

import numpy as np
import pandas as pd

from learnerkit import (
    DEFAULT_REFLECTIONS,
    DataBackend,
    DataBackendCbind,
    ParamDbl,
    ParamFct,
    ParamInt,
    ParamLgl,
    ParamSet,
    ParamUty,
    Reflections,
    TaskClassif,
    TaskRegr,
    as_data_backend,
    partition,
)
from learnerkit.prediction import PredictionData, PredictionDataClassif, as_prediction, as_prediction_data
from learnerkit.utils import calculate_hash
from test_learner import make_iris


def positive(value):
    return True if value > 0 else "must be positive"


class TestReflections(unittest.TestCase):

    def test_tables(self):
        self.assertEqual(DEFAULT_REFLECTIONS.predict_types_for("classif"), ("response", "prob"))
        self.assertEqual(DEFAULT_REFLECTIONS.implied_predict_types("regr", "se"), ("response", "se"))
        self.assertIn("twoclass", DEFAULT_REFLECTIONS.properties_for("classif"))
        self.assertNotIn("twoclass", DEFAULT_REFLECTIONS.properties_for("regr"))
        self.assertEqual(DEFAULT_REFLECTIONS.predict_sets, ("train", "test", "internal_valid"))
        with self.assertRaises(ValueError):
            DEFAULT_REFLECTIONS.predict_types_for("surv")

    def test_read_only(self):
        with self.assertRaises(TypeError):
            DEFAULT_REFLECTIONS.learner_predict_types["surv"] = {"crank": ["crank"]}

    def test_pickle(self):
        restored = pickle.loads(pickle.dumps(DEFAULT_REFLECTIONS))
        self.assertEqual(restored.predict_types_for("regr"), DEFAULT_REFLECTIONS.predict_types_for("regr"))

    def test_custom_tables(self):
        reflections = Reflections(task_types=["classif"], learner_predict_types={"classif": {"response": ["response"]}})
        self.assertEqual(reflections.task_types, ("classif",))
        with self.assertRaises(ValueError):
            Reflections(task_types=["classif", "surv"], learner_predict_types={"classif": {"response": ["response"]}})


class TestDataBackend(unittest.TestCase):

    def setUp(self):
        self.df = pd.DataFrame({"x": [1.0, 2.0, 3.0], "y": ["a", "b", "c"]})

    def test_default_primary_key(self):
        backend = DataBackend(self.df)
        self.assertEqual(backend.primary_key, "..row_id")
        self.assertEqual(backend.rownames, [0, 1, 2])
        self.assertEqual(backend.colnames, ["..row_id", "x", "y"])
        self.assertEqual(backend.nrow, 3)

    def test_data_order(self):
        backend = DataBackend(self.df)
        data = backend.data(rows=[2, 0, 99], cols=["y"])
        self.assertEqual(data["y"].tolist(), ["c", "a"])

    def test_custom_primary_key(self):
        df = self.df.assign(id=[10, 20, 30])
        backend = as_data_backend(df, primary_key="id")
        self.assertEqual(backend.rownames, [10, 20, 30])
        with self.assertRaises(ValueError):
            DataBackend(self.df.assign(id=[1, 1, 2]), primary_key="id")

    def test_cbind(self):
        b1 = DataBackend(self.df)
        b2 = DataBackend(pd.DataFrame({"z": [True, False, True], "x": [0.0, 0.0, 0.0]}))
        combined = DataBackendCbind(b1, b2)
        self.assertEqual(combined.colnames, ["..row_id", "x", "y", "z"])
        self.assertEqual(combined.data(cols=["x"])["x"].tolist(), [1.0, 2.0, 3.0])

    def test_hash(self):
        self.assertEqual(DataBackend(self.df).hash, DataBackend(self.df.copy()).hash)
        self.assertNotEqual(DataBackend(self.df).hash, DataBackend(self.df.assign(x=0.0)).hash)

    def test_conversion_errors(self):
        with self.assertRaises(TypeError):
            as_data_backend([1, 2, 3])
        self.assertEqual(as_data_backend({"a": [1, 2]}).nrow, 2)


class TestTask(unittest.TestCase):

    def setUp(self):
        self.df = make_iris()
        self.task = TaskClassif("iris", self.df, target="species")

    def test_column_metadata(self):
        self.assertEqual(self.task.target_names, ["species"])
        self.assertEqual(self.task.feature_names, ["sepal_length", "sepal_width", "petal_length", "petal_width"])
        self.assertEqual(self.task.col_type("species"), "factor")
        self.assertEqual(self.task.class_names, ["setosa", "versicolor", "virginica"])
        self.assertEqual(set(self.task.feature_types["type"]), {"numeric"})
        self.assertEqual(self.task.properties, ["multiclass"])
        self.assertEqual(self.task.nrow, 150)
        self.assertEqual(self.task.ncol, 5)

    def test_column_types(self):
        df = pd.DataFrame({
            "flag": [True, False, True, False],
            "count": [1, 2, 3, 4],
            "name": ["a", "b", "a", "b"],
            "level": pd.Categorical(["lo", "hi", "lo", "hi"], categories=["lo", "hi"], ordered=True),
            "target": [0.5, 1.5, 2.5, 3.5],
        })
        task = TaskRegr("types", df, target="target")
        types = dict(zip(task.feature_types["id"], task.feature_types["type"]))
        self.assertEqual(types, {"flag": "logical", "count": "integer", "name": "character", "level": "ordered"})
        self.assertEqual(task.col_levels("level"), ["lo", "hi"])

    def test_regression_target_must_be_numeric(self):
        with self.assertRaises(ValueError):
            TaskRegr("bad", self.df, target="species")

    def test_binary_task(self):
        df = self.df[self.df["species"] != "setosa"].reset_index(drop=True)
        task = TaskClassif("binary", df, target="species", positive="virginica")
        self.assertEqual(task.properties, ["twoclass"])
        self.assertEqual(task.positive, "virginica")
        with self.assertRaises(ValueError):
            TaskClassif("bad", self.df, target="species", positive="setosa")

    def test_data_keeps_levels(self):
        truth = self.task.truth(rows=[0, 1])
        self.assertEqual(list(truth.cat.categories), ["setosa", "versicolor", "virginica"])

    def test_filter_and_select(self):
        task = self.task.clone()
        task.filter(np.array([5, 6, 7]))
        task.select(["petal_length"])
        self.assertEqual(task.row_ids, [5, 6, 7])
        self.assertEqual(task.feature_names, ["petal_length"])
        self.assertEqual(self.task.nrow, 150)
        self.assertNotEqual(task.hash, self.task.hash)
        with self.assertRaises(ValueError):
            task.select(["unknown"])

    def test_col_roles(self):
        df = self.df.assign(w=1.0)
        task = TaskClassif("weighted", df, target="species")
        task.set_col_roles("w", "weight")
        self.assertNotIn("w", task.feature_names)
        self.assertIn("weights", task.properties)
        with self.assertRaises(ValueError):
            task.set_col_roles("w", "importance")

    def test_remove_backend_keeps_hash(self):
        task = self.task.clone()
        task_hash = task.hash
        task.remove_backend()
        self.assertIsNone(task.backend)
        self.assertEqual(task.hash, task_hash)
        with self.assertRaises(RuntimeError):
            task.data()

    def test_clone_shares_backend(self):
        task = self.task.clone()
        self.assertIs(task.backend, self.task.backend)
        task.filter([1])
        self.assertEqual(self.task.nrow, 150)

    def test_partition(self):
        split = partition(self.task, ratio=0.8, seed=42)
        self.assertEqual(len(split["train"]) + len(split["test"]), 150)
        self.assertEqual(len(split["test"]), 30)
        self.assertFalse(set(split["train"]) & set(split["test"]))


class TestParamSet(unittest.TestCase):

    def setUp(self):
        self.ps = ParamSet([
            ParamInt("n", lower=1, upper=10, default=5, tags=["train", "hotstart"]),
            ParamDbl("alpha", lower=0.0, upper=1.0, tags=["train"]),
            ParamFct("method", levels=["a", "b"], default="a", tags=["predict"]),
            ParamLgl("verbose", default=False, tags=["train"]),
            ParamUty("custom", custom_check=positive),
        ])

    def test_ids_and_defaults(self):
        self.assertEqual(self.ps.length, 5)
        self.assertEqual(self.ps.ids(tags="train"), ["n", "alpha", "verbose"])
        self.assertEqual(self.ps.ids(tags=["train", "hotstart"]), ["n"])
        self.assertEqual(self.ps.default, {"n": 5, "method": "a", "verbose": False})
        self.assertIn("alpha", self.ps)

    def test_values(self):
        self.ps.values = {"n": 3, "method": "b"}
        self.assertEqual(self.ps.get_values(tags="train"), {"n": 3})
        self.ps.set_values(alpha=0.5)
        self.assertEqual(self.ps.values, {"n": 3, "method": "b", "alpha": 0.5})
        self.ps.set_values(n=None)
        self.assertEqual(self.ps.values, {"method": "b", "alpha": 0.5})

        values = self.ps.values
        values["n"] = 1000
        self.assertNotIn("n", self.ps.values)

    def test_validation(self):
        with self.assertRaises(ValueError):
            self.ps.set_values(n=11)
        with self.assertRaises(ValueError):
            self.ps.set_values(n=2.5)
        with self.assertRaises(ValueError):
            self.ps.set_values(verbose=1)
        with self.assertRaises(ValueError):
            self.ps.set_values(custom=-1)
        with self.assertRaises(ValueError):
            self.ps.values = {"unknown": 1}
        self.ps.set_values(n=np.int64(4), alpha=np.float64(0.1), custom=3)
        self.assertEqual(self.ps.values["n"], 4)

    def test_invalid_definitions(self):
        with self.assertRaises(ValueError):
            ParamDbl("x", lower=1.0, upper=0.0)
        with self.assertRaises(ValueError):
            ParamInt("x", lower=0, upper=2, default=5)
        with self.assertRaises(ValueError):
            self.ps.add(ParamInt("n"))

    def test_search_space(self):
        space = self.ps.search_space()
        names = [entry["name"] for entry in space]
        self.assertEqual(names, ["n", "alpha", "method", "verbose"])
        self.assertEqual(space[0], {"name": "n", "type": "range", "bounds": [1, 10], "value_type": "int"})
        self.assertEqual(space[2]["type"], "choice")

    def test_clone(self):
        self.ps.values = {"n": 2}
        cloned = self.ps.clone()
        cloned.set_values(n=7)
        self.assertEqual(self.ps.values, {"n": 2})
        self.assertTrue(cloned.params["n"].has_default)
        self.assertFalse(cloned.params["alpha"].has_default)

    def test_infinite_bound(self):
        ps = ParamSet([ParamInt("rounds", lower=1, upper=math.inf)])
        ps.values = {"rounds": math.inf}
        self.assertEqual(ps.search_space(), [])


class TestPrediction(unittest.TestCase):

    def setUp(self):
        self.task = TaskClassif("iris", make_iris(), target="species")

    def test_prob_converted_to_response(self):
        prob = np.tile([0.2, 0.5, 0.3], (3, 1))
        pdata = as_prediction_data({"prob": prob}, self.task, [0, 1, 2], ("response", "prob"))
        prediction = as_prediction(pdata)
        self.assertEqual(prediction.response.astype(str).tolist(), ["versicolor"] * 3)
        self.assertEqual(list(prediction.prob.columns), self.task.class_names)
        self.assertEqual(int(prediction.confusion.to_numpy().sum()), 3)

    def test_prob_data_frame_is_aligned(self):
        prob = pd.DataFrame({"virginica": [1.0], "setosa": [0.0]})
        pdata = as_prediction_data({"prob": prob}, self.task, [0], ("response", "prob"))
        self.assertEqual(pdata.frame["prob.versicolor"].tolist(), [0.0])
        self.assertEqual(pdata.frame["response"].astype(str).tolist(), ["virginica"])

    def test_invalid_results(self):
        with self.assertRaises(TypeError):
            as_prediction_data(["setosa"], self.task, [0], ("response",))
        with self.assertRaises(ValueError):
            as_prediction_data({"response": ["setosa", "setosa"]}, self.task, [0], ("response",))
        with self.assertRaises(ValueError):
            as_prediction_data({"response": ["setosa"]}, self.task, [0], ("response", "prob"))

    def test_combine_and_concat(self):
        first = as_prediction_data({"response": ["setosa", None]}, self.task, [0, 1], ("response",))
        self.assertEqual(first.missing_row_ids(), [1])
        patch = as_prediction_data({"response": ["virginica"]}, self.task, [1], ("response",))
        combined = first.combine(patch)
        self.assertEqual(combined.row_ids, [0, 1])
        self.assertEqual(combined.frame["response"].astype(str).tolist(), ["setosa", "virginica"])
        self.assertIsInstance(combined, PredictionDataClassif)

        other = as_prediction_data({"response": ["versicolor"]}, self.task, [2], ("response",))
        joined = as_prediction(combined) + as_prediction(other)
        self.assertEqual(joined.row_ids, [0, 1, 2])
        self.assertEqual(joined.missing, [])
        self.assertIsNone(as_prediction(None))

    def test_mixed_predict_types_keep_common_columns(self):
        prob = as_prediction_data({"prob": np.tile([0.6, 0.3, 0.1], (2, 1))}, self.task, [0, 1], ("response", "prob"))
        plain = as_prediction_data({"response": ["virginica"]}, self.task, [2], ("response",))

        joined = as_prediction(PredictionData.concat([prob, plain]))
        self.assertEqual(joined.predict_types, ["response"])
        self.assertIsNone(joined.prob)
        self.assertFalse(any(col.startswith("prob.") for col in joined.data.columns))
        self.assertEqual(joined.response.astype(str).tolist(), ["setosa", "setosa", "virginica"])

        patched = prob.combine(as_prediction_data({"response": ["versicolor"]}, self.task, [1], ("response",)))
        self.assertEqual(patched.predict_types, ["response"])
        self.assertEqual(patched.frame["response"].astype(str).tolist(), ["setosa", "versicolor"])
        self.assertEqual(prob.restrict(["response", "prob"]).predict_types, ["response", "prob"])


class TestHashing(unittest.TestCase):

    def test_dict_order_does_not_matter(self):
        self.assertEqual(calculate_hash({"a": 1, "b": 2}), calculate_hash({"b": 2, "a": 1}))
        self.assertNotEqual(calculate_hash({"a": 1}), calculate_hash({"a": 2}))


if __name__ == '__main__':
    unittest.main()
