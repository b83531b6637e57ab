"""
Exception types raised by learners and their collaborators.
"""


class LearnerNotTrainedError(RuntimeError):
    """Raised when predicting with a learner that holds no fitted model."""


class TaskCompatibilityError(ValueError):
    """Raised when a task does not match the capabilities of a learner."""


class StageExecutionError(RuntimeError):
    """
    Raised when an encapsulated train or predict stage failed and no
    fallback learner could take over.
    """

    def __init__(self, stage: str, learner_id: str, message: str):
        self.stage = stage
        self.learner_id = learner_id
        self.message = message
        super().__init__(f"Learner '{learner_id}' failed during {stage}: {message}")

    def __reduce__(self):
        return (type(self), (self.stage, self.learner_id, self.message))
