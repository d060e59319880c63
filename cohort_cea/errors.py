"""
Exceptions raised by the cohort model.

Every error carries optional context (PSA sample index, strategy, parameter
field, offending value) so that a failed run can be reproduced from the
message alone.
"""


class ModelError(ValueError):
    """
    Base class for invariant violations in the cohort model.

    Args:
        message (str): Human readable description of the failure
        sample (int): PSA sample index, if the failure happened inside a PSA draw
        strategy (str): Strategy being evaluated
        field (str): Parameter field or matrix entry at fault
        value (float): Offending value
    """

    def __init__(self, message, sample=None, strategy=None, field=None, value=None):
        self.message = message
        self.sample = sample
        self.strategy = strategy
        self.field = field
        self.value = value
        super().__init__(self._render())

    def _render(self):
        context = []
        if self.sample is not None:
            context.append(f"sample={self.sample}")
        if self.strategy is not None:
            context.append(f"strategy={self.strategy}")
        if self.field is not None:
            context.append(f"field={self.field}")
        if self.value is not None:
            context.append(f"value={self.value!r}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class InvalidDistributionError(ModelError):
    """Initial cohort vector is negative somewhere or does not sum to 1."""


class InvalidMatrixError(ModelError):
    """Transition matrix is not row-stochastic or has an entry outside [0, 1]."""


class InvalidHorizonError(ModelError):
    """Cycle count is incompatible with the requested within-cycle correction."""


class ComputationError(ModelError):
    """Non-finite value produced while computing rewards, ratios or PSA draws."""
