"""Exception types raised while building and running the cost-effectiveness model."""


class CEAError(Exception):
    """Base class for model construction and run failures."""


class InsufficientDataError(CEAError):
    """A chronic-condition bucket has no observations to average."""

    def __init__(self, bucket, n_observations: int = 0):
        self.bucket = bucket
        self.n_observations = n_observations
        super().__init__(
            f"Chronic-condition bucket {bucket} has no non-missing expenditure "
            f"observations ({n_observations} rows); mean cost is undefined"
        )


class InvalidTransitionMatrixError(CEAError):
    """A transition matrix is malformed or a row does not sum to 1."""

    def __init__(self, message: str, row=None):
        self.row = row
        super().__init__(message)


class InvalidDistributionParameterError(CEAError):
    """A PSA distribution parameter is outside its valid domain."""

    def __init__(self, parameter: str, value, requirement: str):
        self.parameter = parameter
        self.value = value
        super().__init__(f"PSA parameter '{parameter}' = {value!r}: {requirement}")


class OutOfRangeSampleError(CEAError):
    """A drawn utility fell outside [0, 1] under the strict sampling policy."""

    def __init__(self, parameter: str, value: float):
        self.parameter = parameter
        self.value = value
        super().__init__(f"Sampled {parameter} = {value:.6f} outside [0, 1]")
