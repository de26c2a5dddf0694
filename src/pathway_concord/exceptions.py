"""Exception and warning types raised by the pathway comparison pipeline."""


class PathwayConcordError(Exception):
    """Base class for all pipeline errors."""


class InputError(PathwayConcordError, ValueError):
    """Fatal problem with an input table; aborts the run."""


class MalformedCatalogError(InputError):
    """A gene-set source row is missing its term or gene field."""


class MissingColumnsError(InputError):
    """A differential-expression table lacks required columns."""


class EmptyUniverseError(InputError):
    """No gene passed the detection threshold."""


class CatalogNotAugmentedError(InputError):
    """The catalog's background entry does not match the tested universe."""


class EmptyInputWarning(UserWarning):
    """An input collapsed to nothing; downstream stages return empty results."""


class EmptyGeneListWarning(EmptyInputWarning):
    """The up- or down-regulated gene list is empty."""


class StatisticalComputationError(PathwayConcordError, ArithmeticError):
    """A statistic could not be computed for a single gene set."""


class InsufficientPermutationsError(StatisticalComputationError, ValueError):
    """Requested permutation count is not positive."""


class PermutationTimeoutError(PathwayConcordError, TimeoutError):
    """Permutation testing did not finish within the allotted time."""


class UndefinedJaccardError(PathwayConcordError, ValueError):
    """Jaccard index requested for two empty sets without a convention."""
