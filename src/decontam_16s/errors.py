# ===================================== IMPORTS ====================================== #

# Standard Library Imports
from typing import Iterable

# ==================================== EXCEPTIONS ==================================== #

def _preview(ids: Iterable[str], n: int = 10) -> str:
    ids = [str(i) for i in ids]
    shown = ", ".join(ids[:n])
    return shown + (f", ... (+{len(ids) - n} more)" if len(ids) > n else "")


class DecontamError(Exception):
    """Base class for all errors raised by the contaminant filtering pipeline."""
    pass


class ConfigError(DecontamError, ValueError):
    """Invalid or incomplete configuration."""
    pass


class InvalidThreshold(ConfigError):
    """Contamination score threshold outside [0, 1]."""

    def __init__(self, threshold):
        self.threshold = threshold
        super().__init__(
            f"Invalid threshold {threshold!r}: must be a number in [0, 1]"
        )


class MalformedTaxonomy(DecontamError, ValueError):
    """A taxonomy string does not split into the expected number of ranks."""

    def __init__(self, feature_id: str, n_fields: int, expected: int, raw: str = ""):
        self.feature_id = feature_id
        self.n_fields = n_fields
        self.expected = expected
        self.raw = raw
        super().__init__(
            f"Malformed taxonomy for feature '{feature_id}': "
            f"expected {expected} ranks, found {n_fields} ({raw!r})"
        )


class OrphanSample(DecontamError, KeyError):
    """Abundance matrix columns without a matching sample metadata row."""

    def __init__(self, sample_ids: Iterable[str]):
        self.sample_ids = list(sample_ids)
        super().__init__(
            f"{len(self.sample_ids)} sample(s) in the feature table have no "
            f"metadata: {_preview(self.sample_ids)}"
        )

    def __str__(self) -> str:
        return self.args[0]


class OrphanFeature(DecontamError, KeyError):
    """Abundance matrix rows without a matching taxonomy (or decision) entry."""

    def __init__(self, feature_ids: Iterable[str], what: str = "taxonomy"):
        self.feature_ids = list(feature_ids)
        super().__init__(
            f"{len(self.feature_ids)} feature(s) in the feature table have no "
            f"{what}: {_preview(self.feature_ids)}"
        )

    def __str__(self) -> str:
        return self.args[0]


class DuplicateIdentifier(DecontamError, ValueError):
    """The same sample or feature id appears more than once."""

    def __init__(self, kind: str, ids: Iterable[str]):
        self.kind = kind
        self.ids = list(ids)
        super().__init__(f"Duplicate {kind} id(s): {_preview(self.ids)}")


class InvalidCounts(DecontamError, ValueError):
    """The abundance matrix holds negative, non-integer or missing values."""
    pass


class DegenerateBatch(DecontamError):
    """A batch cannot contribute a statistic. Recoverable: the batch is excluded."""

    def __init__(self, batch: str, reason: str):
        self.batch = batch
        self.reason = reason
        super().__init__(f"Batch '{batch}' excluded: {reason}")


class EmptyResult(DecontamError, UserWarning):
    """No features or no samples survived a filtering stage.

    Issued as a warning: the pipeline continues but the study most likely needs
    operator attention.
    """
    pass
