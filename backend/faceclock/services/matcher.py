"""Nearest-neighbour identity matching over enrolled face descriptors."""
import logging
import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Union

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.55

Descriptor = Union[Sequence[float], np.ndarray]


@dataclass
class MatchResult:
    employee_id: Optional[int]
    distance: float

    @property
    def matched(self) -> bool:
        return self.employee_id is not None


def euclidean_distance(a: Descriptor, b: Descriptor) -> float:
    """Euclidean distance between two equal-length descriptors."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Descriptor length mismatch: {a.shape} vs {b.shape}")
    return float(np.linalg.norm(a - b))


def confidence(distance: float) -> float:
    """Advisory score, 1 - distance. Not a probability."""
    if math.isinf(distance):
        return 0.0
    return round(1.0 - distance, 4)


def match(
    query: Descriptor,
    candidates: Mapping[int, Descriptor],
    threshold: float = DEFAULT_THRESHOLD,
) -> MatchResult:
    """Find the closest enrolled descriptor to `query`.

    Every candidate is scored in one vectorised pass and reduced with a
    first-occurrence argmin, so ties go to the earliest candidate in the
    mapping's iteration order. The id is only returned when the minimum
    distance is strictly below `threshold`; the raw distance is always
    returned (inf when there is nothing to compare against).
    """
    query = np.asarray(query, dtype=np.float64)

    ids = []
    rows = []
    for employee_id, descriptor in candidates.items():
        descriptor = np.asarray(descriptor, dtype=np.float64)
        if descriptor.shape != query.shape:
            logger.warning(
                f"Skipping descriptor for employee {employee_id}: "
                f"length {descriptor.shape} does not match query {query.shape}"
            )
            continue
        ids.append(employee_id)
        rows.append(descriptor)

    if not rows:
        return MatchResult(employee_id=None, distance=math.inf)

    distances = np.linalg.norm(np.vstack(rows) - query, axis=1)
    best = int(np.argmin(distances))
    best_distance = float(distances[best])

    if best_distance < threshold:
        return MatchResult(employee_id=ids[best], distance=best_distance)
    return MatchResult(employee_id=None, distance=best_distance)
