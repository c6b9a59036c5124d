# Error kinds raised by the segmentation core. All are contract violations
# (bad data or bad arguments); nothing here is retried.


class SchemaMismatchError(ValueError):
    """A requested attribute is absent or holds a value outside its declared levels."""


class DegenerateDissimilarityError(ValueError):
    """A record pair shares no comparable attribute, so Gower distance is undefined."""

    def __init__(self, i: int, j: int):
        super().__init__(f"No comparable attributes for record pair ({i}, {j})")
        self.pair = (i, j)


class InvalidClusterCountError(ValueError):
    """Cluster count outside 2 <= k <= N."""

    def __init__(self, k: int, n: int):
        super().__init__(f"k={k} is invalid for {n} records (need 2 <= k <= {n})")
        self.k = k
        self.n = n
