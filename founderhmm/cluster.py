"""Average-linkage (UPGMA) clustering of sites or taxa."""

import numpy as np
from scipy.cluster.hierarchy import cut_tree, linkage
from scipy.spatial.distance import squareform


class UPGMACluster:
    """UPGMA dendrogram over a complete distance matrix.

    Partitions returned by the cut methods label groups in order of first
    appearance by leaf index, so group 0 always holds leaf 0.
    """

    def __init__(self, dm, observer=None):
        """Build the dendrogram.

        Arguments:
            - dm (`np.array`): symmetric n x n distance matrix without NaN
            - observer (`callable`): optional callback receiving the finished clusterer

        Returns: UPGMACluster object

        """
        dm = np.asarray(dm, dtype=float)
        assert (dm.ndim == 2) and (dm.shape[0] == dm.shape[1])
        if not np.all(np.isfinite(dm)):
            raise ValueError("Distances must be repaired before clustering!")
        self.n = dm.shape[0]
        self.dm = dm
        if self.n > 1:
            # Symmetrize so that rounding noise does not trip the condensed-form check
            condensed = squareform((dm + dm.T) / 2.0, checks=False)
            self.Z = linkage(condensed, method="average")
        else:
            self.Z = np.zeros((0, 4))
        if observer is not None:
            observer(self)

    def groups_by_height(self, height):
        """Cut the tree at a height, joining only merges below it."""
        if self.n < 2:
            return np.zeros(self.n, dtype=int)
        return cut_tree(self.Z, height=height).ravel().astype(int)

    def groups_by_count(self, k):
        """Cut the tree into exactly k groups."""
        assert k >= 1
        if self.n < 2:
            return np.zeros(self.n, dtype=int)
        k = min(k, self.n)
        return cut_tree(self.Z, n_clusters=k).ravel().astype(int)


def group_sizes(groups):
    groups = np.asarray(groups, dtype=int)
    if groups.size == 0:
        return np.zeros(0, dtype=int)
    return np.bincount(groups)


def largest_groups(groups, n=1):
    """Labels of the n largest groups, ties broken by the lower label."""
    sizes = group_sizes(groups)
    order = np.argsort(-sizes, kind="stable")
    return order[:n]
