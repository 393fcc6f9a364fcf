"""
Merge Quality Statistics

Statistics that help judge whether a consensus is trustworthy:

1. Difference counting
   Each aligned read is compared column by column against the gapped
   consensus (no realignment):
   - pairwise differences: both read and consensus carry a base and the
     bases differ
   - unused characters: the consensus is the no-consensus sentinel but the
     read carries a base (bases that did not make it into the consensus)
   Reads are independent, so counting is fanned out over a worker pool.

2. Distance matrix
   Jukes-Cantor corrected distances between all aligned reads. Only
   letter-vs-letter sites are compared; gap-vs-letter sites are not
   penalized. IUPAC codes whose base sets overlap are not mismatches.

       p = mismatches / compared_sites
       d = -3/4 * ln(1 - 4p/3)

   d is undefined (NaN) when no site is compared or p >= 0.75.

3. Dendrogram
   Hierarchical agglomerative clustering of the distance matrix with SciPy
   (UPGMA by default), exportable to Newick and Bio.Phylo.

Example Usage:
    >>> from sangermerge.quality import jukes_cantor_distance
    >>> round(jukes_cantor_distance("ACGTACGTAC", "ACGTACGTAA"), 4)
    0.1073

Author: Steph Smith (steph.smith@unc.edu)
"""

from dataclasses import dataclass
from functools import partial
from io import StringIO
from pathlib import Path
from typing import List, Tuple, Any, Optional, Sequence, Union
import logging
import math

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import linkage, to_tree, ClusterNode
from scipy.spatial.distance import squareform
from Bio import Phylo
from Bio.Phylo import BaseTree
from Bio.Data import IUPACData

from .consensus import GAP_CHARS
from .errors import ConfigurationError
from .utils import parallel_map

logger = logging.getLogger(__name__)

VALID_LINKAGE_METHODS = ["average", "single", "complete", "weighted"]


# ============================================================================
# Difference Counting
# ============================================================================

def count_differences(
    row: str,
    consensus: str,
    gap_chars: str = GAP_CHARS,
    called: Optional[Sequence[bool]] = None,
) -> Tuple[int, int]:
    """
    Count differences between one aligned read and the gapped consensus.

    Parameters
    ----------
    row : str
        Aligned read
    consensus : str
        Gapped consensus
    gap_chars : str, optional
        Characters treated as gaps (default: "-.")
    called : Sequence[bool], optional
        Per-column consensus call mask. When omitted, consensus columns
        holding a gap character are taken as uncalled.

    Returns
    -------
    Tuple[int, int]
        (pairwise differences, unused characters)

    Raises
    ------
    ValueError
        If row, consensus and called differ in length

    Examples
    --------
    >>> count_differences("ACGTA", "ACCT-")
    (1, 1)
    >>> count_differences("ACGT", "ACNT", called=[True, True, False, True])
    (0, 1)
    """
    if len(row) != len(consensus):
        raise ValueError(
            f"Aligned read and consensus must have the same length "
            f"({len(row)} != {len(consensus)})"
        )
    consensus = consensus.upper()
    if called is None:
        called = [cons not in gap_chars for cons in consensus]
    elif len(called) != len(consensus):
        raise ValueError(
            f"Call mask and consensus must have the same length "
            f"({len(called)} != {len(consensus)})"
        )

    diffs = 0
    unused = 0
    for base, cons, was_called in zip(row.upper(), consensus, called):
        if base in gap_chars:
            continue
        if not was_called:
            unused += 1
        elif base != cons:
            diffs += 1
    return diffs, unused


def _row_differences(
    item: Tuple[str, str],
    consensus: str,
    called: Optional[Sequence[bool]],
) -> Tuple[str, int, int]:
    name, row = item
    diffs, unused = count_differences(row, consensus, called=called)
    return name, diffs, unused


def difference_table(
    alignment: Any,
    consensus: str,
    processors: int = 1,
    called: Optional[Sequence[bool]] = None,
) -> pd.DataFrame:
    """
    Count differences to the consensus for every read in the alignment.

    Parameters
    ----------
    alignment : MultipleSeqAlignment or iterable of SeqRecord
        Aligned reads (without the consensus row)
    consensus : str
        Gapped consensus
    processors : int, optional
        Worker processes (default: 1)
    called : Sequence[bool], optional
        Per-column consensus call mask (ConsensusCall.called); required
        when the no-consensus character is not a gap

    Returns
    -------
    pd.DataFrame
        Columns: name, pairwise_diffs_to_consensus, unused_chars; one row
        per read in alignment order
    """
    items = [(rec.id, str(rec.seq)) for rec in alignment]
    if called is not None:
        called = [bool(flag) for flag in called]
    worker = partial(_row_differences, consensus=consensus, called=called)
    results = parallel_map(worker, items, processors=processors)

    df = pd.DataFrame(
        results,
        columns=['name', 'pairwise_diffs_to_consensus', 'unused_chars'],
    )
    logger.debug(
        f"Differences to consensus: {int(df['pairwise_diffs_to_consensus'].sum())} pairwise, "
        f"{int(df['unused_chars'].sum())} unused"
    )
    return df


# ============================================================================
# Distance Matrix
# ============================================================================

def _bases(char: str) -> str:
    return IUPACData.ambiguous_dna_values.get(char, char)


def _is_match(base1: str, base2: str) -> bool:
    """True if two nucleotide characters share at least one base."""
    if base1 == base2:
        return True
    return bool(set(_bases(base1)) & set(_bases(base2)))


def jukes_cantor_distance(seq1: str, seq2: str) -> float:
    """
    Jukes-Cantor corrected distance between two aligned sequences.

    Gap-vs-letter sites are ignored.

    Parameters
    ----------
    seq1, seq2 : str
        Aligned sequences of equal length

    Returns
    -------
    float
        Corrected distance, or NaN if no site is compared or the observed
        p-distance saturates (p >= 0.75)

    Raises
    ------
    ValueError
        If the sequences have different lengths
    """
    if len(seq1) != len(seq2):
        raise ValueError("Aligned sequences must have the same length")

    compared = 0
    mismatches = 0
    for base1, base2 in zip(seq1.upper(), seq2.upper()):
        if base1 in GAP_CHARS or base2 in GAP_CHARS:
            continue
        compared += 1
        if not _is_match(base1, base2):
            mismatches += 1

    if compared == 0:
        return float('nan')

    p = mismatches / compared
    if p >= 0.75:
        return float('nan')
    if p == 0:
        return 0.0
    return -0.75 * math.log(1 - 4 * p / 3)


def distance_matrix(alignment: Any) -> pd.DataFrame:
    """
    Pairwise Jukes-Cantor distance matrix over aligned reads.

    Parameters
    ----------
    alignment : MultipleSeqAlignment or iterable of SeqRecord
        Aligned reads (without the consensus row)

    Returns
    -------
    pd.DataFrame
        Symmetric matrix with zero diagonal; read names as index and columns
    """
    names = [rec.id for rec in alignment]
    seqs = [str(rec.seq).upper() for rec in alignment]
    n_seqs = len(seqs)

    logger.debug(f"Calculating Jukes-Cantor distances for {n_seqs} reads")

    values = np.zeros((n_seqs, n_seqs), dtype=float)
    for i in range(n_seqs):
        for j in range(i + 1, n_seqs):
            d = jukes_cantor_distance(seqs[i], seqs[j])
            values[i, j] = d
            values[j, i] = d

    n_undefined = int(np.isnan(values).sum()) // 2
    if n_undefined:
        logger.warning(f"{n_undefined} pairwise distances are undefined (no overlap or saturated)")

    return pd.DataFrame(values, index=names, columns=names)


# ============================================================================
# Dendrogram
# ============================================================================

@dataclass(frozen=True)
class Dendrogram:
    """
    Hierarchical clustering tree over reads.

    Attributes
    ----------
    linkage : np.ndarray
        SciPy linkage matrix
    labels : Tuple[str, ...]
        Leaf labels in distance matrix order
    method : str
        Linkage method used
    """
    linkage: np.ndarray
    labels: Tuple[str, ...]
    method: str = "average"

    def to_tree(self) -> ClusterNode:
        """Root node of the SciPy cluster tree."""
        return to_tree(self.linkage)

    @property
    def leaves(self) -> List[str]:
        """Leaf labels in tree order."""
        return [self.labels[i] for i in self.to_tree().pre_order()]

    def __len__(self) -> int:
        return len(self.labels)

    def _to_clade(self, node: ClusterNode, parent_height: Optional[float] = None) -> BaseTree.Clade:
        # node heights are half the merge distance (ultrametric, as in UPGMA)
        height = node.dist / 2
        branch_length = None if parent_height is None else max(parent_height - height, 0.0)
        if node.is_leaf():
            return BaseTree.Clade(branch_length=branch_length, name=self.labels[node.id])
        return BaseTree.Clade(
            branch_length=branch_length,
            clades=[
                self._to_clade(node.get_left(), height),
                self._to_clade(node.get_right(), height),
            ],
        )

    def to_phylo(self) -> BaseTree.Tree:
        """Convert to a rooted Bio.Phylo tree."""
        return BaseTree.Tree(root=self._to_clade(self.to_tree()), rooted=True)

    def write_newick(self, output_path: Union[str, Path]) -> Path:
        """Write the tree to a Newick file."""
        output_path = Path(output_path)
        Phylo.write(self.to_phylo(), str(output_path), "newick")
        return output_path

    def to_newick(self) -> str:
        """Newick string of the tree."""
        handle = StringIO()
        Phylo.write(self.to_phylo(), handle, "newick")
        return handle.getvalue().strip()


def build_dendrogram(matrix: pd.DataFrame, method: str = "average") -> Dendrogram:
    """
    Cluster reads from their distance matrix.

    Parameters
    ----------
    matrix : pd.DataFrame
        Square symmetric distance matrix
    method : str, optional
        Linkage method (default: "average" = UPGMA)
        Options: "average", "single", "complete", "weighted"

    Returns
    -------
    Dendrogram
        Tree with one leaf per read

    Raises
    ------
    ConfigurationError
        If the linkage method is not supported
    ValueError
        If the matrix has fewer than two reads
    """
    if method not in VALID_LINKAGE_METHODS:
        raise ConfigurationError(
            f"Invalid linkage method: {method}. Must be one of {VALID_LINKAGE_METHODS}"
        )

    labels = tuple(str(name) for name in matrix.index)
    if len(labels) < 2:
        raise ValueError("Need at least 2 reads to build a dendrogram")

    values = matrix.to_numpy(dtype=float, copy=True)
    undefined = np.isnan(values)
    if undefined.any():
        finite = values[~undefined]
        fill = float(finite.max()) if finite.size and finite.max() > 0 else 1.0
        logger.warning(
            f"Replacing {int(undefined.sum()) // 2} undefined distances with {fill:.4f} for clustering"
        )
        values[undefined] = fill
    np.fill_diagonal(values, 0.0)

    logger.debug(f"Building {method} linkage dendrogram over {len(labels)} reads")
    condensed = squareform(values, checks=False)
    linkage_matrix = linkage(condensed, method=method)

    return Dendrogram(linkage=linkage_matrix, labels=labels, method=method)
