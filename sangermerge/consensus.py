"""
Consensus Calling

Walks an alignment column by column and calls one consensus character per
column under a minimum-agreement threshold.

Threshold:
    threshold = max(min_information, min_reads / n_reads)

At each column the most frequent non-gap character is called when the
fraction of ALL rows carrying it (terminal gaps included in the
denominator) meets the threshold. Different characters tied for the
majority are called as the IUPAC ambiguity code covering all of them.
Columns that fail the threshold get the no-consensus character, which is
the gap character by default. ConsensusCall.called tells the two apart.

Example Usage:
    >>> from sangermerge.consensus import call_consensus
    >>> call = call_consensus(["ACGT", "ACGA"], min_information=1.0)
    >>> call.gapped
    'ACG-'
    >>> call = call_consensus(["ACGT", "ACGA"], min_information=0.5)
    >>> call.gapped
    'ACGW'

Author: Steph Smith (steph.smith@unc.edu)
"""

from collections import Counter
from dataclasses import dataclass
from typing import List, Union, Sequence, Any
import logging

import numpy as np
from Bio.Align import MultipleSeqAlignment
from Bio.Data import IUPACData
from Bio.SeqRecord import SeqRecord

from .errors import ConsensusError

logger = logging.getLogger(__name__)

GAP_CHARS = "-."

# frozenset of bases -> IUPAC code
_BASES_TO_CODE = {
    frozenset(bases): code
    for code, bases in IUPACData.ambiguous_dna_values.items()
    if code != "X"
}


@dataclass(frozen=True)
class ConsensusCall:
    """
    Result of consensus calling.

    Attributes
    ----------
    gapped : str
        One character per alignment column; uncalled columns carry
        no_consensus_char
    called : np.ndarray
        Boolean mask, True where a consensus character was called
    support : np.ndarray
        Fraction of rows supporting the called (or best) character per column
    threshold : float
        Effective agreement threshold used
    no_consensus_char : str
        Sentinel written to uncalled columns
    """
    gapped: str
    called: np.ndarray
    support: np.ndarray
    threshold: float
    no_consensus_char: str = "-"

    @property
    def degapped(self) -> str:
        """Consensus with gap and sentinel characters removed."""
        return "".join(
            char for char, was_called in zip(self.gapped, self.called)
            if was_called and char not in GAP_CHARS
        )

    @property
    def n_called(self) -> int:
        return int(self.called.sum())

    def __len__(self) -> int:
        return len(self.gapped)


def effective_min_information(min_information: float, min_reads: int, n_reads: int) -> float:
    """
    Combine the fractional and absolute thresholds.

    Returns the larger of min_information and min_reads / n_reads.

    Raises
    ------
    ConsensusError
        If a threshold is out of range or n_reads is not positive
    """
    if n_reads < 1:
        raise ConsensusError("Cannot call a consensus without reads")
    if not 0.0 <= min_information <= 1.0:
        raise ConsensusError(f"min_information must be between 0 and 1, got {min_information}")
    if min_reads < 0:
        raise ConsensusError(f"min_reads must be >= 0, got {min_reads}")
    return max(float(min_information), min_reads / n_reads)


def ambiguity_code(chars: Sequence[str]) -> str:
    """
    Return the IUPAC nucleotide code covering every character in chars.

    Examples
    --------
    >>> ambiguity_code(["A", "G"])
    'R'
    >>> ambiguity_code(["A", "R", "C"])
    'V'
    """
    bases = set()
    for char in chars:
        bases.update(IUPACData.ambiguous_dna_values.get(char, "ACGT"))
    return _BASES_TO_CODE.get(frozenset(bases), "N")


def _alignment_rows(alignment: Any) -> List[str]:
    """Extract uppercase row strings from an alignment or a list of rows."""
    rows = []
    for row in alignment:
        if isinstance(row, SeqRecord):
            row = row.seq
        rows.append(str(row).upper())
    return rows


def call_consensus(
    alignment: Union[MultipleSeqAlignment, Sequence[Any]],
    min_information: float = 1.0,
    min_reads: int = 0,
    no_consensus_char: str = "-",
) -> ConsensusCall:
    """
    Call a column-wise consensus.

    Parameters
    ----------
    alignment : MultipleSeqAlignment or Sequence
        Aligned rows (SeqRecords, Seqs or strings of equal length)
    min_information : float, optional
        Minimum fraction of rows that must carry the called character
        (default: 1.0)
    min_reads : int, optional
        Minimum number of rows that must carry the called character
        (default: 0)
    no_consensus_char : str, optional
        Character for uncalled columns (default: "-")

    Returns
    -------
    ConsensusCall
        Gapped consensus with per-column call mask and support

    Raises
    ------
    ConsensusError
        If the alignment is empty, rows differ in length, or thresholds are
        invalid
    """
    rows = _alignment_rows(alignment)
    if not rows:
        raise ConsensusError("Cannot call a consensus on an empty alignment")

    aln_length = len(rows[0])
    if any(len(row) != aln_length for row in rows):
        raise ConsensusError("All aligned rows must have the same length")

    n_rows = len(rows)
    threshold = effective_min_information(min_information, min_reads, n_rows)

    logger.debug(
        f"Calling consensus over {n_rows} rows x {aln_length} columns "
        f"(threshold={threshold:.3f})"
    )

    consensus_chars = []
    called = np.zeros(aln_length, dtype=bool)
    support = np.zeros(aln_length, dtype=float)

    for pos in range(aln_length):
        counts = Counter(row[pos] for row in rows if row[pos] not in GAP_CHARS)
        if not counts:
            consensus_chars.append(no_consensus_char)
            continue

        top = max(counts.values())
        fraction = top / n_rows
        support[pos] = fraction

        if fraction >= threshold:
            tied = sorted(char for char, count in counts.items() if count == top)
            consensus_chars.append(tied[0] if len(tied) == 1 else ambiguity_code(tied))
            called[pos] = True
        else:
            consensus_chars.append(no_consensus_char)

    gapped = "".join(consensus_chars)
    logger.debug(f"Called {int(called.sum())}/{aln_length} consensus columns")

    return ConsensusCall(
        gapped=gapped,
        called=called,
        support=support,
        threshold=threshold,
        no_consensus_char=no_consensus_char,
    )


def degap(sequence: Any) -> str:
    """Remove gap characters ('-' and '.') from a sequence."""
    return "".join(char for char in str(sequence) if char not in GAP_CHARS)
