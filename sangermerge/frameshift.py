"""
Reference-Guided Frameshift Correction

Sanger base calls occasionally contain spurious or missing bases, which shift
the reading frame of a coding sequence and wreck a codon-aware alignment.
Given a reference amino acid sequence, this module detects and repairs such
frameshifts read by read.

Algorithm:
Each read is aligned to the reference protein with a frameshift-aware
dynamic programme (local, so reads may cover any part of the reference and
carry untranslated flanks). The moves are:

- codon vs residue      3 nt, 1 aa   scored with the substitution matrix
- codon vs gap          3 nt, 0 aa   codon_gap_penalty
- gap vs residue        0 nt, 1 aa   codon_gap_penalty
- skipped base(s)       1-2 nt, 0 aa frameshift_penalty (bases removed)
- partial codon         1-2 nt, 1 aa frameshift_penalty (missing bases
                                     filled with N)

Skipped bases are reported as insertions (the read had extra bases),
filled bases as deletions (the read was missing bases). Bases outside the
aligned region are kept unchanged.

The distance reported for each read is the fraction of aligned residues
whose corrected codon does not translate to the reference residue.

Example Usage:
    >>> from sangermerge.frameshift import correct_frameshifts
    >>> seqs, edits = correct_frameshifts({"fwd_1": "ATGAAACCCGGG"}, "MKPG")
    >>> edits[0].n_insertions, edits[0].n_deletions
    (0, 0)

Author: Steph Smith (steph.smith@unc.edu)
"""

from dataclasses import dataclass, field
from functools import partial, lru_cache
from typing import Dict, List, Tuple, Mapping, Optional, Any
import logging

import pandas as pd
from Bio.Align import substitution_matrices

from .config import FrameshiftConfig
from .errors import FrameshiftCorrectionError, InvalidInputError, ConfigurationError
from .genetic_code import STOP_SYMBOL, resolve_genetic_code
from .utils import sequence_to_str, parallel_map

logger = logging.getLogger(__name__)

# Traceback moves
_STOP = 0
_MATCH = 1          # codon vs residue
_CODON_GAP = 2      # codon vs gap
_RESIDUE_GAP = 3    # gap vs residue
_SKIP1 = 4          # one extraneous base
_SKIP2 = 5          # two extraneous bases
_PARTIAL1 = 6       # one base present for a residue, two missing
_PARTIAL2 = 7       # two bases present for a residue, one missing

# (nucleotides consumed, residues consumed) per move
_STEPS = {
    _MATCH: (3, 1),
    _CODON_GAP: (3, 0),
    _RESIDUE_GAP: (0, 1),
    _SKIP1: (1, 0),
    _SKIP2: (2, 0),
    _PARTIAL1: (1, 1),
    _PARTIAL2: (2, 1),
}


@dataclass(frozen=True)
class FrameshiftEdit:
    """
    Edits applied to one read during frameshift correction.

    Attributes
    ----------
    read : str
        Read name
    insertions : Tuple[int, ...]
        1-based positions (in the original read) of extraneous bases that
        were removed
    deletions : Tuple[int, ...]
        1-based positions (in the original read) after which a missing base
        was filled with N; a position repeats when two bases were missing
    distance : float
        Fraction of aligned residues differing from the reference
    """
    read: str
    insertions: Tuple[int, ...] = field(default_factory=tuple)
    deletions: Tuple[int, ...] = field(default_factory=tuple)
    distance: float = 0.0

    @property
    def n_insertions(self) -> int:
        return len(self.insertions)

    @property
    def n_deletions(self) -> int:
        return len(self.deletions)


@lru_cache(maxsize=None)
def _load_matrix(name: str) -> Dict[str, Dict[str, float]]:
    """Load a Biopython substitution matrix as a nested dict."""
    try:
        matrix = substitution_matrices.load(name)
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown substitution matrix: {name}") from e

    alphabet = matrix.alphabet
    return {a: {b: float(matrix[a, b]) for b in alphabet} for a in alphabet}


def _residue_score(
    residue: str,
    reference_residue: str,
    matrix: Dict[str, Dict[str, float]],
    stop_score: float,
) -> float:
    """Score a translated codon against a reference residue."""
    if residue == STOP_SYMBOL or reference_residue == STOP_SYMBOL:
        return stop_score
    row = matrix.get(residue, matrix['X'])
    return row.get(reference_residue, row['X'])


def clean_reference(reference: Any) -> str:
    """
    Normalise an amino acid reference to an uppercase string.

    A single trailing stop symbol is dropped.

    Raises
    ------
    InvalidInputError
        If the reference is empty or contains non-letter characters
    """
    ref = sequence_to_str(reference, what="reference amino acid sequence")
    ref = "".join(ref.split())
    if ref.endswith(STOP_SYMBOL):
        ref = ref[:-1]

    if not ref:
        raise InvalidInputError("Reference amino acid sequence is empty")

    invalid = {c for c in ref if not (c.isalpha() or c == STOP_SYMBOL)}
    if invalid:
        raise InvalidInputError(
            f"Reference amino acid sequence contains invalid characters: {''.join(sorted(invalid))}"
        )
    return ref


def correct_read(
    item: Tuple[str, str],
    reference: str,
    genetic_code: Mapping[str, str],
    config: FrameshiftConfig,
) -> Tuple[str, str, FrameshiftEdit]:
    """
    Correct frameshifts in one read.

    Parameters
    ----------
    item : Tuple[str, str]
        (read name, oriented nucleotide sequence)
    reference : str
        Cleaned reference amino acid sequence
    genetic_code : Mapping[str, str]
        Codon -> amino acid mapping
    config : FrameshiftConfig
        Scoring parameters

    Returns
    -------
    Tuple[str, str, FrameshiftEdit]
        (name, corrected sequence, edit record)

    Raises
    ------
    FrameshiftCorrectionError
        If the read has no positively scoring alignment to the reference
    """
    name, seq = item
    matrix = _load_matrix(config.substitution_matrix)
    fs = config.frameshift_penalty
    gap = config.codon_gap_penalty
    stop = config.stop_codon_score

    n, m = len(seq), len(reference)

    # translated codon ending at nucleotide i (exclusive)
    codon_aa = [""] * (n + 1)
    for i in range(3, n + 1):
        codon_aa[i] = genetic_code.get(seq[i - 3:i], "X")

    score = [[0.0] * (m + 1) for _ in range(n + 1)]
    move = [[_STOP] * (m + 1) for _ in range(n + 1)]

    best, best_i, best_j = 0.0, 0, 0

    for i in range(1, n + 1):
        row, row_move = score[i], move[i]
        prev1 = score[i - 1]
        prev2 = score[i - 2] if i >= 2 else None
        prev3 = score[i - 3] if i >= 3 else None
        for j in range(1, m + 1):
            ref_aa = reference[j - 1]
            partial_score = _residue_score('X', ref_aa, matrix, stop)

            cell, cell_move = 0.0, _STOP

            if prev3 is not None:
                s = prev3[j - 1] + _residue_score(codon_aa[i], ref_aa, matrix, stop)
                if s > cell:
                    cell, cell_move = s, _MATCH
                s = prev3[j] + gap
                if s > cell:
                    cell, cell_move = s, _CODON_GAP

            s = row[j - 1] + gap
            if s > cell:
                cell, cell_move = s, _RESIDUE_GAP

            s = prev1[j] + fs
            if s > cell:
                cell, cell_move = s, _SKIP1
            s = prev1[j - 1] + fs + partial_score
            if s > cell:
                cell, cell_move = s, _PARTIAL1

            if prev2 is not None:
                s = prev2[j] + fs
                if s > cell:
                    cell, cell_move = s, _SKIP2
                s = prev2[j - 1] + fs + partial_score
                if s > cell:
                    cell, cell_move = s, _PARTIAL2

            row[j] = cell
            row_move[j] = cell_move
            if cell > best:
                best, best_i, best_j = cell, i, j

    if best <= 0:
        raise FrameshiftCorrectionError(
            f"Could not align read '{name}' to the reference amino acid sequence"
        )

    # Traceback
    moves = []
    i, j = best_i, best_j
    while move[i][j] != _STOP:
        mv = move[i][j]
        moves.append((mv, i))
        di, dj = _STEPS[mv]
        i, j = i - di, j - dj
    start_i = i
    moves.reverse()

    pieces = [seq[:start_i]]
    insertions: List[int] = []
    deletions: List[int] = []
    compared = 0
    mismatched = 0
    j = best_j - sum(_STEPS[mv][1] for mv, _ in moves)

    for mv, end in moves:
        di, dj = _STEPS[mv]
        begin = end - di
        if mv == _MATCH:
            pieces.append(seq[begin:end])
            compared += 1
            if codon_aa[end] != reference[j]:
                mismatched += 1
        elif mv == _CODON_GAP:
            pieces.append(seq[begin:end])
        elif mv in (_SKIP1, _SKIP2):
            insertions.extend(range(begin + 1, end + 1))
        elif mv in (_PARTIAL1, _PARTIAL2):
            missing = 3 - di
            pieces.append(seq[begin:end] + "N" * missing)
            deletions.extend([end] * missing)
            compared += 1
            mismatched += 1
        j += dj

    pieces.append(seq[best_i:])
    corrected = "".join(pieces)

    distance = mismatched / compared if compared else 1.0
    edit = FrameshiftEdit(
        read=name,
        insertions=tuple(insertions),
        deletions=tuple(deletions),
        distance=distance,
    )

    if insertions or deletions:
        logger.debug(
            f"  {name}: removed {len(insertions)} and filled {len(deletions)} bases "
            f"(distance to reference {distance:.3f})"
        )

    return name, corrected, edit


def correct_frameshifts(
    seqs: Dict[str, str],
    reference: Any,
    genetic_code: Optional[Mapping[str, str]] = None,
    processors: int = 1,
    config: Optional[FrameshiftConfig] = None,
) -> Tuple[Dict[str, str], List[FrameshiftEdit]]:
    """
    Correct frameshifts in a set of oriented reads against a protein reference.

    Parameters
    ----------
    seqs : Dict[str, str]
        Read name -> oriented nucleotide sequence
    reference : str, Bio.Seq.Seq or SeqRecord
        Reference amino acid sequence
    genetic_code : Mapping[str, str], optional
        Codon -> amino acid mapping (default: standard code)
    processors : int, optional
        Worker processes (default: 1)
    config : FrameshiftConfig, optional
        Scoring parameters (default: FrameshiftConfig())

    Returns
    -------
    Tuple[Dict[str, str], List[FrameshiftEdit]]
        Corrected sequences (same names, same order) and one edit record
        per read, in the same order

    Raises
    ------
    FrameshiftCorrectionError
        If any read cannot be aligned to the reference
    """
    if config is None:
        config = FrameshiftConfig()
    ref = clean_reference(reference)
    code = dict(resolve_genetic_code(genetic_code))

    logger.info(f"Correcting frameshifts in {len(seqs)} reads against a {len(ref)} aa reference")

    worker = partial(correct_read, reference=ref, genetic_code=code, config=config)
    results = parallel_map(worker, list(seqs.items()), processors=processors)

    corrected = {name: seq for name, seq, _ in results}
    edits = [edit for _, _, edit in results]

    n_changed = sum(1 for e in edits if e.insertions or e.deletions)
    logger.info(f"Frameshift correction changed {n_changed}/{len(edits)} reads")

    return corrected, edits


def edits_to_dataframe(edits: List[FrameshiftEdit]) -> pd.DataFrame:
    """
    Tabulate frameshift edits.

    Returns
    -------
    pd.DataFrame
        Columns: read, insertions, deletions, distance (counts per read)
    """
    return pd.DataFrame(
        {
            'read': [e.read for e in edits],
            'insertions': [e.n_insertions for e in edits],
            'deletions': [e.n_deletions for e in edits],
            'distance': [e.distance for e in edits],
        },
        columns=['read', 'insertions', 'deletions', 'distance'],
    )
