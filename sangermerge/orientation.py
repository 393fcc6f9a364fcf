"""
Read Ingestion and Orientation

This module turns user-supplied forward and reverse reads into a single set
of same-strand sequences ready for alignment.

Workflow:
1. Coerce each input (str, Bio.Seq.Seq or SeqRecord) to a validated,
   uppercase nucleotide string
2. Name reads: SeqRecord ids or dict keys are kept, anything else is named
   fwd_<i> / rev_<i> (1-based, input order)
3. Reverse-complement every reverse read with Biopython; forward reads pass
   through unchanged
4. Return an ordered mapping: forward reads first, then reverse reads, each
   in input order

Orientation of individual reads is independent, so it is fanned out over a
worker pool and reassembled by input position.

Example Usage:
    >>> from sangermerge.orientation import make_reads, orient_reads
    >>> fwd, rev = make_reads(["ACGTT"], ["AACGT"])
    >>> orient_reads(fwd, rev)
    {'fwd_1': 'ACGTT', 'rev_1': 'ACGTT'}

Author: Steph Smith (steph.smith@unc.edu)
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple, Any, Union, Mapping, Sequence
import logging

from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from .errors import InvalidInputError
from .utils import sequence_to_str, validate_sequence, parallel_map

logger = logging.getLogger(__name__)

FORWARD = "forward"
REVERSE = "reverse"

MIN_READS = 2

ReadInput = Union[Sequence[Any], Mapping[str, Any], None]


@dataclass(frozen=True)
class Read:
    """
    A single Sanger read as supplied by the user.

    Attributes
    ----------
    name : str
        Identifier, unique across the merge
    sequence : str
        Uppercase nucleotide sequence, gaps removed
    direction : str
        "forward" or "reverse"
    """
    name: str
    sequence: str
    direction: str

    def __post_init__(self):
        if self.direction not in (FORWARD, REVERSE):
            raise InvalidInputError(f"Invalid read direction: {self.direction}")


def _ingest(seqs: ReadInput, direction: str) -> List[Read]:
    """Convert one directional collection to Read objects."""
    if seqs is None:
        return []

    prefix = "fwd" if direction == FORWARD else "rev"

    if isinstance(seqs, Mapping):
        items = [(str(name), seq) for name, seq in seqs.items()]
    elif isinstance(seqs, (str, Seq, SeqRecord)):
        raise InvalidInputError(
            f"{direction} reads must be a list or dict of sequences, not a single sequence"
        )
    else:
        items = []
        for i, seq in enumerate(seqs, start=1):
            name = seq.id if isinstance(seq, SeqRecord) and seq.id not in (None, "", "<unknown id>") else None
            items.append((name or f"{prefix}_{i}", seq))

    reads = []
    seen = set()
    for name, seq in items:
        if name in seen:
            raise InvalidInputError(f"Duplicate {direction} read name: {name}")
        seen.add(name)

        raw = sequence_to_str(seq, what=f"{direction} read '{name}'")
        clean = validate_sequence(raw, name=f"{direction} read '{name}'").replace('-', '')
        reads.append(Read(name=name, sequence=clean, direction=direction))

    return reads


def make_reads(fwd_seqs: ReadInput, rev_seqs: ReadInput) -> Tuple[List[Read], List[Read]]:
    """
    Build named, validated Read objects from raw forward and reverse inputs.

    Parameters
    ----------
    fwd_seqs : list or dict
        Forward reads; a dict maps names to sequences
    rev_seqs : list or dict
        Reverse reads (not yet reverse-complemented)

    Returns
    -------
    Tuple[List[Read], List[Read]]
        Forward and reverse reads in input order

    Raises
    ------
    InvalidInputError
        For unsupported sequence types, invalid characters, or read names
        that are not unique across both directions
    """
    fwd = _ingest(fwd_seqs, FORWARD)
    rev = _ingest(rev_seqs, REVERSE)

    shared = {r.name for r in fwd} & {r.name for r in rev}
    if shared:
        raise InvalidInputError(
            f"Read names must be unique across forward and reverse reads: {sorted(shared)}"
        )

    return fwd, rev


def reverse_complement(sequence: str) -> str:
    """Reverse complement a nucleotide string, preserving IUPAC ambiguity codes."""
    return str(Seq(sequence).reverse_complement())


def orient_read(read: Read) -> Tuple[str, str]:
    """Return (name, same-strand sequence) for one read."""
    if read.direction == REVERSE:
        return read.name, reverse_complement(read.sequence)
    return read.name, read.sequence


def orient_reads(
    fwd: List[Read],
    rev: List[Read],
    processors: int = 1,
) -> Dict[str, str]:
    """
    Bring forward and reverse reads onto the same strand.

    Parameters
    ----------
    fwd : List[Read]
        Forward reads
    rev : List[Read]
        Reverse reads
    processors : int, optional
        Worker processes for the per-read work (default: 1)

    Returns
    -------
    Dict[str, str]
        Read name -> oriented sequence; forward reads first, then reverse
        reads, each in input order

    Raises
    ------
    InvalidInputError
        If fewer than two reads are supplied in total
    """
    reads = list(fwd) + list(rev)
    if len(reads) < MIN_READS:
        raise InvalidInputError(
            f"At least {MIN_READS} reads are required to build an alignment, "
            f"got {len(fwd)} forward and {len(rev)} reverse"
        )

    logger.debug(f"Orienting {len(fwd)} forward and {len(rev)} reverse reads")
    oriented = parallel_map(orient_read, reads, processors=processors)

    return dict(oriented)
