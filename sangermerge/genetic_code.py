"""
Genetic Codes, Translation and Stop Codon Counting

Genetic codes are plain codon -> amino acid mappings (stop codons map to '*')
wrapped in a read-only MappingProxyType. They are built from the NCBI tables
shipped with Biopython and passed explicitly to every function that needs
one, so no stage depends on a shared module-level table being left
unmodified.

count_stop_codons() is a public helper for checking reading frames: a read
that translates with internal stops in the expected frame is a likely
frameshift or a read from the wrong strand.

Example Usage:
    >>> from sangermerge.genetic_code import count_stop_codons
    >>> count_stop_codons("TAATAG", reading_frame=1)
    2

Author: Steph Smith (steph.smith@unc.edu)
"""

from types import MappingProxyType
from typing import Mapping, Optional, Any
import logging

from Bio.Data import CodonTable

from .errors import ConfigurationError
from .utils import sequence_to_str

logger = logging.getLogger(__name__)

STOP_SYMBOL = "*"


def get_genetic_code(table_id: int = 1) -> Mapping[str, str]:
    """
    Build an immutable codon -> amino acid mapping for an NCBI table.

    Parameters
    ----------
    table_id : int, optional
        NCBI translation table id (default: 1, the standard code)

    Returns
    -------
    Mapping[str, str]
        Read-only mapping of the 64 unambiguous DNA codons; stop codons
        map to '*'

    Raises
    ------
    ConfigurationError
        If the table id is unknown
    """
    try:
        table = CodonTable.unambiguous_dna_by_id[table_id]
    except KeyError as e:
        raise ConfigurationError(f"Unknown NCBI genetic code table: {table_id}") from e

    code = dict(table.forward_table)
    for codon in table.stop_codons:
        code[codon] = STOP_SYMBOL
    return MappingProxyType(code)


STANDARD_GENETIC_CODE = get_genetic_code(1)


def resolve_genetic_code(genetic_code: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    """Return the standard code when None, otherwise a read-only copy of genetic_code."""
    if genetic_code is None:
        return STANDARD_GENETIC_CODE
    if isinstance(genetic_code, MappingProxyType):
        return genetic_code
    return MappingProxyType({k.upper(): v for k, v in dict(genetic_code).items()})


def translate(sequence: str, genetic_code: Mapping[str, str]) -> str:
    """
    Translate complete codons of a nucleotide sequence.

    Trailing bases that do not form a full codon are ignored. Codons that are
    not in the genetic code (ambiguity codes, gaps) translate to 'X'.
    """
    sequence = sequence.upper()
    return "".join(
        genetic_code.get(sequence[i:i + 3], "X")
        for i in range(0, len(sequence) - 2, 3)
    )


def count_stop_codons(
    sequence: Any,
    reading_frame: int = 1,
    genetic_code: Optional[Mapping[str, str]] = None,
) -> Optional[int]:
    """
    Count stop codons in a DNA sequence.

    Non-overlapping triplets are read from the start of the chosen reading
    frame; every complete triplet whose translation is '*' is counted.

    Parameters
    ----------
    sequence : str, Bio.Seq.Seq or Bio.SeqRecord.SeqRecord
        Nucleotide sequence
    reading_frame : int, optional
        1, 2 or 3 (default: 1)
    genetic_code : Mapping[str, str], optional
        Codon -> amino acid mapping (default: standard code)

    Returns
    -------
    int or None
        Number of stop codons, or None (with a logged warning) if the
        sequence is too short to hold one codon in this frame

    Raises
    ------
    ConfigurationError
        If reading_frame is not 1, 2 or 3, or the genetic code has no
        stop codons
    InvalidInputError
        If sequence is not a supported sequence type

    Examples
    --------
    >>> count_stop_codons("TAATAG")
    2
    >>> count_stop_codons("ATAATAG", reading_frame=2)
    2
    """
    if reading_frame not in (1, 2, 3):
        raise ConfigurationError("reading_frame must be 1, 2, or 3")
    seq = sequence_to_str(sequence)

    code = resolve_genetic_code(genetic_code)
    if STOP_SYMBOL not in code.values():
        raise ConfigurationError("Your genetic code does not specify any stop codons")

    usable = len(seq) + 1 - reading_frame
    if usable < 3:
        logger.warning(
            f"Cannot calculate stop codons on sequence of length {len(seq)} "
            f"in reading frame {reading_frame}"
        )
        return None

    protein = translate(seq[reading_frame - 1:], code)
    return protein.count(STOP_SYMBOL)
