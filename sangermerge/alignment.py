"""
Multiple Sequence Alignment of Oriented Reads

All oriented (and possibly frame-corrected) reads are aligned together with
MAFFT. Two aligners share one interface:

- NucleotideAligner: plain nucleotide alignment
- TranslationAligner: codon-aware alignment. Each read is translated in its
  best reading frame (fewest stop codons), the proteins are aligned with
  MAFFT, and the protein alignment is back-translated so every alignment gap
  is a whole codon ('---') and reads stay in frame.

get_aligner() picks the variant: translation-guided if and only if an amino
acid reference was supplied to the pipeline.

Reads are written to MAFFT under positional ids (s0, s1, ...) so that any
read name survives the round trip, and rows are returned in input order.

Dependencies:
- MAFFT v7+ for multiple sequence alignment
- Biopython for FASTA I/O and the alignment object

Example Usage:
    >>> from sangermerge.alignment import NucleotideAligner
    >>> aln = NucleotideAligner().align({"fwd_1": "ACGTACGT", "rev_1": "ACGTTACGT"})
    >>> [rec.id for rec in aln]
    ['fwd_1', 'rev_1']

Author: Steph Smith (steph.smith@unc.edu)
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Tuple, Mapping, Optional, Sequence, Any
import logging
import subprocess
import tempfile

from Bio import AlignIO, SeqIO
from Bio.Align import MultipleSeqAlignment
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from .config import AlignmentConfig
from .errors import AlignmentError, InvalidInputError
from .genetic_code import STOP_SYMBOL, count_stop_codons, resolve_genetic_code
from .utils import check_external_tool, get_tool_installation_instructions

logger = logging.getLogger(__name__)

GAP = "-"
CODON_GAP = GAP * 3


def run_mafft_alignment(
    input_fasta: str,
    output_fasta: str,
    algorithm: str = "auto",
    threads: int = 1,
    amino: bool = False,
    extra_options: Sequence[str] = (),
    executable: str = "mafft",
) -> str:
    """
    Run MAFFT multiple sequence alignment.

    Parameters
    ----------
    input_fasta : str
        Path to input sequences
    output_fasta : str
        Path for aligned output
    algorithm : str, optional
        MAFFT strategy (auto, localpair, globalpair, genafpair)
    threads : int, optional
        Number of CPU threads
    amino : bool, optional
        Align amino acid sequences instead of nucleotides
    extra_options : Sequence[str], optional
        Additional MAFFT options
    executable : str, optional
        MAFFT executable name or path

    Returns
    -------
    str
        Path to aligned FASTA file

    Raises
    ------
    AlignmentError
        If MAFFT is not found or alignment fails
    """
    if not check_external_tool(executable):
        raise AlignmentError(
            f"MAFFT not found in PATH ({executable}). "
            f"{get_tool_installation_instructions('mafft')}"
        )

    cmd = [executable, f"--{algorithm}", "--thread", str(threads), "--quiet"]
    cmd.append("--amino" if amino else "--nuc")
    cmd.extend(extra_options)
    cmd.append(input_fasta)

    logger.debug(f"Running MAFFT alignment: {' '.join(cmd)}")

    try:
        with open(output_fasta, 'w') as out_handle:
            subprocess.run(
                cmd,
                stdout=out_handle,
                stderr=subprocess.PIPE,
                text=True,
                check=True
            )
        logger.debug(f"MAFFT alignment completed: {output_fasta}")
        return output_fasta

    except subprocess.CalledProcessError as e:
        error_msg = f"MAFFT alignment failed:\n{e.stderr}"
        logger.error(error_msg)
        raise AlignmentError(error_msg) from e
    except OSError as e:
        error_msg = f"Failed to run MAFFT or write alignment output: {e}"
        logger.error(error_msg)
        raise AlignmentError(error_msg) from e


class Aligner(ABC):
    """
    Aligns a named set of sequences into a MultipleSeqAlignment.

    Subclasses implement _align(); align() validates input and output so
    every variant guarantees the same contract: one row per input sequence,
    input names and input order, identical row lengths.
    """

    def __init__(self, config: Optional[AlignmentConfig] = None, processors: int = 1):
        self.config = config or AlignmentConfig()
        self.processors = processors

    def align(self, seqs: Dict[str, str]) -> MultipleSeqAlignment:
        """
        Align sequences.

        Parameters
        ----------
        seqs : Dict[str, str]
            Name -> ungapped sequence, in the order rows should appear

        Returns
        -------
        MultipleSeqAlignment
            One row per input, ids equal to input names

        Raises
        ------
        InvalidInputError
            If fewer than two sequences are supplied
        AlignmentError
            If the aligner fails or returns inconsistent rows
        """
        if len(seqs) < 2:
            raise InvalidInputError(f"At least 2 sequences are required for alignment, got {len(seqs)}")

        names = list(seqs)
        rows = self._align([(name, seqs[name]) for name in names])

        if len(rows) != len(names):
            raise AlignmentError(f"Aligner returned {len(rows)} rows for {len(names)} sequences")
        lengths = {len(row) for row in rows}
        if len(lengths) != 1:
            raise AlignmentError(f"Aligned rows have different lengths: {sorted(lengths)}")

        logger.info(f"Aligned {len(rows)} reads ({lengths.pop()} columns)")

        return MultipleSeqAlignment(
            [SeqRecord(Seq(row), id=name, description="") for name, row in zip(names, rows)]
        )

    @abstractmethod
    def _align(self, records: List[Tuple[str, str]]) -> List[str]:
        """Return aligned rows, in the order of records."""

    def _run_mafft(self, records: List[Tuple[str, str]], amino: bool = False) -> List[str]:
        """Align records with MAFFT and return uppercase rows in input order."""
        with tempfile.TemporaryDirectory(prefix="sangermerge_") as tmpdir:
            input_fasta = Path(tmpdir) / "input.fasta"
            output_fasta = Path(tmpdir) / "aligned.fasta"

            SeqIO.write(
                [SeqRecord(Seq(seq), id=f"s{i}", description="") for i, (_, seq) in enumerate(records)],
                str(input_fasta),
                "fasta",
            )

            run_mafft_alignment(
                str(input_fasta),
                str(output_fasta),
                algorithm=self.config.mafft_algorithm,
                threads=self.processors,
                amino=amino,
                extra_options=self.config.extra_options,
                executable=self.config.mafft_executable,
            )

            try:
                aligned = {rec.id: str(rec.seq).upper() for rec in AlignIO.read(str(output_fasta), "fasta")}
            except ValueError as e:
                raise AlignmentError(f"Could not read MAFFT output: {e}") from e

        missing = [name for i, (name, _) in enumerate(records) if f"s{i}" not in aligned]
        if missing:
            raise AlignmentError(f"MAFFT output is missing sequences: {missing}")

        return [aligned[f"s{i}"] for i in range(len(records))]


class NucleotideAligner(Aligner):
    """Plain nucleotide alignment with MAFFT."""

    def _align(self, records: List[Tuple[str, str]]) -> List[str]:
        logger.debug(f"Aligning {len(records)} nucleotide sequences")
        return self._run_mafft(records, amino=False)


def choose_reading_frame(sequence: str, genetic_code: Mapping[str, str]) -> int:
    """
    Pick the reading frame (1, 2 or 3) with the fewest stop codons.

    Ties go to the lowest frame; frames too short to hold a codon are
    skipped.
    """
    best_frame, best_stops = 1, None
    for frame in (1, 2, 3):
        stops = count_stop_codons(sequence, reading_frame=frame, genetic_code=genetic_code)
        if stops is None:
            continue
        if best_stops is None or stops < best_stops:
            best_frame, best_stops = frame, stops
    return best_frame


def split_codons(sequence: str, reading_frame: int) -> List[str]:
    """
    Split a sequence into codon-sized units for the given reading frame.

    Leading bases before the frame start form one unit left-padded with
    gaps; trailing bases after the last full codon form one unit
    right-padded with gaps, so joining the units and removing gaps gives
    back the input.

    Examples
    --------
    >>> split_codons("AATGAAAC", 2)
    ['--A', 'ATG', 'AAA', 'C--']
    """
    offset = reading_frame - 1
    units = []
    if offset:
        units.append(GAP * (3 - offset) + sequence[:offset])

    body = sequence[offset:]
    n_full = len(body) // 3
    units.extend(body[i * 3:i * 3 + 3] for i in range(n_full))

    tail = body[n_full * 3:]
    if tail:
        units.append(tail + GAP * (3 - len(tail)))
    return units


class TranslationAligner(Aligner):
    """
    Codon-aware alignment guided by translation.

    Parameters
    ----------
    genetic_code : Mapping[str, str], optional
        Codon -> amino acid mapping (default: standard code)
    config : AlignmentConfig, optional
        MAFFT settings
    processors : int, optional
        MAFFT threads
    """

    def __init__(
        self,
        genetic_code: Optional[Mapping[str, str]] = None,
        config: Optional[AlignmentConfig] = None,
        processors: int = 1,
    ):
        super().__init__(config=config, processors=processors)
        self.genetic_code = resolve_genetic_code(genetic_code)

    def _translate_units(self, units: List[str]) -> str:
        """Translate codon units; partial codons and stops become X."""
        residues = []
        for unit in units:
            aa = self.genetic_code.get(unit, "X")
            residues.append("X" if aa == STOP_SYMBOL else aa)
        return "".join(residues)

    def _align(self, records: List[Tuple[str, str]]) -> List[str]:
        logger.debug(f"Aligning {len(records)} sequences by translation")

        unit_lists = []
        proteins = []
        for name, seq in records:
            frame = choose_reading_frame(seq, self.genetic_code)
            units = split_codons(seq, frame)
            logger.debug(f"  {name}: reading frame {frame}, {len(units)} codons")
            unit_lists.append(units)
            proteins.append((name, self._translate_units(units)))

        aligned_proteins = self._run_mafft(proteins, amino=True)

        rows = []
        for (name, _), units, protein_row in zip(records, unit_lists, aligned_proteins):
            rows.append(self._back_translate(name, protein_row, units))
        return rows

    @staticmethod
    def _back_translate(name: str, protein_row: str, units: List[str]) -> str:
        """Replace each aligned residue with its codon and each gap with '---'."""
        pieces = []
        k = 0
        for char in protein_row:
            if char in "-.":
                pieces.append(CODON_GAP)
            else:
                if k >= len(units):
                    raise AlignmentError(f"Aligned protein for '{name}' has more residues than codons")
                pieces.append(units[k])
                k += 1
        if k != len(units):
            raise AlignmentError(
                f"Aligned protein for '{name}' has {k} residues but the read has {len(units)} codons"
            )
        return "".join(pieces)


def get_aligner(
    reference: Any = None,
    genetic_code: Optional[Mapping[str, str]] = None,
    config: Optional[AlignmentConfig] = None,
    processors: int = 1,
) -> Aligner:
    """
    Select the aligner for a merge.

    Returns a TranslationAligner when an amino acid reference is supplied,
    otherwise a NucleotideAligner.
    """
    if reference is not None:
        return TranslationAligner(genetic_code=genetic_code, config=config, processors=processors)
    return NucleotideAligner(config=config, processors=processors)
