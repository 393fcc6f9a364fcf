"""
Core Merge Pipeline for sangermerge

This module provides the main merge_reads() function that orchestrates the
complete workflow from raw forward/reverse reads to a consensus sequence
with quality statistics. It is the programmatic entry point of the package.

Pipeline Stages:
1. Validate: parameter and read count checks, before any alignment work
2. Orient: reverse-complement reverse reads (parallel per read)
3. FrameCorrect: frameshift correction against an amino acid reference
   (only when a reference is supplied)
4. Align: MAFFT, translation-guided when a reference is supplied
5. CallConsensus: column-wise consensus under the agreement threshold
6. AnalyzeQuality: per-read differences (parallel per read), Jukes-Cantor
   distance matrix and UPGMA dendrogram
7. Assemble: MergeResult with the consensus row appended to the alignment

Row order everywhere is forward reads then reverse reads, each in input
order, regardless of the order in which parallel workers finish.

Example Usage:
    >>> from sangermerge import merge_reads
    >>> result = merge_reads(["ACGTACGTAA", "ACGTACGTAA"], [])
    >>> str(result.consensus)
    'ACGTACGTAA'
    >>> len(result.alignment)
    3

Author: Steph Smith (steph.smith@unc.edu)
"""

from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Mapping
import logging
import time

import pandas as pd
from Bio.Align import MultipleSeqAlignment
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from . import config
from .alignment import get_aligner
from .consensus import ConsensusCall, call_consensus
from .errors import ConfigurationError, InvalidInputError
from .frameshift import correct_frameshifts, edits_to_dataframe
from .genetic_code import get_genetic_code, resolve_genetic_code
from .orientation import MIN_READS, make_reads, orient_reads, ReadInput
from .quality import Dendrogram, difference_table, distance_matrix, build_dendrogram
from .utils import resolve_processors, format_elapsed_time, setup_logging

logger = logging.getLogger(__name__)

CONSENSUS_ID = "consensus"


@dataclass(frozen=True)
class MergeResult:
    """
    Result of merging a set of Sanger reads.

    Attributes
    ----------
    consensus : Bio.Seq.Seq
        Gap-free consensus sequence
    alignment : MultipleSeqAlignment
        All aligned reads followed by a "consensus" row (gapped consensus)
    differences : pd.DataFrame
        name, pairwise_diffs_to_consensus, unused_chars; one row per read
    distance_matrix : pd.DataFrame
        Jukes-Cantor distances between reads
    dendrogram : Dendrogram
        UPGMA tree over the reads
    indels : pd.DataFrame or None
        read, insertions, deletions, distance; None without a reference
    consensus_call : ConsensusCall
        Gapped consensus with per-column call mask and support
    parameters : Dict[str, Any]
        Effective parameters of the run
    """
    consensus: Seq
    alignment: MultipleSeqAlignment
    differences: pd.DataFrame
    distance_matrix: pd.DataFrame
    dendrogram: Dendrogram
    indels: Optional[pd.DataFrame]
    consensus_call: ConsensusCall
    parameters: Dict[str, Any] = field(default_factory=dict)

    @property
    def read_names(self):
        return [rec.id for rec in self.alignment if rec.id != CONSENSUS_ID]

    def to_dict(self) -> Dict[str, Any]:
        """Return the report components under their conventional names."""
        return {
            'consensus': self.consensus,
            'alignment': self.alignment,
            'differences': self.differences,
            'distance.matrix': self.distance_matrix,
            'dendrogram': self.dendrogram,
            'indels': self.indels,
        }


def _count_inputs(seqs: ReadInput) -> int:
    if seqs is None:
        return 0
    try:
        return len(seqs)
    except TypeError as e:
        raise InvalidInputError(f"Reads must be a list or dict of sequences, got {type(seqs).__name__}") from e


def merge_reads(
    fwd_seqs: ReadInput,
    rev_seqs: ReadInput,
    ref_aa_seq: Any = None,
    min_information: Optional[float] = None,
    min_reads: Optional[int] = None,
    processors: Optional[int] = None,
    genetic_code: Optional[Mapping[str, str]] = None,
    config_obj: Optional[config.MergeConfig] = None,
) -> MergeResult:
    """
    Merge forward and reverse Sanger reads into a consensus sequence.

    Parameters
    ----------
    fwd_seqs : list or dict
        Forward reads (str, Bio.Seq.Seq or SeqRecord); a dict maps read
        names to sequences. Not reverse-complemented.
    rev_seqs : list or dict
        Reverse reads; reverse-complemented before alignment
    ref_aa_seq : str, Bio.Seq.Seq or SeqRecord, optional
        Reference amino acid sequence. When given, frameshifts are corrected
        against it and reads are aligned in frame by translation.
    min_information : float, optional
        Minimum fraction of reads that must agree to call a consensus base
        (default: config value, 1.0)
    min_reads : int, optional
        Minimum number of agreeing reads; the larger of the two thresholds
        wins (default: config value, 0)
    processors : int, optional
        Worker processes; None uses every available CPU
    genetic_code : Mapping[str, str], optional
        Codon -> amino acid mapping (default: NCBI table from config,
        standard code)
    config_obj : MergeConfig, optional
        Configuration; explicit keyword arguments take precedence.
        When given, the package logger is configured at its log_level

    Returns
    -------
    MergeResult
        Consensus, alignment and quality statistics

    Raises
    ------
    ConfigurationError
        If parameters are invalid or min_reads exceeds the number of reads
    InvalidInputError
        If fewer than two reads are supplied or a read is invalid
    FrameshiftCorrectionError
        If a read cannot be aligned to the reference
    AlignmentError
        If MAFFT fails
    ConsensusError
        If consensus calling fails

    Examples
    --------
    >>> result = merge_reads({"F1": "ACGT"}, {"R1": "ACGT"})
    >>> str(result.consensus)
    'ACGT'
    """
    start_time = time.time()

    try:
        # =====================================================================
        # Validate
        # =====================================================================

        cfg = config_obj if config_obj is not None else config.get_default_config()
        overrides = {}
        if min_information is not None:
            overrides['consensus__min_information'] = min_information
        if min_reads is not None:
            overrides['consensus__min_reads'] = min_reads
        if processors is not None:
            overrides['processors'] = processors
        if overrides:
            cfg = cfg.update(**overrides)
        if config_obj is not None:
            setup_logging(log_level=cfg.log_level)

        n_total = _count_inputs(fwd_seqs) + _count_inputs(rev_seqs)
        if cfg.consensus.min_reads > n_total:
            raise ConfigurationError(
                f"min_reads ({cfg.consensus.min_reads}) must be less than or equal to "
                f"the number of reads ({n_total})"
            )

        n_workers = resolve_processors(cfg.processors)
        if genetic_code is None:
            code = get_genetic_code(cfg.genetic_code_table)
        else:
            code = resolve_genetic_code(genetic_code)

        fwd, rev = make_reads(fwd_seqs, rev_seqs)
        if len(fwd) + len(rev) < MIN_READS:
            raise InvalidInputError(
                f"At least {MIN_READS} reads are required, got {len(fwd)} forward "
                f"and {len(rev)} reverse"
            )
        if any(read.name == CONSENSUS_ID for read in fwd + rev):
            raise InvalidInputError(f"'{CONSENSUS_ID}' is reserved and cannot be used as a read name")

        logger.info("=" * 80)
        logger.info("sangermerge - merging Sanger reads")
        logger.info("=" * 80)
        logger.info(f"Forward reads: {len(fwd)}")
        logger.info(f"Reverse reads: {len(rev)}")
        logger.info(f"Reference: {'yes' if ref_aa_seq is not None else 'no'}")
        logger.info(f"min_information: {cfg.consensus.min_information}")
        logger.info(f"min_reads: {cfg.consensus.min_reads}")
        logger.info(f"Processors: {n_workers}")
        logger.info("")

        # =====================================================================
        # Orient
        # =====================================================================

        logger.info("STAGE 1: Orienting reads")
        seqs = orient_reads(fwd, rev, processors=n_workers)
        logger.info(f"  ✓ Reverse-complemented {len(rev)} reverse reads")

        # =====================================================================
        # Frame correction (reference only)
        # =====================================================================

        indels = None
        if ref_aa_seq is not None:
            logger.info("STAGE 2: Correcting frameshifts against the amino acid reference")
            seqs, edits = correct_frameshifts(
                seqs,
                ref_aa_seq,
                genetic_code=code,
                processors=n_workers,
                config=cfg.frameshift,
            )
            indels = edits_to_dataframe(edits)
            logger.info(
                f"  ✓ {int(indels['insertions'].sum())} insertions and "
                f"{int(indels['deletions'].sum())} deletions corrected"
            )

        # =====================================================================
        # Align
        # =====================================================================

        logger.info("STAGE 3: Aligning reads")
        aligner = get_aligner(
            reference=ref_aa_seq,
            genetic_code=code,
            config=cfg.alignment,
            processors=n_workers,
        )
        aln = aligner.align(seqs)
        logger.info(f"  ✓ {len(aln)} reads, {aln.get_alignment_length()} columns")

        # =====================================================================
        # Call consensus
        # =====================================================================

        logger.info("STAGE 4: Calling consensus")
        consensus_call = call_consensus(
            aln,
            min_information=cfg.consensus.min_information,
            min_reads=cfg.consensus.min_reads,
            no_consensus_char=cfg.consensus.no_consensus_char,
        )
        logger.info(
            f"  ✓ Called {consensus_call.n_called}/{len(consensus_call)} columns "
            f"(threshold {consensus_call.threshold:.3f}), "
            f"consensus length {len(consensus_call.degapped)}"
        )
        if not consensus_call.degapped:
            logger.warning("No consensus column met the agreement threshold; consensus is empty")

        # =====================================================================
        # Quality statistics
        # =====================================================================

        logger.info("STAGE 5: Analyzing merge quality")
        differences = difference_table(
            aln,
            consensus_call.gapped,
            processors=n_workers,
            called=consensus_call.called,
        )
        distances = distance_matrix(aln)
        dendrogram = build_dendrogram(distances, method=cfg.quality.linkage_method)
        logger.info(
            f"  ✓ {int(differences['pairwise_diffs_to_consensus'].sum())} differences to consensus, "
            f"{int(differences['unused_chars'].sum())} unused bases"
        )

        # =====================================================================
        # Assemble
        # =====================================================================

        full_alignment = MultipleSeqAlignment(
            list(aln) + [SeqRecord(Seq(consensus_call.gapped), id=CONSENSUS_ID, description="")]
        )

        parameters = {
            'min_information': cfg.consensus.min_information,
            'min_reads': cfg.consensus.min_reads,
            'effective_min_information': consensus_call.threshold,
            'processors': n_workers,
            'reference_supplied': ref_aa_seq is not None,
            'aligner': type(aligner).__name__,
            'linkage_method': cfg.quality.linkage_method,
        }

        elapsed = time.time() - start_time
        logger.info("")
        logger.info(f"Merge complete in {format_elapsed_time(elapsed)}")

        return MergeResult(
            consensus=Seq(consensus_call.degapped),
            alignment=full_alignment,
            differences=differences,
            distance_matrix=distances,
            dendrogram=dendrogram,
            indels=indels,
            consensus_call=consensus_call,
            parameters=parameters,
        )

    except Exception as e:
        logger.error(f"Merge failed with error: {e}", exc_info=True)
        raise
