"""
Exception Hierarchy for sangermerge

All errors raised by the merge pipeline derive from SangerMergeError so that
callers can catch everything the package raises with a single except clause,
while still being able to distinguish the stage that failed.

Taxonomy:
- ConfigurationError: invalid parameter combinations detected before any
  expensive work (e.g. min_reads larger than the number of reads, a reading
  frame other than 1/2/3, a genetic code without stop codons)
- InvalidInputError: malformed or insufficient input data (fewer than two
  reads, unsupported sequence types, invalid characters)
- FrameshiftCorrectionError: a read could not be aligned to the amino acid
  reference during frameshift correction
- AlignmentError: the multiple sequence alignment step failed
- ConsensusError: consensus calling was given an unusable alignment or
  threshold

Author: Steph Smith (steph.smith@unc.edu)
"""


class SangerMergeError(Exception):
    """Base exception for sangermerge errors."""
    pass


class ConfigurationError(SangerMergeError):
    """Invalid parameter or parameter combination."""
    pass


class InvalidInputError(SangerMergeError):
    """Malformed or insufficient input data."""
    pass


class FrameshiftCorrectionError(SangerMergeError):
    """Error while correcting frameshifts against a protein reference."""
    pass


class AlignmentError(SangerMergeError):
    """Error during multiple sequence alignment."""
    pass


class ConsensusError(SangerMergeError):
    """Error during consensus calling."""
    pass
