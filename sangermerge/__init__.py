"""
sangermerge: Merge Forward and Reverse Sanger Reads into a Consensus Sequence

sangermerge merges any number of forward and reverse Sanger reads of one
locus into a single consensus sequence and reports statistics that help
decide whether a sensible consensus exists for the data.

Core functionality includes:
- Orientation of reverse reads by reverse complement
- Optional frameshift correction against an amino acid reference
- Multiple sequence alignment with MAFFT (codon-aware with a reference)
- Majority-rule consensus with tunable agreement thresholds
- Per-read differences, Jukes-Cantor distances and a UPGMA dendrogram

Author: Steph Smith (steph.smith@unc.edu)
"""

__version__ = "0.1.0"
__author__ = "Steph Smith"
__email__ = "steph.smith@unc.edu"

from . import errors
from . import config
from . import utils
from . import genetic_code
from . import orientation
from . import frameshift
from . import alignment
from . import consensus
from . import quality
from . import core
from . import reports

from .core import merge_reads, MergeResult
from .genetic_code import count_stop_codons, get_genetic_code, STANDARD_GENETIC_CODE

__all__ = [
    "errors",
    "config",
    "utils",
    "genetic_code",
    "orientation",
    "frameshift",
    "alignment",
    "consensus",
    "quality",
    "core",
    "reports",
    "merge_reads",
    "MergeResult",
    "count_stop_codons",
    "get_genetic_code",
    "STANDARD_GENETIC_CODE",
]
