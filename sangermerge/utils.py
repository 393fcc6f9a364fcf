"""
Helper Functions and Utilities

This module provides common utility functions used throughout the sangermerge
package, including logging configuration, external tool verification,
FASTA I/O and input sequence validation.

Key Utilities:
1. Logging Configuration
   - Centralized logging setup for the package logger
   - Console and optional file output

2. External Tool Management
   - Check for MAFFT in the system PATH
   - Helpful error messages with installation instructions

3. Sequence Handling
   - Coercion of str / Bio.Seq / SeqRecord inputs to plain strings
   - IUPAC nucleotide validation
   - FASTA reading and writing through Biopython

4. General Helpers
   - Worker count resolution
   - Time formatting

Example Usage:
    >>> from sangermerge.utils import setup_logging, check_external_tool
    >>> setup_logging(log_level="DEBUG")
    >>> if check_external_tool("mafft"):
    ...     print("MAFFT is available")

Author: Steph Smith (steph.smith@unc.edu)
"""

from typing import Optional, List, Tuple, Union, Any, Callable, Sequence
from functools import partial
from pathlib import Path
import logging
import shutil
import sys
import os
import multiprocessing as mp

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from .errors import InvalidInputError, ConfigurationError

logger = logging.getLogger(__name__)

# IUPAC nucleotide codes plus gap
VALID_NUCLEOTIDES = set("ACGTURYKMSWBDHVN-")


# ============================================================================
# Logging Configuration
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for sangermerge.

    Sets up the package logger with console and optional file output.

    Parameters
    ----------
    log_level : str, optional
        Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console (default: None)
    format_string : str, optional
        Custom format string for log messages. If None, uses default format

    Returns
    -------
    logging.Logger
        Configured logger instance

    Examples
    --------
    >>> logger = setup_logging(log_level="DEBUG", log_file="merge.log")
    >>> logger.info("Starting merge")

    Notes
    -----
    The default format includes timestamp, level, and message:
    [2025-11-03 10:30:45] INFO: Starting merge
    """
    package_logger = logging.getLogger("sangermerge")
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers to avoid duplicates
    package_logger.handlers.clear()

    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s: %(message)s"

    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

        package_logger.info(f"Logging to file: {log_file}")

    return package_logger


# ============================================================================
# External Tool Management
# ============================================================================

def check_external_tool(tool_name: str) -> bool:
    """
    Check if an external tool is available in the system PATH.

    Parameters
    ----------
    tool_name : str
        Name of tool to check (e.g., 'mafft')

    Returns
    -------
    bool
        True if tool is available, False otherwise (with a logged warning)
    """
    tool_path = shutil.which(tool_name)

    if tool_path is None:
        logger.warning(f"Tool '{tool_name}' not found in PATH")
        logger.info(get_tool_installation_instructions(tool_name))
        return False

    logger.debug(f"Found {tool_name} at: {tool_path}")
    return True


def get_tool_installation_instructions(tool_name: str) -> str:
    """Return installation instructions for an external tool."""
    instructions = {
        'mafft': (
            "MAFFT installation:\n"
            "  - macOS: brew install mafft\n"
            "  - Ubuntu/Debian: sudo apt-get install mafft\n"
            "  - conda: conda install -c bioconda mafft"
        ),
    }
    return instructions.get(
        tool_name.lower(),
        f"Please install {tool_name} and make sure it is in your PATH"
    )


# ============================================================================
# Sequence Handling
# ============================================================================

def sequence_to_str(sequence: Any, what: str = "sequence") -> str:
    """
    Convert a supported sequence object to an uppercase string.

    Parameters
    ----------
    sequence : str, Bio.Seq.Seq or Bio.SeqRecord.SeqRecord
        Input sequence
    what : str, optional
        Description used in error messages

    Returns
    -------
    str
        Uppercase sequence string

    Raises
    ------
    InvalidInputError
        If the object is not a supported sequence type
    """
    if isinstance(sequence, SeqRecord):
        sequence = sequence.seq
    if isinstance(sequence, (str, Seq)):
        return str(sequence).upper()
    raise InvalidInputError(
        f"{what} must be a str, Bio.Seq.Seq or Bio.SeqRecord.SeqRecord, "
        f"got {type(sequence).__name__}"
    )


def validate_sequence(sequence: str, name: str = "sequence") -> str:
    """
    Validate a nucleotide sequence and normalise it.

    Whitespace is removed, U is converted to T.

    Raises
    ------
    InvalidInputError
        If the sequence is empty or contains non-IUPAC characters
    """
    seq = "".join(sequence.split()).upper().replace('U', 'T')

    if not seq.replace('-', ''):
        raise InvalidInputError(f"{name} is empty")

    invalid = set(seq) - VALID_NUCLEOTIDES
    if invalid:
        raise InvalidInputError(
            f"{name} contains invalid characters: {''.join(sorted(invalid))}"
        )

    return seq


def read_fasta(fasta_path: Union[str, Path]) -> List[Tuple[str, str]]:
    """
    Read FASTA file and return list of (id, sequence) tuples.

    Raises
    ------
    FileNotFoundError
        If FASTA file doesn't exist
    InvalidInputError
        If the file contains no records
    """
    path = Path(fasta_path)

    if not path.exists():
        raise FileNotFoundError(f"FASTA file not found: {path}")

    records = [(rec.id, str(rec.seq).upper()) for rec in SeqIO.parse(str(path), "fasta")]

    if not records:
        raise InvalidInputError(f"No FASTA records found in {path}")

    logger.debug(f"Read {len(records)} sequences from {path}")
    return records


def write_fasta(
    records: List[Tuple[str, str]],
    output_path: Union[str, Path],
) -> None:
    """
    Write (id, sequence) tuples to a FASTA file.

    Examples
    --------
    >>> write_fasta([("seq1", "ATCG"), ("seq2", "GCTA")], "output.fasta")
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    seq_records = [SeqRecord(Seq(seq), id=name, description="") for name, seq in records]
    SeqIO.write(seq_records, str(path), "fasta")

    logger.debug(f"Wrote {len(records)} sequences to {path}")


# ============================================================================
# General Helpers
# ============================================================================

def resolve_processors(processors: Optional[int]) -> int:
    """
    Resolve the worker count.

    None means every CPU reported by os.cpu_count(). That count is of
    logical CPUs, so on hyper-threaded machines it is larger than the
    physical core count; pass an explicit value to pin the pool size.
    Falls back to 1 when the CPU count cannot be determined.

    Raises
    ------
    ConfigurationError
        If processors is less than 1
    """
    if processors is None:
        return os.cpu_count() or 1
    if processors < 1:
        raise ConfigurationError(f"processors must be >= 1, got {processors}")
    return int(processors)


def _indexed_call(func: Callable[[Any], Any], task: Tuple[int, Any]) -> Tuple[int, Any]:
    """Run func on one task and return its result tagged with the task index."""
    index, item = task
    return index, func(item)


def parallel_map(
    func: Callable[[Any], Any],
    items: Sequence[Any],
    processors: int = 1,
) -> List[Any]:
    """
    Apply func to every item on a worker pool, preserving input order.

    Tasks are tagged with their position and may complete in any order;
    each result is written into the slot of its original index. With a
    single processor (or a single item) the work runs in-process.

    Parameters
    ----------
    func : Callable
        Picklable, module-level function (or functools.partial of one)
    items : Sequence
        Inputs, one task each
    processors : int, optional
        Number of worker processes (default: 1)

    Returns
    -------
    List
        Results in the same order as items
    """
    n_items = len(items)
    if processors <= 1 or n_items <= 1:
        return [func(item) for item in items]

    results: List[Any] = [None] * n_items
    worker = partial(_indexed_call, func)
    n_workers = min(processors, n_items)

    with mp.Pool(processes=n_workers) as pool:
        for index, result in pool.imap_unordered(worker, enumerate(items)):
            results[index] = result

    return results


def format_elapsed_time(seconds: float) -> str:
    """
    Format elapsed time in human-readable format.

    Examples
    --------
    >>> format_elapsed_time(3725)
    '1h 2m 5s'
    >>> format_elapsed_time(4.2)
    '4.2s'
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)

    if hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    return f"{minutes}m {secs}s"
