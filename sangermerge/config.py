"""
Configuration Management for sangermerge

This module provides the configuration system for the read merging pipeline
using frozen dataclasses. The configuration system supports:

1. Default parameter values matching the behaviour of merge_reads()
2. Loading configuration from YAML/JSON files
3. Environment variable overrides
4. Validation at construction time
5. Hierarchical configuration with component-specific settings

Configuration Structure:
- ConsensusConfig: Agreement thresholds for consensus calling
- AlignmentConfig: MAFFT invocation parameters
- FrameshiftConfig: Scoring for reference-guided frameshift correction
- QualityConfig: Distance matrix and dendrogram parameters
- MergeConfig: Master configuration combining all components

Key Design Principles:
- Immutable configuration objects (frozen dataclasses)
- The genetic code is selected by NCBI table id and handed explicitly to
  every stage that translates; there is no module-level mutable code table
- Easy override mechanism via update()

Example Usage:
    >>> from sangermerge.config import get_default_config
    >>> config = get_default_config()
    >>> config.consensus.min_information
    1.0
    >>> custom = config.update(consensus__min_information=0.0,
    ...                        consensus__min_reads=2)

Author: Steph Smith (steph.smith@unc.edu)
"""

from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Optional, Tuple, Dict, Any, Union
import os
import json
import logging

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


# ============================================================================
# Consensus Configuration
# ============================================================================

@dataclass(frozen=True)
class ConsensusConfig:
    """
    Configuration for per-column consensus calling.

    Attributes
    ----------
    min_information : float
        Minimum fraction of reads that must agree on a non-gap character to
        call a consensus base at a column (default: 1.0, i.e. every read
        must overlap and agree).

    min_reads : int
        Minimum absolute number of agreeing reads (default: 0). Converted to
        the fraction min_reads / n_reads; the larger of the two thresholds
        is used.

    no_consensus_char : str
        Character written where no consensus is called (default: "-").
        This is the gap character, so a genuine gap and an uncalled column
        look the same in the gapped consensus.
    """
    min_information: float = 1.0
    min_reads: int = 0
    no_consensus_char: str = "-"

    def __post_init__(self):
        """Validate configuration parameters."""
        if not 0.0 <= self.min_information <= 1.0:
            raise ConfigurationError("min_information must be between 0 and 1")
        if self.min_reads < 0:
            raise ConfigurationError("min_reads must be >= 0")
        if len(self.no_consensus_char) != 1:
            raise ConfigurationError("no_consensus_char must be a single character")


# ============================================================================
# Alignment Configuration
# ============================================================================

@dataclass(frozen=True)
class AlignmentConfig:
    """
    Configuration for multiple sequence alignment with MAFFT.

    Attributes
    ----------
    mafft_executable : str
        Name or path of the MAFFT executable (default: "mafft")

    mafft_algorithm : str
        MAFFT strategy flag without leading dashes (default: "auto").
        Options: "auto", "localpair", "globalpair", "genafpair"

    extra_options : Tuple[str, ...]
        Additional command line options appended to every MAFFT call
    """
    mafft_executable: str = "mafft"
    mafft_algorithm: str = "auto"
    extra_options: Tuple[str, ...] = ()

    def __post_init__(self):
        """Validate configuration parameters."""
        valid = ["auto", "localpair", "globalpair", "genafpair"]
        if self.mafft_algorithm not in valid:
            raise ConfigurationError(f"Invalid mafft_algorithm: {self.mafft_algorithm}")
        if isinstance(self.extra_options, list):
            object.__setattr__(self, 'extra_options', tuple(self.extra_options))


# ============================================================================
# Frameshift Correction Configuration
# ============================================================================

@dataclass(frozen=True)
class FrameshiftConfig:
    """
    Scoring parameters for frameshift-aware alignment against a protein.

    Codon/residue pairs are scored with the substitution matrix; gaps and
    frameshifts carry fixed penalties.

    Attributes
    ----------
    frameshift_penalty : float
        Penalty for skipping 1-2 extraneous bases or for consuming a codon
        that is missing 1-2 bases (default: -15.0)

    codon_gap_penalty : float
        Penalty for a whole codon without a reference residue, or a reference
        residue without a codon (default: -8.0)

    stop_codon_score : float
        Score for aligning an internal stop codon to any residue
        (default: -4.0)

    substitution_matrix : str
        Name of a Biopython substitution matrix (default: "BLOSUM62")
    """
    frameshift_penalty: float = -15.0
    codon_gap_penalty: float = -8.0
    stop_codon_score: float = -4.0
    substitution_matrix: str = "BLOSUM62"

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.frameshift_penalty >= 0:
            raise ConfigurationError("frameshift_penalty must be negative")
        if self.codon_gap_penalty >= 0:
            raise ConfigurationError("codon_gap_penalty must be negative")
        if self.frameshift_penalty > self.codon_gap_penalty:
            logger.warning(
                f"frameshift_penalty ({self.frameshift_penalty}) is milder than "
                f"codon_gap_penalty ({self.codon_gap_penalty}); frameshifts will "
                f"be preferred over codon gaps"
            )


# ============================================================================
# Quality Configuration
# ============================================================================

@dataclass(frozen=True)
class QualityConfig:
    """
    Configuration for the distance matrix and dendrogram.

    Attributes
    ----------
    linkage_method : str
        Hierarchical clustering linkage method (default: "average" = UPGMA)
        Options: "average", "single", "complete", "weighted"
    """
    linkage_method: str = "average"

    def __post_init__(self):
        """Validate configuration parameters."""
        if self.linkage_method not in ["average", "single", "complete", "weighted"]:
            raise ConfigurationError(f"Invalid linkage_method: {self.linkage_method}")


# ============================================================================
# Master Configuration
# ============================================================================

@dataclass(frozen=True)
class MergeConfig:
    """
    Master configuration for merge_reads().

    Attributes
    ----------
    consensus : ConsensusConfig
        Consensus calling thresholds
    alignment : AlignmentConfig
        MAFFT settings
    frameshift : FrameshiftConfig
        Frameshift correction scoring
    quality : QualityConfig
        Distance and clustering settings
    genetic_code_table : int
        NCBI translation table id (default: 1, the standard code)
    processors : int, optional
        Worker count; None uses every CPU reported by os.cpu_count()
        (default: None)
    log_level : str
        Package logging level applied by merge_reads when this config is
        passed to it (default: "INFO")
    """
    consensus: ConsensusConfig = field(default_factory=ConsensusConfig)
    alignment: AlignmentConfig = field(default_factory=AlignmentConfig)
    frameshift: FrameshiftConfig = field(default_factory=FrameshiftConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    genetic_code_table: int = 1
    processors: Optional[int] = None
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            raise ConfigurationError(f"log_level must be one of {valid_levels}")

        if self.processors is not None and self.processors < 1:
            raise ConfigurationError("processors must be at least 1")

    def update(self, **kwargs) -> 'MergeConfig':
        """
        Create a new configuration with updated values.

        Supports nested updates using double underscore notation:
        config.update(consensus__min_reads=2)

        Parameters
        ----------
        **kwargs
            Configuration parameters to update

        Returns
        -------
        MergeConfig
            New configuration object with updates
        """
        top_level = {}
        nested = {}

        for key, value in kwargs.items():
            if '__' in key:
                component, param = key.split('__', 1)
                nested.setdefault(component, {})[param] = value
            else:
                top_level[key] = value

        for component, updates in nested.items():
            current = getattr(self, component)
            top_level[component] = replace(current, **updates)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary."""
        config_dict = asdict(self)
        config_dict['alignment']['extra_options'] = list(self.alignment.extra_options)
        return config_dict

    def to_yaml(self, output_path: Union[str, Path]) -> None:
        """Save configuration to a YAML file."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {path}")

    def to_json(self, output_path: Union[str, Path]) -> None:
        """Save configuration to a JSON file."""
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger.info(f"Configuration saved to {path}")


# ============================================================================
# Helper Functions
# ============================================================================

def get_default_config() -> MergeConfig:
    """
    Get default merge configuration.

    Examples
    --------
    >>> config = get_default_config()
    >>> config.consensus.min_reads
    0
    """
    return MergeConfig()


def load_config_from_file(config_path: Union[str, Path]) -> MergeConfig:
    """
    Load configuration from YAML or JSON file.

    Automatically detects file format based on extension.

    Parameters
    ----------
    config_path : Union[str, Path]
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    MergeConfig
        Loaded configuration

    Raises
    ------
    FileNotFoundError
        If configuration file doesn't exist
    ConfigurationError
        If file format is not supported or values are invalid
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()

    with open(path, 'r') as f:
        if suffix in ['.yaml', '.yml']:
            config_dict = yaml.safe_load(f) or {}
        elif suffix == '.json':
            config_dict = json.load(f)
        else:
            raise ConfigurationError(f"Unsupported config file format: {suffix}")

    logger.info(f"Loaded configuration from {path}")
    return _dict_to_config(config_dict)


def _dict_to_config(config_dict: Dict[str, Any]) -> MergeConfig:
    """Convert a nested dictionary to a MergeConfig object."""
    config_dict = dict(config_dict)
    components = {
        'consensus': ConsensusConfig,
        'alignment': AlignmentConfig,
        'frameshift': FrameshiftConfig,
        'quality': QualityConfig,
    }

    nested_configs = {}
    for name, cls in components.items():
        if name in config_dict:
            try:
                nested_configs[name] = cls(**config_dict.pop(name))
            except TypeError as e:
                raise ConfigurationError(f"Invalid '{name}' section: {e}") from e

    try:
        return MergeConfig(**nested_configs, **config_dict)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config_from_env() -> Dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Environment variables should be prefixed with SANGERMERGE_ and use
    double underscores for nesting:

    SANGERMERGE_CONSENSUS__MIN_READS=2
    SANGERMERGE_PROCESSORS=4

    Returns
    -------
    Dict[str, Any]
        Overrides suitable for MergeConfig.update()

    Examples
    --------
    >>> import os
    >>> os.environ['SANGERMERGE_PROCESSORS'] = '4'
    >>> config = get_default_config().update(**load_config_from_env())
    """
    prefix = "SANGERMERGE_"
    overrides = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            overrides[config_key] = _parse_env_value(value)

    if overrides:
        logger.debug(f"Loaded {len(overrides)} configuration overrides from environment")

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    if value.lower() in ['true', 'yes']:
        return True
    if value.lower() in ['false', 'no']:
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value
