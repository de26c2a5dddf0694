"""Configuration handling for the pathway comparison pipeline."""

import tomli
import tomli_w
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pathway_concord.fcs import ON_TIMEOUT_CHOICES

DEFAULT_ANALYSIS = {
    'detection_threshold': 10,
    'significance_cutoff': 0.05,
    'min_overlap': 10,
    'min_set_size': 10,
    'max_set_size': 50000,
    'top_n': 10,
    'permutations': 10000,
    'seed': 42,
    'num_threads': 1,
    'permutation_timeout': None,
    'on_timeout': 'partial',
}


class PipelineConfig:
    """Configuration class for the pathway comparison pipeline."""

    def __init__(self, config_path: Union[str, Path]):
        """Initialise the configuration from a TOML file.

        Args:
            config_path: Path to the TOML configuration file
        """
        self.config_path = config_path

        # Load configuration file
        try:
            with open(config_path, "rb") as f:
                self.config = tomli.load(f)
        except FileNotFoundError:
            raise ValueError(f"Error loading configuration file: {config_path} does not exist")
        except Exception as e:
            raise ValueError(f"Error loading configuration file: {str(e)}")

        # Validate required sections
        required_sections = ['input', 'output', 'analysis']
        missing_sections = [section for section in required_sections if section not in self.config]
        if missing_sections:
            raise ValueError(f"Missing required sections in configuration: {', '.join(missing_sections)}")

        self.input_files = self.config.get("input", {})

        required_input_files = ['de_results_file', 'gene_sets_file']
        missing_files = [file for file in required_input_files if file not in self.input_files]
        if missing_files:
            raise ValueError(f"Missing required input files in configuration: {', '.join(missing_files)}")

        self.output_config = self.config.get("output", {})

        self.analysis_params = {**DEFAULT_ANALYSIS, **self.config.get("analysis", {})}

        self.detection_threshold = self.analysis_params['detection_threshold']
        self.significance_cutoff = self.analysis_params['significance_cutoff']
        self.min_overlap = self.analysis_params['min_overlap']
        self.min_set_size = self.analysis_params['min_set_size']
        self.max_set_size = self.analysis_params['max_set_size']
        self.top_n = self.analysis_params['top_n']
        self.permutations = self.analysis_params['permutations']
        self.seed = self.analysis_params['seed']
        self.num_threads = self.analysis_params['num_threads']
        self.permutation_timeout = self.analysis_params['permutation_timeout']
        self.on_timeout = self.analysis_params['on_timeout']

        self._validate_analysis()

    def _validate_analysis(self) -> None:
        """Check analysis parameters against their allowed ranges."""
        errors = []
        if self.detection_threshold < 0:
            errors.append("detection_threshold must be >= 0")
        if not 0 < self.significance_cutoff < 1:
            errors.append("significance_cutoff must be in (0, 1)")
        for name in ('min_overlap', 'min_set_size', 'top_n', 'num_threads'):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be >= 1")
        if self.max_set_size < self.min_set_size:
            errors.append("max_set_size must be >= min_set_size")
        if self.permutations < 100:
            errors.append("permutations must be >= 100")
        if self.permutation_timeout is not None and self.permutation_timeout <= 0:
            errors.append("permutation_timeout must be positive")
        if self.on_timeout not in ON_TIMEOUT_CHOICES:
            errors.append(f"on_timeout must be one of {', '.join(ON_TIMEOUT_CHOICES)}")
        if errors:
            raise ValueError(f"Invalid analysis parameters: {'; '.join(errors)}")

    def get_output_path(self, subdir: Optional[str] = None) -> Path:
        """Get the path to the output directory or a subdirectory within it.

        Args:
            subdir: Optional subdirectory name within the output directory

        Returns:
            Path object for the requested directory
        """
        output_dir = self.output_config.get("output_dir", self.output_config.get("directory", "results"))
        base_path = Path(output_dir)

        if subdir:
            return base_path / subdir

        return base_path

    def as_dict(self) -> Dict[str, Any]:
        """Effective configuration, with analysis defaults filled in."""
        analysis = {k: v for k, v in self.analysis_params.items() if v is not None}
        return {
            'input': {k: str(v) for k, v in self.input_files.items()},
            'output': dict(self.output_config),
            'analysis': analysis,
        }

    def save_config(self, output_path: Union[str, Path]) -> None:
        """Save the configuration to a TOML file.

        Args:
            output_path: Path to save the configuration file
        """
        with open(output_path, "wb") as f:
            tomli_w.dump(self.config, f)
