"""
Configuration management for Kron photometry.

Kron measurement options live in a frozen dataclass so that one
configuration can be shared by every source of a run. ``ConfigManager``
reads them, together with logging options, from a YAML file.
"""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .utils import ConfigurationError


@dataclass(frozen=True)
class KronPhotometryConfig:
    """Options controlling the Kron aperture and flux measurement."""
    n_sigma_for_radius: float = 6.0      # multiplier of the current radius for the moment window
    n_iter_for_radius: int = 1           # maximum number of radius iterations
    smoothing_sigma: float = -1.0        # Gaussian pre-smoothing width; <= 0 disables
    n_radius_for_flux: float = 2.5       # Kron radius multiplier for the flux aperture
    max_sinc_radius: float = 10.0        # largest semi-minor axis integrated exactly
    minimum_radius: float = 0.0          # floor on the Kron radius; 0 disables
    enforce_minimum_radius: bool = True
    use_footprint_radius: bool = False   # widen the initial shape to the detection footprint
    fixed: bool = False                  # reuse each source's stored aperture
    compute_psf_factor: bool = True
    prefix: str = 'kron'

    @property
    def smoothing_enabled(self) -> bool:
        return self.smoothing_sigma > 0

    def validate(self) -> bool:
        """
        Check option ranges.

        Raises:
        -------
        ConfigurationError
            Listing every invalid option
        """
        errors = []

        if not self.n_sigma_for_radius > 1.0:
            errors.append(f"n_sigma_for_radius must be > 1, got {self.n_sigma_for_radius}")
        if self.n_iter_for_radius < 0:
            errors.append(f"n_iter_for_radius must be >= 0, got {self.n_iter_for_radius}")
        if not self.n_radius_for_flux > 0:
            errors.append(f"n_radius_for_flux must be positive, got {self.n_radius_for_flux}")
        if self.max_sinc_radius < 0:
            errors.append(f"max_sinc_radius must be >= 0, got {self.max_sinc_radius}")
        if self.minimum_radius < 0:
            errors.append(f"minimum_radius must be >= 0, got {self.minimum_radius}")
        if not self.prefix:
            errors.append("prefix must be a non-empty string")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(errors))
        return True


@dataclass(frozen=True)
class LoggingConfig:
    """Logging options passed to ``setup_logging``."""
    level: str = 'INFO'
    log_file: Optional[str] = None
    enable_colors: bool = True


class ConfigManager:
    """
    Loads, validates and saves Kron photometry configuration.

    The YAML file has two optional sections::

        kron_photometry:
          n_sigma_for_radius: 6.0
          n_iter_for_radius: 3
        logging:
          level: DEBUG
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Parameters:
        -----------
        config_path : str, optional
            Path to the configuration file. If None, loads default configuration.
        """
        self.logger = logging.getLogger(__name__)
        self.config_path = config_path
        self.config: Dict[str, Any] = {}

        if config_path:
            self.load_config(config_path)
        else:
            self.load_default_config()

    def load_config(self, config_path: str) -> None:
        """
        Load configuration from a YAML file.

        Raises:
        -------
        FileNotFoundError
            If the configuration file doesn't exist
        ConfigurationError
            If the file is malformed or holds unknown options
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, 'r') as file:
                raw_config = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing YAML file {config_path}: {e}") from e

        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration file {config_path} must hold a mapping")

        self.config = {
            'kron_photometry': self._parse_kron_config(raw_config.get('kron_photometry') or {}),
            'logging': self._parse_logging_config(raw_config.get('logging') or {}),
        }
        self.logger.info(f"Successfully loaded configuration from {config_path}")

    def load_default_config(self) -> None:
        """Load default configuration values."""
        self.config = {
            'kron_photometry': KronPhotometryConfig(),
            'logging': LoggingConfig(),
        }
        self.logger.info("Loaded default configuration")

    def _parse_kron_config(self, kron_config: Dict[str, Any]) -> KronPhotometryConfig:
        """Parse the Kron photometry section."""
        return KronPhotometryConfig(**self._checked_options(kron_config, KronPhotometryConfig,
                                                            'kron_photometry'))

    def _parse_logging_config(self, logging_config: Dict[str, Any]) -> LoggingConfig:
        """Parse the logging section."""
        return LoggingConfig(**self._checked_options(logging_config, LoggingConfig, 'logging'))

    @staticmethod
    def _checked_options(section: Dict[str, Any], config_class, name: str) -> Dict[str, Any]:
        known = {f.name for f in fields(config_class)}
        unknown = sorted(set(section) - known)
        if unknown:
            raise ConfigurationError(f"Unknown options in section '{name}': {unknown}")
        return dict(section)

    def get_kron_config(self) -> KronPhotometryConfig:
        """Get Kron photometry configuration."""
        return self.config['kron_photometry']

    def get_logging_config(self) -> LoggingConfig:
        """Get logging configuration."""
        return self.config['logging']

    def validate_configuration(self) -> bool:
        """
        Validate the loaded configuration.

        Raises:
        -------
        ConfigurationError
            If configuration validation fails
        """
        self.get_kron_config().validate()

        level = self.get_logging_config().level
        if not isinstance(logging.getLevelName(str(level).upper()), int):
            raise ConfigurationError(f"Unknown logging level: {level}")

        self.logger.info("Configuration validation passed")
        return True

    def save_config(self, output_path: str) -> None:
        """
        Save current configuration to a YAML file.

        Parameters:
        -----------
        output_path : str
            Path to save the configuration file
        """
        config_dict = {key: asdict(value) for key, value in self.config.items()}

        with open(output_path, 'w') as file:
            yaml.dump(config_dict, file, default_flow_style=False, indent=2)

        self.logger.info(f"Configuration saved to {output_path}")


# Convenience function for quick configuration loading
def load_config(config_path: str) -> ConfigManager:
    """
    Load and validate a configuration file.

    Parameters:
    -----------
    config_path : str
        Path to configuration file

    Returns:
    --------
    ConfigManager
        Initialized configuration manager
    """
    config_manager = ConfigManager(config_path)
    config_manager.validate_configuration()
    return config_manager
