"""Configuration management for the coordinator engine."""

from .config import (
    SystemConfig,
    RoundConfig,
    CircuitConfig,
    ProverConfig,
    ConfigurationError,
    load_config,
    save_config,
    round_config_to_dict,
)

__all__ = ['SystemConfig', 'RoundConfig', 'CircuitConfig', 'ProverConfig',
           'ConfigurationError', 'load_config', 'save_config', 'round_config_to_dict']
