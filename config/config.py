from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

TREE_ARITY = 5


class ConfigurationError(Exception):
    """Invalid round or system configuration"""
    pass


def _require_positive(name: str, value: int):
    if not isinstance(value, int) or value < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")


@dataclass
class CircuitConfig:
    """Tree depths and batch sizes fixed when the circuits are compiled"""
    state_tree_depth: int = 2
    int_state_tree_depth: int = 1
    vote_option_tree_depth: int = 1
    message_batch_size: int = 5
    deactivate_batch_size: int = 5

    def __post_init__(self):
        for name in ('state_tree_depth', 'int_state_tree_depth', 'vote_option_tree_depth',
                     'message_batch_size', 'deactivate_batch_size'):
            _require_positive(name, getattr(self, name))
        if self.int_state_tree_depth > self.state_tree_depth:
            raise ConfigurationError("int_state_tree_depth cannot exceed state_tree_depth")

    @property
    def deactivate_tree_depth(self) -> int:
        return self.state_tree_depth + 2

    @property
    def max_state_leaves(self) -> int:
        return TREE_ARITY ** self.state_tree_depth

    @property
    def vote_option_capacity(self) -> int:
        return TREE_ARITY ** self.vote_option_tree_depth

    @property
    def tally_batch_size(self) -> int:
        return TREE_ARITY ** self.int_state_tree_depth


@dataclass
class RoundConfig:
    """Parameters of one voting round"""
    max_vote_options: int = 5
    voice_credit_amount: int = 100
    is_quadratic_cost: bool = False
    circuit: CircuitConfig = field(default_factory=CircuitConfig)

    def __post_init__(self):
        if isinstance(self.circuit, dict):
            self.circuit = CircuitConfig(**self.circuit)
        _require_positive('max_vote_options', self.max_vote_options)
        if self.max_vote_options > self.circuit.vote_option_capacity:
            raise ConfigurationError(
                f"max_vote_options {self.max_vote_options} exceeds vote option tree capacity "
                f"{self.circuit.vote_option_capacity}")
        if not isinstance(self.voice_credit_amount, int) or self.voice_credit_amount < 0:
            raise ConfigurationError("voice_credit_amount must be a non-negative integer")


@dataclass
class ProverConfig:
    build_dir: Path = field(default_factory=lambda: Path("circuits/build"))
    enabled: bool = False
    proof_timeout: int = 600
    node_binary: str = "node"
    snarkjs_binary: str = "snarkjs"
    process_messages_circuit: str = "ProcessMessages"
    process_deactivate_circuit: str = "ProcessDeactivateMessages"
    tally_circuit: str = "TallyVotes"
    add_new_key_circuit: str = "AddNewKey"

    def __post_init__(self):
        self.build_dir = Path(self.build_dir)


@dataclass
class SystemConfig:
    round: RoundConfig = field(default_factory=RoundConfig)
    prover: ProverConfig = field(default_factory=ProverConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    state_dir: Path = field(default_factory=lambda: Path("state"))
    log_level: str = "INFO"
    enable_benchmarking: bool = True
    enable_debug_mode: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)
        self.state_dir = Path(self.state_dir)

        if self.enable_debug_mode:
            self.log_level = "DEBUG"


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if not config_path.exists():
        return SystemConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse config file {config_path}: {e}") from e

    try:
        round_data = dict(config_data.get('round', {}))
        circuit_data = round_data.pop('circuit', {})
        round_config = RoundConfig(circuit=CircuitConfig(**circuit_data), **round_data)

        prover_config = ProverConfig(**config_data.get('prover', {}))

        return SystemConfig(
            round=round_config,
            prover=prover_config,
            log_dir=Path(config_data.get('log_dir', 'logs')),
            results_dir=Path(config_data.get('results_dir', 'results')),
            state_dir=Path(config_data.get('state_dir', 'state')),
            log_level=config_data.get('log_level', 'INFO'),
            enable_benchmarking=config_data.get('enable_benchmarking', True),
            enable_debug_mode=config_data.get('enable_debug_mode', False)
        )
    except TypeError as e:
        raise ConfigurationError(f"Unknown key in config file {config_path}: {e}") from e


def round_config_to_dict(round_config: RoundConfig) -> Dict[str, Any]:
    circuit = round_config.circuit
    return {
        'max_vote_options': round_config.max_vote_options,
        'voice_credit_amount': round_config.voice_credit_amount,
        'is_quadratic_cost': round_config.is_quadratic_cost,
        'circuit': {
            'state_tree_depth': circuit.state_tree_depth,
            'int_state_tree_depth': circuit.int_state_tree_depth,
            'vote_option_tree_depth': circuit.vote_option_tree_depth,
            'message_batch_size': circuit.message_batch_size,
            'deactivate_batch_size': circuit.deactivate_batch_size,
        },
    }


def config_to_dict(config: SystemConfig) -> Dict[str, Any]:
    return {
        'round': round_config_to_dict(config.round),
        'prover': {
            'build_dir': str(config.prover.build_dir),
            'enabled': config.prover.enabled,
            'proof_timeout': config.prover.proof_timeout,
            'node_binary': config.prover.node_binary,
            'snarkjs_binary': config.prover.snarkjs_binary,
            'process_messages_circuit': config.prover.process_messages_circuit,
            'process_deactivate_circuit': config.prover.process_deactivate_circuit,
            'tally_circuit': config.prover.tally_circuit,
            'add_new_key_circuit': config.prover.add_new_key_circuit,
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'state_dir': str(config.state_dir),
        'log_level': config.log_level,
        'enable_benchmarking': config.enable_benchmarking,
        'enable_debug_mode': config.enable_debug_mode
    }


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        yaml.dump(config_to_dict(config), f, default_flow_style=False, sort_keys=False)
