"""
snarkjs adapter for the processing circuits.

The engine never proves anything itself: it hands a finished witness to
node/snarkjs and checks that the returned public signal is the packed
input hash it computed.
"""

import asyncio
import json
import logging
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ProofGenerationError
from .poseidon import SNARK_FIELD_SIZE

logger = logging.getLogger(__name__)


def stringize(value: Any) -> Any:
    """Recursively turn integers into decimal strings for circuit input files"""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {k: stringize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [stringize(v) for v in value]
    return value


@dataclass
class ProofArtifact:
    """Container for proof and metadata"""
    circuit_name: str
    proof: Dict[str, Any]
    public_signals: List[str]
    generation_time: float
    timestamp: float = field(default_factory=time.time)

    @property
    def input_hash(self) -> int:
        return int(self.public_signals[0])


class SnarkjsProver:
    """Runs witness generation and Groth16 proving for one build directory"""

    def __init__(self, build_dir: Path, node_binary: str = "node",
                 snarkjs_binary: str = "snarkjs", timeout: Optional[float] = None):
        self.build_dir = Path(build_dir)
        self.node_binary = node_binary
        self.snarkjs_binary = snarkjs_binary
        self.timeout = timeout

    def circuit_artifacts(self, circuit_name: str) -> Tuple[Path, Path, Path]:
        """(generate_witness.js, wasm, zkey) for a circuit; all must exist"""
        circuit_dir = self.build_dir / circuit_name
        js_dir = circuit_dir / f"{circuit_name}_js"
        paths = (
            js_dir / "generate_witness.js",
            js_dir / f"{circuit_name}.wasm",
            circuit_dir / f"{circuit_name}.zkey",
        )
        missing = [str(p) for p in paths if not p.exists()]
        if missing:
            raise ProofGenerationError(
                f"Missing artifacts for circuit {circuit_name}: {', '.join(missing)}")
        return paths

    async def _run(self, cmd: List[str], stage: str):
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ProofGenerationError(f"{stage} timed out after {self.timeout}s") from e

        if process.returncode != 0:
            raise ProofGenerationError(f"{stage} failed: {stderr.decode(errors='replace')}")

    async def prove(self, circuit_name: str, witness: Dict[str, Any]) -> ProofArtifact:
        """Generate a proof for a witness whose single public input is inputHash"""
        if 'inputHash' not in witness:
            raise ProofGenerationError("Witness has no inputHash")

        witness_js, wasm_file, zkey_file = self.circuit_artifacts(circuit_name)
        start_time = time.time()

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            input_file = temp_path / "input.json"
            wtns_file = temp_path / "witness.wtns"
            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"

            input_file.write_text(json.dumps(stringize(witness)))

            await self._run(
                [self.node_binary, str(witness_js), str(wasm_file), str(input_file), str(wtns_file)],
                "Witness generation")
            await self._run(
                [self.snarkjs_binary, 'groth16', 'prove', str(zkey_file), str(wtns_file),
                 str(proof_file), str(public_file)],
                "Proof generation")

            proof = json.loads(proof_file.read_text())
            public_signals = json.loads(public_file.read_text())

        self._validate_public_signals(public_signals, int(witness['inputHash']), circuit_name)

        generation_time = time.time() - start_time
        logger.info(f"Generated proof for {circuit_name} in {generation_time:.2f}s")

        return ProofArtifact(
            circuit_name=circuit_name,
            proof=proof,
            public_signals=[str(s) for s in public_signals],
            generation_time=generation_time,
        )

    @staticmethod
    def _validate_public_signals(signals: List[str], input_hash: int, circuit_name: str):
        if len(signals) != 1:
            raise ProofGenerationError(
                f"{circuit_name}: expected a single public signal, got {len(signals)}")
        value = int(signals[0])
        if value >= SNARK_FIELD_SIZE or value != input_hash:
            raise ProofGenerationError(
                f"{circuit_name}: public signal does not match the computed input hash")
