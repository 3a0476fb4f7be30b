"""snarkjs adapter: input serialization and failure paths."""

import asyncio

import pytest

from zk import SNARK_FIELD_SIZE, ProofGenerationError, SnarkjsProver, stringize


def test_stringize_nested():
    witness = {'a': 1, 'b': [2, [3, True]], 'c': 'x'}
    assert stringize(witness) == {'a': '1', 'b': ['2', ['3', '1']], 'c': 'x'}


def test_stringize_large_values():
    assert stringize([SNARK_FIELD_SIZE - 1]) == [str(SNARK_FIELD_SIZE - 1)]


def test_missing_artifacts(tmp_path):
    prover = SnarkjsProver(tmp_path)
    with pytest.raises(ProofGenerationError):
        asyncio.run(prover.prove("ProcessMessages", {'inputHash': 1}))


def test_witness_without_input_hash(tmp_path):
    prover = SnarkjsProver(tmp_path)
    with pytest.raises(ProofGenerationError):
        asyncio.run(prover.prove("ProcessMessages", {'msgs': []}))


def test_artifact_layout(tmp_path):
    circuit_dir = tmp_path / "TallyVotes"
    js_dir = circuit_dir / "TallyVotes_js"
    js_dir.mkdir(parents=True)
    for path in (js_dir / "generate_witness.js", js_dir / "TallyVotes.wasm",
                 circuit_dir / "TallyVotes.zkey"):
        path.write_text("")

    witness_js, wasm, zkey = SnarkjsProver(tmp_path).circuit_artifacts("TallyVotes")
    assert witness_js.name == "generate_witness.js"
    assert wasm.name == "TallyVotes.wasm"
    assert zkey.parent == circuit_dir


def test_public_signal_must_match():
    SnarkjsProver._validate_public_signals(["42"], 42, "TallyVotes")
    with pytest.raises(ProofGenerationError):
        SnarkjsProver._validate_public_signals(["41"], 42, "TallyVotes")
    with pytest.raises(ProofGenerationError):
        SnarkjsProver._validate_public_signals(["42", "1"], 42, "TallyVotes")
