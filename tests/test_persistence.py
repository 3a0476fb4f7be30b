"""Round state export and import."""

import json

import pytest

from babyjub import Keypair
from coordinator import (
    DeactivateProcessor,
    MessageBatchProcessor,
    StateImportError,
    build_deactivate_payload,
    export_state,
    import_state,
    load_state,
    save_state,
)

from conftest import publish, publish_deactivate, vote_message


@pytest.fixture
def busy_state(signed_up_state, coordinator, voters):
    publish_deactivate(signed_up_state, build_deactivate_payload(3, voters[3], coordinator.pub_key))
    DeactivateProcessor(signed_up_state, coordinator).process()
    publish(signed_up_state, vote_message(voters[0], coordinator.pub_key, 0, 1, 0, 10))
    publish(signed_up_state, vote_message(voters[1], coordinator.pub_key, 1, 1, 4, 20))
    signed_up_state.end_vote_period()
    return signed_up_state


def test_export_import_round_trip(busy_state, coordinator):
    restored = import_state(export_state(busy_state), coordinator)

    assert restored.period == busy_state.period
    assert restored.num_sign_ups == busy_state.num_sign_ups
    assert restored.state_tree.root == busy_state.state_tree.root
    assert restored.deactivate_commitment == busy_state.deactivate_commitment
    assert restored.deactivate_records == busy_state.deactivate_records
    assert restored.messages == busy_state.messages
    assert restored.state_commitment == busy_state.state_commitment


def test_restored_round_processes_identically(busy_state, coordinator):
    restored = import_state(json.loads(json.dumps(export_state(busy_state))), coordinator)

    original = MessageBatchProcessor(busy_state, coordinator).process(new_state_salt=9)
    replayed = MessageBatchProcessor(restored, coordinator).process(new_state_salt=9)
    assert replayed.input_hash == original.input_hash
    assert replayed.diagnostics == original.diagnostics


def test_private_key_not_exported(busy_state, coordinator):
    data = export_state(busy_state)
    assert str(coordinator.formatted_priv_key) not in json.dumps(data)
    assert not any("priv" in key for key in data)


def test_wrong_coordinator_rejected(busy_state):
    with pytest.raises(StateImportError):
        import_state(export_state(busy_state), Keypair.generate(999))


def test_tampered_leaf_rejected(busy_state, coordinator):
    data = export_state(busy_state)
    data['leaves']['0']['balance'] = '1000'
    with pytest.raises(StateImportError):
        import_state(data, coordinator)


def test_tampered_record_rejected(busy_state, coordinator):
    data = export_state(busy_state)
    data['deactivate_records']['0'][4] = '1'
    with pytest.raises(StateImportError):
        import_state(data, coordinator)


def test_broken_message_chain_rejected(busy_state, coordinator):
    data = export_state(busy_state)
    data['messages'][1]['prev_hash'] = '5'
    with pytest.raises(StateImportError):
        import_state(data, coordinator)


def test_tampered_interior_node_rejected(busy_state, coordinator):
    data = export_state(busy_state)
    data['state_tree']['nodes'][1] = '5'
    with pytest.raises(StateImportError):
        import_state(data, coordinator)


def test_tampered_root_rejected(busy_state, coordinator):
    data = export_state(busy_state)
    data['deactivate_tree']['nodes'][0] = '1'
    with pytest.raises(StateImportError):
        import_state(data, coordinator)


def test_tampered_deactivate_message_rejected(busy_state, coordinator):
    data = export_state(busy_state)
    data['deactivate_messages'][0]['ciphertext'][0] = '1'
    with pytest.raises(StateImportError):
        import_state(data, coordinator)


def test_malformed_document(busy_state, coordinator):
    data = export_state(busy_state)
    del data['state_tree']
    with pytest.raises(StateImportError):
        import_state(data, coordinator)

    with pytest.raises(StateImportError):
        import_state({'version': 99}, coordinator)


def test_save_and_load(busy_state, coordinator, tmp_path):
    path = tmp_path / "state" / "round.json"
    save_state(busy_state, path)
    restored = load_state(path, coordinator)
    assert restored.state_tree.root == busy_state.state_tree.root


def test_load_rejects_invalid_json(tmp_path, coordinator):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(StateImportError):
        load_state(path, coordinator)
