#!/usr/bin/env python3
"""
Round operator
==============
Drives one voting round end to end: sign-ups and message intake, deactivate
batches, key rotation, vote processing and tallying. Every batch is applied
synchronously and in order; proofs for finished batches are generated by
the snarkjs adapter and may overlap with preparing the next batch.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from babyjub import Keypair, Point
from config import SystemConfig
from coordinator import (
    BatchWitness,
    DeactivateProcessor,
    KeyRotationResult,
    KeyRotationService,
    Message,
    MessageBatchProcessor,
    Period,
    RoundState,
    TallyProcessor,
    decode_tally_result,
    export_state,
    save_state,
)
from utils import PerformanceMonitor
from zk import ProofArtifact, SnarkjsProver

logger = logging.getLogger(__name__)


class MACIOperator:
    """Coordinator-side operator for a single round"""

    def __init__(self, config: SystemConfig, coordinator: Optional[Keypair] = None,
                 state: Optional[RoundState] = None):
        self.config = config
        self.coordinator = coordinator or Keypair.generate()
        self.state = state or RoundState(config.round, self.coordinator.pub_key)

        self.message_processor = MessageBatchProcessor(self.state, self.coordinator)
        self.deactivate_processor = DeactivateProcessor(self.state, self.coordinator)
        self.key_rotation = KeyRotationService(self.state)
        self.tally_processor = TallyProcessor(self.state)

        self.performance_monitor = PerformanceMonitor()
        self.witnesses: List[BatchWitness] = []
        self.proofs: List[ProofArtifact] = []

        self.prover: Optional[SnarkjsProver] = None
        if config.prover.enabled:
            self.prover = SnarkjsProver(
                config.prover.build_dir,
                node_binary=config.prover.node_binary,
                snarkjs_binary=config.prover.snarkjs_binary,
                timeout=config.prover.proof_timeout,
            )
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

        circuit = config.round.circuit
        logger.info(f"Initialized round operator: state depth {circuit.state_tree_depth}, "
                    f"vote option depth {circuit.vote_option_tree_depth}, "
                    f"batch size {circuit.message_batch_size}")

    @property
    def coord_pub_key(self) -> Point:
        return self.coordinator.pub_key

    @property
    def period(self) -> Period:
        return self.state.period

    # Intake

    def sign_up(self, pub_key: Point, balance: Optional[int] = None) -> int:
        with self.performance_monitor.start_operation("sign_up"):
            return self.state.sign_up(pub_key, balance)

    def publish_message(self, message: Message) -> Message:
        return self.state.push_message(message.ciphertext, message.enc_pub_key)

    def publish_messages(self, messages: Sequence[Message]) -> List[Message]:
        return [self.publish_message(m) for m in messages]

    def publish_deactivate_message(self, message: Message) -> Message:
        return self.state.push_deactivate_message(message.ciphertext, message.enc_pub_key)

    def end_vote_period(self):
        self.state.end_vote_period()

    # Processing

    def _record(self, witness: BatchWitness) -> BatchWitness:
        self.witnesses.append(witness)
        return witness

    def process_deactivate_messages(self, input_size: Optional[int] = None,
                                    sub_state_tree_length: Optional[int] = None) -> BatchWitness:
        with self.performance_monitor.start_operation("process_deactivate") as op:
            witness = self.deactivate_processor.process(input_size, sub_state_tree_length)
            op.items = witness.batch_end - witness.batch_start
        return self._record(witness)

    def add_new_key(self, old_keypair: Keypair, new_pub_key: Point,
                    random_val: Optional[int] = None) -> KeyRotationResult:
        with self.performance_monitor.start_operation("add_new_key"):
            return self.key_rotation.rotate_key(old_keypair, new_pub_key, random_val=random_val)

    def pre_add_new_key(self, old_keypair: Keypair, new_pub_key: Point,
                        deactivates: Sequence[Sequence[int]], deactivate_root: int,
                        random_val: Optional[int] = None) -> KeyRotationResult:
        with self.performance_monitor.start_operation("pre_add_new_key"):
            return self.key_rotation.pre_rotate_key(old_keypair, new_pub_key, deactivates,
                                                    deactivate_root, random_val)

    def process_messages(self, new_state_salt: Optional[int] = None) -> BatchWitness:
        with self.performance_monitor.start_operation("process_messages") as op:
            witness = self.message_processor.process(new_state_salt)
            op.items = witness.batch_end - witness.batch_start
        return self._record(witness)

    def process_tally(self, tally_salt: Optional[int] = None) -> BatchWitness:
        with self.performance_monitor.start_operation("process_tally") as op:
            witness = self.tally_processor.process(tally_salt)
            op.items = witness.batch_end - witness.batch_start
        return self._record(witness)

    def process_all_messages(self) -> List[BatchWitness]:
        witnesses = []
        while self.message_processor.has_unprocessed_messages():
            witnesses.append(self.process_messages())
        return witnesses

    def process_all_tally(self) -> List[BatchWitness]:
        witnesses = []
        while self.state.period == Period.TALLYING:
            witnesses.append(self.process_tally())
        return witnesses

    def get_tally_results(self) -> List[Dict[str, int]]:
        results = []
        for option, value in enumerate(self.state.get_tally_results()):
            votes, voice_credits = decode_tally_result(value)
            results.append({'option': option, 'votes': votes, 'voice_credits': voice_credits})
        return results

    # Proving

    def circuit_name(self, witness: BatchWitness) -> str:
        names = {
            'process_messages': self.config.prover.process_messages_circuit,
            'process_deactivate': self.config.prover.process_deactivate_circuit,
            'tally_votes': self.config.prover.tally_circuit,
        }
        return names[witness.circuit]

    async def prove(self, witness: BatchWitness) -> Optional[ProofArtifact]:
        if self.prover is None:
            return None
        artifact = await self.prover.prove(self.circuit_name(witness), witness.inputs)
        self.proofs.append(artifact)
        return artifact

    def _processing_lock(self) -> asyncio.Lock:
        """One lock per event loop; the operator may be driven by successive asyncio.run calls"""
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def run_processing(self) -> Dict[str, Any]:
        """
        Process every remaining vote and tally batch, proving each one as soon
        as its state is final. Batches themselves are applied strictly in order.
        """
        async with self._processing_lock():
            proof_tasks = []
            while self.state.period in (Period.PROCESSING, Period.TALLYING):
                if self.state.period == Period.PROCESSING:
                    witness = self.process_messages()
                else:
                    witness = self.process_tally()
                if self.prover is not None:
                    proof_tasks.append(asyncio.create_task(self.prove(witness)))
                await asyncio.sleep(0)

            if proof_tasks:
                await asyncio.gather(*proof_tasks)

        return self.get_round_summary()

    # Reporting

    def get_round_summary(self) -> Dict[str, Any]:
        params = self.config.round
        summary: Dict[str, Any] = {
            'round': {
                'period': self.state.period.value,
                'num_sign_ups': self.state.num_sign_ups,
                'messages': len(self.state.messages),
                'deactivate_messages': len(self.state.deactivate_messages),
                'max_vote_options': params.max_vote_options,
                'quadratic_cost': params.is_quadratic_cost,
                'state_root': str(self.state.state_tree.root),
                'state_commitment': str(self.state.state_commitment),
                'tally_commitment': str(self.state.tally_commitment),
            },
            'batches': [
                {
                    'circuit': w.circuit,
                    'batch_start': w.batch_start,
                    'batch_end': w.batch_end,
                    'accepted': w.accepted_count,
                    'input_hash': str(w.input_hash),
                }
                for w in self.witnesses
            ],
            'proofs': len(self.proofs),
            'performance_metrics': self.performance_monitor.get_summary()['operations'],
        }
        if self.state.period == Period.ENDED:
            summary['tally'] = self.get_tally_results()
        return summary

    def export_state(self) -> Dict[str, Any]:
        return export_state(self.state)

    def save_state(self, filepath):
        save_state(self.state, filepath)
