import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path
from typing import Any, Dict

from babyjub import Keypair
from config import SystemConfig, load_config, save_config
from coordinator import CoordinatorError, build_deactivate_payload, build_vote_payload
from maci_operator import MACIOperator
from utils import create_performance_report, save_results, setup_logging
from zk import ZKError

logger = logging.getLogger(__name__)


def simulate_round(config: SystemConfig, num_voters: int, seed: int = 42) -> MACIOperator:
    """
    Sign up voters, have them vote, deactivate the first voter and rotate
    that voter onto a fresh key which then votes again.
    """
    rng = random.Random(seed)
    operator = MACIOperator(config)
    params = config.round
    coord_pub_key = operator.coord_pub_key

    voters = []
    for _ in range(num_voters):
        keypair = Keypair.generate()
        state_idx = operator.sign_up(keypair.pub_key)
        voters.append((state_idx, keypair))
    logger.info(f"Signed up {len(voters)} voters")

    for state_idx, keypair in voters:
        max_weight = 10 if params.is_quadratic_cost else params.voice_credit_amount // params.max_vote_options
        options = [(i, rng.randint(0, max_weight)) for i in range(params.max_vote_options)]
        operator.publish_messages(build_vote_payload(state_idx, keypair, coord_pub_key, options))

    if voters:
        state_idx, old_keypair = voters[0]
        operator.publish_deactivate_message(build_deactivate_payload(state_idx, old_keypair, coord_pub_key))
        operator.process_deactivate_messages()

        new_keypair = Keypair.generate()
        rotation = operator.add_new_key(old_keypair, new_keypair.pub_key)
        logger.info(f"Voter {state_idx} rotated to state leaf {rotation.state_idx}")
        operator.publish_messages(
            build_vote_payload(rotation.state_idx, new_keypair, coord_pub_key, [(0, 1)]))

    operator.end_vote_period()
    return operator


async def run_demo(config: SystemConfig, num_voters: int) -> Dict[str, Any]:
    print("=" * 80)
    print("ANONYMOUS VOTING ROUND - COORDINATOR DEMONSTRATION")
    print("=" * 80)

    operator = simulate_round(config, num_voters)
    results = await operator.run_processing()

    print("\nBatches:")
    for batch in results['batches']:
        print(f"  {batch['circuit']:<20} [{batch['batch_start']}, {batch['batch_end']}) "
              f"accepted {batch['accepted']}")

    print("\nTally:")
    for option in results.get('tally', []):
        print(f"  Option {option['option']}: {option['votes']} votes "
              f"({option['voice_credits']} voice credits)")

    report_path = config.results_dir / "round_report.json"
    save_results(results, report_path)
    with open(config.results_dir / "performance_report.txt", "w") as f:
        f.write(create_performance_report(operator.performance_monitor))

    print(f"\nFull results saved to: {report_path}")
    results['operator'] = operator
    return results


def main():
    parser = argparse.ArgumentParser(
        description='Coordinator engine for anonymous collusion-resistant voting')
    parser.add_argument('--voters', type=int, default=5,
                        help='Number of simulated voters')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument('--output', type=str, default=None,
                        help='Output path for export and config modes')
    parser.add_argument(
        '--mode', choices=['demo', 'export', 'config'], default='demo')

    args = parser.parse_args()

    config = load_config(Path(args.config))

    if args.mode == 'config':
        output = Path(args.output or args.config)
        save_config(config, output)
        print(f"Configuration written to {output}")
        sys.exit(0)

    setup_logging(config.log_level, config.log_dir / "coordinator.log")

    try:
        results = asyncio.run(run_demo(config, args.voters))
    except (CoordinatorError, ZKError) as e:
        logger.error(f"Round failed: {e}")
        sys.exit(1)

    if args.mode == 'export':
        output = Path(args.output or config.state_dir / "round_state.json")
        results['operator'].save_state(output)
        print(f"Round state exported to {output}")

    sys.exit(0)


if __name__ == "__main__":
    main()
