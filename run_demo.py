#!/usr/bin/env python3
"""
Drift Engine Demo
=================

Runs sample batches through the drift engine and prints a JSON summary.
The first cycles build each unit's baseline; later cycles are compared
against it.

RUN:
    python run_demo.py
    python run_demo.py --cycles 5 --messages 40
    python run_demo.py --storage sqlite --path ./demo_data/signalvault.db
    python run_demo.py --embeddings model      # use sentence-transformers
"""

from __future__ import annotations
import argparse
import json
import logging
import sys

from signalvault import DriftEngine, EngineConfig
from signalvault.config import StorageConfig
from signalvault.demo import DEFAULT_MISSION, generate_messages
from signalvault.embeddings import HashingEmbeddingProvider, build_provider


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Drift Engine Demo",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py                       # In-memory, hashing embeddings
  python run_demo.py --cycles 5            # Five analysis cycles
  python run_demo.py --storage json --path baselines.json
        """
    )

    parser.add_argument('--cycles', '-c', type=int, default=3,
                        help='Number of analysis cycles')
    parser.add_argument('--messages', '-m', type=int, default=30,
                        help='Messages per cycle')
    parser.add_argument('--seed', '-s', type=int, default=42,
                        help='Seed of the first cycle')
    parser.add_argument('--storage', choices=('memory', 'json', 'sqlite'), default='memory',
                        help='Baseline persistence backend')
    parser.add_argument('--path', default=None,
                        help='Path of the json/sqlite store')
    parser.add_argument('--embeddings', choices=('hashing', 'model'), default='hashing',
                        help='Embedding provider')
    parser.add_argument('--mission', default=DEFAULT_MISSION,
                        help='Mission statement to score against')
    parser.add_argument('--verbose', '-v', action='store_true')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    config = EngineConfig(storage=StorageConfig(backend=args.storage, path=args.path))
    provider = (
        build_provider(config.embedding) if args.embeddings == 'model'
        else HashingEmbeddingProvider(config.embedding.dimension)
    )
    engine = DriftEngine(config=config, embedding_provider=provider)
    engine.set_mission(args.mission)

    cycles = []
    for cycle in range(args.cycles):
        batch = generate_messages(args.messages, seed=args.seed + cycle)
        result = engine.process_batch(batch)
        cycles.append({
            'cycle': cycle,
            'mission_resonance_index': result.mission_resonance_index,
            'skipped': result.skipped_count,
            'scores': [s.to_dict() for s in result.scores],
            'alerts': [a.to_dict() for a in result.alerts],
            'failures': [
                {'unit_id': e.unit_id, 'code': e.code.name, 'message': e.message}
                for e in result.failures
            ],
        })

    json.dump({'cycles': cycles}, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
