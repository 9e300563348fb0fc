#!/usr/bin/env python3
"""Ethash Engine - Command Line Entry Point"""

import sys
from pathlib import Path

# Ensure the script directory is in Python's module search path
# This allows imports to work regardless of where the script is run from
script_dir = Path(__file__).parent.resolve()
if str(script_dir) not in sys.path:
    sys.path.insert(0, str(script_dir))

import argparse
import logging
import secrets
import time

from ethcore import reference
from ethcore.config import config
from ethcore.constants import DEFAULT_MAX_ALLOCATION, EPOCH_LENGTH, HASHRATE_MH_THRESHOLD, MAX_EPOCH
from ethcore.engine import Engine
from ethcore.epoch import epoch_from_block, epoch_from_seed, seed_hash
from ethcore.exceptions import EngineError
from ethcore.keccak import keccak_256
from ethcore.logger import parse_level, setup_logging
from ethcore.partition import plan_partitions
from ethcore.sizing import cache_bytes, cache_item_count, dataset_bytes, dataset_item_count
from ethcore.work import difficulty_to_threshold, nonce_range


def format_hashrate(hashes_per_second: float) -> str:
    if hashes_per_second >= HASHRATE_MH_THRESHOLD:
        return f"{hashes_per_second / 1_000_000:.2f} MH/s"
    return f"{hashes_per_second / 1_000:.2f} KH/s"


def cmd_info(args) -> int:
    epoch = args.epoch
    max_alloc = config.get('engine.max_allocation_bytes') or DEFAULT_MAX_ALLOCATION
    layout = plan_partitions(dataset_item_count(epoch), max_alloc,
                             max_partitions=config.get('engine.max_partitions'))
    print(f"Epoch:              {epoch}")
    print(f"Seed hash:          0x{seed_hash(epoch).hex()}")
    print(f"Cache items:        {cache_item_count(epoch)} ({cache_bytes(epoch) / 1024 / 1024:.2f} MB)")
    print(f"Dataset items:      {dataset_item_count(epoch)} ({dataset_bytes(epoch) / 1024 / 1024:.2f} MB)")
    print(f"Allocation ceiling: {max_alloc / 1024 / 1024:.0f} MB")
    print(f"Partitions:         {layout.partition_count} x {layout.items_per_partition} items")
    return 0


def cmd_seed(args) -> int:
    if args.seed is not None:
        print(epoch_from_seed(args.seed, args.max_epoch))
    elif args.block is not None:
        epoch = epoch_from_block(args.block, args.epoch_length)
        print(f"{epoch} 0x{seed_hash(epoch).hex()}")
    else:
        print(f"0x{seed_hash(args.epoch).hex()}")
    return 0


def _print_trace(label: str, trace) -> None:
    print(f"  {label}:")
    for key in ("seed", "mix", "cmix", "result"):
        print(f"    {key:6s} {trace[key].hex()}")


def cmd_selftest(args) -> int:
    header = keccak_256(args.header.encode())
    with Engine(args.backend) as engine:
        light = args.items is None and engine.backend_name == "host"
        dataset = engine.build_dataset(args.epoch, dataset_items=args.items, light=light)

        logging.info("Building reference cache...")
        ref_cache = reference.make_cache(args.epoch)
        failures = 0
        traced = []
        for nonce in range(args.nonces):
            trace = engine.trace_nonce(dataset, header, nonce)
            traced.append(trace["result"])
            expected = reference.hashimoto_light(dataset.item_count, ref_cache, header, nonce)
            if trace["result"] == expected["result"]:
                print(f"nonce {nonce:#018x}  OK    {trace['result'].hex()}")
                continue
            failures += 1
            print(f"nonce {nonce:#018x}  FAIL")
            _print_trace("engine", trace)
            _print_trace("reference", expected)

        batch = engine.mine_batch(dataset, header, range(args.nonces))
        batch_ok = batch["hashes"] == traced
        if not batch_ok:
            print("mine_batch disagrees with trace_nonce")

    print(f"{args.nonces - failures}/{args.nonces} nonces match the reference")
    return 0 if failures == 0 and batch_ok else 1


def cmd_bench(args) -> int:
    header = secrets.token_bytes(32)
    threshold = difficulty_to_threshold(args.difficulty) if args.difficulty else None
    batch_size = args.batch or config.get('mining.batch_size')

    with Engine(args.backend) as engine:
        start = time.time()
        dataset = engine.build_dataset(args.epoch, dataset_items=args.items)
        print(f"Dataset built in {time.time() - start:.2f}s ({dataset.item_count} items)")

        first = secrets.randbits(63)
        total = 0
        winners = 0
        start = time.time()
        for i in range(args.batches):
            result = engine.mine_batch(dataset, header, nonce_range(first + i * batch_size, batch_size), threshold)
            total += len(result["hashes"])
            if threshold is not None:
                winners += result["winners"]["count"]
        elapsed = time.time() - start

    print(f"Hashed {total} nonces in {elapsed:.2f}s: {format_hashrate(total / elapsed if elapsed else 0.0)}")
    if threshold is not None:
        print(f"Winners: {winners}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ethash compute engine")
    parser.add_argument("--config", default=None, help="YAML config file (default: engine.yaml)")
    parser.add_argument("--backend", choices=["auto", "cuda", "host"], default=None,
                        help="Execution backend (overrides engine.backend)")
    parser.add_argument("--log-level", default=None, help="Console log level (debug, info, ...)")
    parser.add_argument("--no-log-file", action="store_true", help="Disable the rotating log file")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("info", help="Cache/dataset sizes and partition plan for an epoch")
    p.add_argument("--epoch", type=int, default=0)
    p.set_defaults(func=cmd_info)

    p = sub.add_parser("seed", help="Resolve between epochs, seed hashes and block numbers")
    p.add_argument("--epoch", type=int, default=0)
    p.add_argument("--seed", default=None, help="Seed hash (hex) to resolve to an epoch")
    p.add_argument("--block", type=int, default=None, help="Block number to resolve to an epoch")
    p.add_argument("--epoch-length", type=int, default=EPOCH_LENGTH)
    p.add_argument("--max-epoch", type=int, default=MAX_EPOCH)
    p.set_defaults(func=cmd_seed)

    p = sub.add_parser("selftest", help="Compare engine results with the CPU reference")
    p.add_argument("--epoch", type=int, default=0)
    p.add_argument("--nonces", type=int, default=3)
    p.add_argument("--items", type=int, default=None, help="Synthetic dataset size (even)")
    p.add_argument("--header", default="test-block-header", help="Text whose Keccak-256 is the header hash")
    p.set_defaults(func=cmd_selftest)

    p = sub.add_parser("bench", help="Measure hash rate")
    p.add_argument("--epoch", type=int, default=0)
    p.add_argument("--batch", type=int, default=None, help="Nonces per batch (default: mining.batch_size)")
    p.add_argument("--batches", type=int, default=4)
    p.add_argument("--items", type=int, default=None, help="Synthetic dataset size (even)")
    p.add_argument("--difficulty", type=int, default=None, help="Also run the difficulty filter")
    p.set_defaults(func=cmd_bench)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.config:
        config.load(args.config)

    console_level = parse_level(args.log_level or config.get('logging.console_level'))
    setup_logging(
        log_file=config.get('logging.file'),
        level=min(parse_level(config.get('logging.level')), console_level),
        console_level=console_level,
        enable_file_logging=not args.no_log_file,
    )

    try:
        return args.func(args)
    except EngineError as e:
        logging.error(str(e))
        return 2
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
