#!/usr/bin/env python3
"""
Resolve a batch of dependency problems against one package repository.

Loads packages from a JSON file or MongoDB, resolves every problem listed in
the problems file, and writes results to CSV plus optional debug trees.

Usage:
  python -m portagestyle.run --repo-json repo.json --problems problems.json --output-dir output [--debug]

Problems file:
  [{"name": "py", "roots": [{"cpn": "dev-lang/python"}],
    "use": {"enabled": ["ssl"], "solver_decided": ["gui"]}}, ...]
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from resolvelib.resolvers.exceptions import ResolverException
from tqdm import tqdm

from portagestyle import ResolutionRunner, load_repository, load_repository_json
from portagestyle.entrypoint import DEFAULT_MAX_ROUNDS
from portagestyle.errors import PortageResolveError
from portagestyle.loader import atom_from_doc
from portagestyle.provider import PortageProvider
from portagestyle.repository import InMemoryRepository
from portagestyle.structures import BlockerPolicy, UseConfig


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Resolve Portage dependency problems against one repository."
    )
    ap.add_argument("--repo-json", default=None, help="JSON file with package documents (instead of MongoDB)")
    ap.add_argument("--mongo-uri", default="mongodb://localhost:27017", help="MongoDB connection URI")
    ap.add_argument("--db", default="portage", help="Database name")
    ap.add_argument("--collection", default="packages", help="Collection of available packages")
    ap.add_argument("--installed-collection", default="installed", help="Collection of installed packages")

    ap.add_argument("--problems", required=True, help="JSON list of problems to resolve")
    ap.add_argument("--output-dir", default="output", help="Output directory for CSV and optional tree subdir")
    ap.add_argument("--max-rounds", type=int, default=DEFAULT_MAX_ROUNDS, help="Max resolution rounds (resolvelib)")
    ap.add_argument("--dep-cache-cap", type=int, default=50_000, help="LRU cap for built dependency requirements")
    ap.add_argument(
        "--advisory-weak-blockers",
        action="store_true",
        help="Report weak (!) blockers instead of enforcing them",
    )
    ap.add_argument("--debug", action="store_true", help="Log resolver events and store dependency trees")

    return ap.parse_args(argv)


def use_config_from_doc(doc: Optional[Mapping[str, Any]]) -> UseConfig:
    doc = doc or {}
    return UseConfig(
        enabled=frozenset(doc.get("enabled") or ()),
        disabled=frozenset(doc.get("disabled") or ()),
        solver_decided=frozenset(doc.get("solver_decided") or ()),
        strict=bool(doc.get("strict", False)),
    )


def load_problems(path: str) -> List[Dict[str, Any]]:
    with open(path) as f:
        problems = json.load(f)
    if not isinstance(problems, list):
        raise RuntimeError(f"{path}: expected a JSON list of problems")
    for i, p in enumerate(problems):
        if not p.get("roots"):
            raise RuntimeError(f"{path}: problem #{i} has no roots")
        p.setdefault("name", f"problem-{i}")
    return problems


def run(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if args.repo_json:
        print(f"[load] Loading packages from {args.repo_json!r} ...")
        repository: InMemoryRepository = load_repository_json(args.repo_json)
    else:
        print("[load] Loading packages from MongoDB ...")
        repository = load_repository(
            mongo_uri=args.mongo_uri,
            db=args.db,
            collection=args.collection,
            installed_collection=args.installed_collection,
        )
    print(f"[load] {repository.arena.package_count():,} packages, {len(repository.installed()):,} installed")

    problems = load_problems(args.problems)
    print(f"[problems] {len(problems):,} problems")

    os.makedirs(args.output_dir, exist_ok=True)
    csv_path = os.path.join(args.output_dir, "plans.csv")

    trees_dir: Optional[str] = None
    if args.debug:
        trees_dir = os.path.join(args.output_dir, "resolved_trees")
        os.makedirs(trees_dir, exist_ok=True)
        print(f"[debug] Resolved trees will be written to {trees_dir!r}")

    policy = BlockerPolicy.ADVISORY if args.advisory_weak_blockers else BlockerPolicy.STRICT

    num_resolved = 0
    num_not_resolved = 0
    num_packages = 0
    num_violations = 0

    with open(csv_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["name", "resolved", "install_order", "error"])

        for problem in tqdm(problems, desc="Resolve"):
            name = problem["name"]
            try:
                # each problem gets its own arena
                repo = repository.rebased()
                provider = PortageProvider(
                    repo.arena,
                    repo,
                    use_config=use_config_from_doc(problem.get("use")),
                    blocker_policy=policy,
                    dep_cache_cap=args.dep_cache_cap,
                )
                atoms = [atom_from_doc(d) for d in problem["roots"]]
                plan = ResolutionRunner(provider).resolve(atoms, max_rounds=args.max_rounds, debug=args.debug)
            except (PortageResolveError, ResolverException) as e:
                # recorded per problem; the batch goes on
                writer.writerow([name, False, "", f"{type(e).__name__}: {e}"])
                num_not_resolved += 1
                continue

            writer.writerow([name, True, " ".join(plan.labels()), ""])
            num_resolved += 1
            num_packages += len(plan.solution.packages)
            num_violations += len(plan.blocker_violations)
            if trees_dir is not None and plan.tree is not None:
                tree_path = os.path.join(trees_dir, f"{name}.json")
                with open(tree_path, "w") as tf:
                    json.dump(plan.tree, tf, indent=0)

    print(f"[output] Wrote {csv_path}")

    print("\n--- Final stats ---")
    print(f"  Total problems processed:  {len(problems):,}")
    print(f"  Resolved:                  {num_resolved:,}")
    print(f"  Packages selected (sum):   {num_packages:,}")
    print(f"  Weak blockers reported:    {num_violations:,}")
    print(f"  Not resolved:              {num_not_resolved:,}")


if __name__ == "__main__":
    run()
