from __future__ import annotations

import argparse
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from attestation_tree.core.config import get_settings
from attestation_tree.core.logging import configure_logging
from attestation_tree.service import AttestationService, AttestationServiceError
from attestation_tree.storage.source import (
    InMemoryStorageSource,
    StorageSource,
    UnknownSnapshotError,
    build_storage_source,
    load_entries,
)
from attestation_tree.tree.foliation import FoliationKind
from attestation_tree.tree.leaf_codec import CommitmentScheme, DecodeStorageError, TableIdentifier
from attestation_tree.tree.merkle import AttestationTreeError
from attestation_tree.tree.proof import AttestationTreeProofError, verify_leaf_pair


def _unhex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


@contextmanager
def _storage_source() -> Iterator[StorageSource]:
    if get_settings().storage_backend == "memory":
        yield build_storage_source()
        return

    from attestation_tree.storage.pg import init_db, session_scope

    init_db()
    with session_scope() as session:
        yield build_storage_source(session)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Attestation tree CLI")
    parser.add_argument("--log-level", default=None)
    top = parser.add_subparsers(dest="command", required=True)

    load = top.add_parser("load", help="Load a JSON snapshot file into SQL storage")
    load.add_argument("snapshot_file", help="JSON file shaped {snapshot_id: {hex_key: hex_value}}")

    root = top.add_parser("root", help="Build the attestation tree for a snapshot and print its root")
    root.add_argument("--snapshot", required=True)
    root.add_argument(
        "--kind",
        action="append",
        choices=[k.value for k in FoliationKind],
        help="Namespaces to attest (default: all)",
    )

    prove = top.add_parser("prove", help="Prove one or two leaves of a snapshot's attestation tree")
    prove.add_argument("--snapshot", required=True)
    prove.add_argument("--key", required=True, help="Hex storage key of the first leaf")
    prove.add_argument("--second-key", default=None, help="Hex storage key of the second leaf")

    verify = top.add_parser("verify", help="Verify a proof file against a root")
    verify.add_argument("proof_file")
    verify.add_argument("--root", required=True)
    verify.add_argument("--value", default=None, help="Hex leaf value of the first key; binds the key to its leaf hash")
    verify.add_argument("--second-value", default=None, help="Hex leaf value of the second key (defaults to --value)")

    commitments = top.add_parser("commitments", help="Fetch table commitments with their proofs")
    commitments.add_argument("--snapshot", required=True)
    commitments.add_argument(
        "--scheme",
        choices=[s.name.lower() for s in CommitmentScheme],
        default=CommitmentScheme.DYNAMIC_DORY.name.lower(),
    )
    commitments.add_argument("tables", nargs="+", help="Table identifiers like NAMESPACE.NAME")

    return parser


def _load(args: argparse.Namespace) -> int:
    from attestation_tree.storage.pg import init_db, session_scope

    memory = InMemoryStorageSource.from_json(Path(args.snapshot_file))
    init_db()
    loaded = {}
    with session_scope() as session:
        for snapshot_id, entries in memory.snapshots.items():
            loaded[snapshot_id] = load_entries(session, snapshot_id, entries.items())
    _print({"loaded": loaded})
    return 0


def _root(args: argparse.Namespace) -> int:
    with _storage_source() as source:
        attestation = AttestationService(source).build(args.snapshot, args.kind)
        _print(attestation.to_dict())
    return 0


def _prove(args: argparse.Namespace) -> int:
    second_key = _unhex(args.second_key) if args.second_key else None
    with _storage_source() as source:
        service = AttestationService(source)
        attestation = service.build(args.snapshot)
        proof = service.prove(attestation, _unhex(args.key), second_key)
        _print({"root": attestation.tree.root_hex, "proof": proof.to_dict()})
    return 0


def _verify(args: argparse.Namespace) -> int:
    try:
        payload = json.loads(Path(args.proof_file).read_text())
        root = _unhex(args.root)
        values = None
        if args.value is not None:
            first_value = _unhex(args.value)
            second_value = _unhex(args.second_value) if args.second_value is not None else first_value
            values = (first_value, second_value)
    except (OSError, ValueError) as exc:
        _print({"valid": False, "error": type(exc).__name__, "detail": str(exc)})
        return 1

    proof = payload.get("proof", payload) if isinstance(payload, dict) else payload
    valid = isinstance(proof, dict) and verify_leaf_pair(proof, root, values)
    # without leaf values only the leaf hashes are tied to the root
    _print({"valid": valid, "proven": "leaf_value" if values is not None else "leaf_hash"})
    return 0 if valid else 1


def _commitments(args: argparse.Namespace) -> int:
    scheme = CommitmentScheme[args.scheme.upper()]
    tables = [TableIdentifier.parse(t) for t in args.tables]
    with _storage_source() as source:
        service = AttestationService(source)
        attestation = service.build(args.snapshot)
        result = service.verifiable_commitments(args.snapshot, tables, scheme, attestation=attestation)
        _print(
            {
                "root": attestation.tree.root_hex,
                "verifiable_commitments": {table: item.to_dict() for table, item in result.items()},
            }
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    handlers = {
        "load": _load,
        "root": _root,
        "prove": _prove,
        "verify": _verify,
        "commitments": _commitments,
    }
    try:
        return handlers[args.command](args)
    except (
        AttestationTreeError,
        AttestationTreeProofError,
        AttestationServiceError,
        DecodeStorageError,
        UnknownSnapshotError,
    ) as exc:
        _print({"error": type(exc).__name__, "detail": str(exc)})
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
