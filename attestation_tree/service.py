from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from attestation_tree.storage.source import StorageSource
from attestation_tree.tree.foliation import (
    FoliationKind,
    PrefixFoliation,
    foliation_for,
)
from attestation_tree.tree.leaf_codec import (
    CommitmentScheme,
    ContractInfo,
    DecodeStorageError,
    TableCommitmentKey,
    TableIdentifier,
    commitments_namespace,
    decode_contract_info,
    decode_storage_key_and_value,
    staking_contract_storage_key,
    storage_key_for_prefix_key_tuple,
)
from attestation_tree.tree.merkle import AttestationTree, attestation_tree_from_prefixes
from attestation_tree.tree.proof import LeafPairProof, prove_leaf_pair

logger = logging.getLogger(__name__)

DEFAULT_KINDS = (FoliationKind.TABLE_COMMITMENT, FoliationKind.STAKING_LOCK)


class AttestationServiceError(RuntimeError):
    pass


class NoStakingContractError(AttestationServiceError):
    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"staking contract info is not defined in storage at snapshot {snapshot_id}")


class NoSuchCommitmentError(AttestationServiceError):
    def __init__(self, table: TableIdentifier, scheme: CommitmentScheme):
        self.table = table
        self.scheme = scheme
        super().__init__(f"no {scheme.name} commitment stored for table {table}")


@dataclass(frozen=True)
class Attestation:
    snapshot_id: str
    tree: AttestationTree
    foliations: tuple[PrefixFoliation, ...]

    @property
    def root(self) -> bytes:
        return self.tree.root

    def to_dict(self) -> dict:
        return {
            "snapshot_id": self.snapshot_id,
            "root": self.tree.root_hex,
            "leaf_count": self.tree.leaf_count,
            "prefixes": {f.kind.value: "0x" + f.prefix.hex() for f in self.foliations},
        }


@dataclass(frozen=True)
class VerifiableCommitment:
    table: TableIdentifier
    commitment: bytes
    proof: LeafPairProof

    def to_dict(self) -> dict:
        return {
            "table": str(self.table),
            "commitment": "0x" + self.commitment.hex(),
            "proof": self.proof.to_dict(),
        }


class AttestationService:
    def __init__(self, source: StorageSource):
        self.source = source

    def staking_contract_info(self, snapshot_id: str) -> ContractInfo:
        key = staking_contract_storage_key()
        raw = self.source.get(key, snapshot_id)
        if raw is None:
            raise NoStakingContractError(snapshot_id)
        return decode_contract_info(key, raw)

    def _foliations(self, snapshot_id: str, kinds: Iterable[FoliationKind | str]) -> list[PrefixFoliation]:
        foliations: list[PrefixFoliation] = []
        for kind in dict.fromkeys(FoliationKind(k) for k in kinds):
            contract_info = None
            if kind == FoliationKind.STAKING_LOCK:
                contract_info = self.staking_contract_info(snapshot_id)
            foliations.append(foliation_for(kind, contract_info))
        return foliations

    def build(self, snapshot_id: str, kinds: Iterable[FoliationKind | str] | None = None) -> Attestation:
        foliations = self._foliations(snapshot_id, kinds or DEFAULT_KINDS)
        tree = attestation_tree_from_prefixes(
            (foliation, self.source.iter_prefix(foliation.prefix, snapshot_id)) for foliation in foliations
        )
        logger.info(
            "attestation tree built: snapshot_id=%s backend=%s leaves=%d root=%s",
            snapshot_id,
            self.source.backend,
            tree.leaf_count,
            tree.root_hex,
        )
        return Attestation(snapshot_id=snapshot_id, tree=tree, foliations=tuple(foliations))

    def prove(self, attestation: Attestation, first_key: bytes, second_key: bytes | None = None) -> LeafPairProof:
        return prove_leaf_pair(attestation.tree, first_key, second_key)

    def verifiable_commitments(
        self,
        snapshot_id: str,
        tables: Iterable[TableIdentifier],
        scheme: CommitmentScheme,
        attestation: Attestation | None = None,
    ) -> dict[str, VerifiableCommitment]:
        namespace = commitments_namespace()
        attestation = attestation or self.build(snapshot_id)
        out: dict[str, VerifiableCommitment] = {}
        for table in tables:
            key = storage_key_for_prefix_key_tuple(namespace, TableCommitmentKey(table=table, scheme=scheme))
            raw = self.source.get(key, snapshot_id)
            if raw is None:
                raise NoSuchCommitmentError(table, scheme)
            try:
                _, commitment = decode_storage_key_and_value(namespace, key, raw)
            except DecodeStorageError as exc:
                raise AttestationServiceError(f"failed to decode commitment for table {table}") from exc
            out[str(table)] = VerifiableCommitment(
                table=table,
                commitment=commitment,
                proof=self.prove(attestation, key),
            )
        return out
