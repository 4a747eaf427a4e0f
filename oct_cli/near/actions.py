"""
Transaction actions — the ordered steps a single envelope performs.

Each action is an immutable value object that knows its Borsh enum index
and how to write its fields. Order within a transaction is significant:
a deploy followed by an init call executes in that order, atomically.

Borsh enum indices (protocol-defined):
    0 CreateAccount, 1 DeployContract, 2 FunctionCall, 3 Transfer,
    4 Stake (not offered here), 5 AddKey, 6 DeleteKey, 7 DeleteAccount
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Union

from oct_cli.near.codec import BorshWriter
from oct_cli.near.keys import PublicKey
from oct_cli.near.types import DEFAULT_CALL_DEPOSIT, DEFAULT_CALL_GAS, validate_account_id


# =========================================================================
# Access key permissions
# =========================================================================


@dataclass(frozen=True)
class FullAccess:
    """Permission to sign any transaction for the account."""

    INDEX: ClassVar[int] = 1

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX)


@dataclass(frozen=True)
class FunctionCallPermission:
    """Permission limited to calls on one receiver, optionally by method."""

    INDEX: ClassVar[int] = 0

    receiver_id: str
    method_names: tuple[str, ...] = ()
    allowance: int | None = None

    def __post_init__(self) -> None:
        validate_account_id(self.receiver_id)

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX)
        writer.option_u128(self.allowance)
        writer.string(self.receiver_id)
        writer.string_list(self.method_names)


Permission = Union[FullAccess, FunctionCallPermission]


@dataclass(frozen=True)
class AccessKey:
    """Access key as attached by ``AddKey``; new keys start at nonce 0."""

    permission: Permission = FullAccess()
    nonce: int = 0

    def write(self, writer: BorshWriter) -> None:
        writer.u64(self.nonce)
        self.permission.write(writer)


# =========================================================================
# Actions
# =========================================================================


@dataclass(frozen=True)
class CreateAccount:
    INDEX: ClassVar[int] = 0

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX)

    def describe(self) -> str:
        return "CreateAccount"


@dataclass(frozen=True)
class DeployContract:
    INDEX: ClassVar[int] = 1

    code: bytes

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX).vec(self.code)

    def describe(self) -> str:
        return f"DeployContract({len(self.code)} bytes)"


@dataclass(frozen=True)
class FunctionCall:
    """Call ``method_name`` on the receiver with raw (usually JSON) args.

    Attributes:
        gas: Prepaid gas for this call.
        deposit: Attached balance in yoctoNEAR.
    """

    INDEX: ClassVar[int] = 2

    method_name: str
    args: bytes = b"{}"
    gas: int = DEFAULT_CALL_GAS
    deposit: int = DEFAULT_CALL_DEPOSIT

    def __post_init__(self) -> None:
        if not self.method_name:
            raise ValueError("method_name must be non-empty")
        if self.gas <= 0:
            raise ValueError(f"gas must be > 0, got: {self.gas}")

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX)
        writer.string(self.method_name)
        writer.vec(self.args)
        writer.u64(self.gas)
        writer.u128(self.deposit)

    def describe(self) -> str:
        return f"FunctionCall({self.method_name})"


@dataclass(frozen=True)
class Transfer:
    INDEX: ClassVar[int] = 3

    deposit: int

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX).u128(self.deposit)

    def describe(self) -> str:
        return f"Transfer({self.deposit})"


@dataclass(frozen=True)
class AddKey:
    INDEX: ClassVar[int] = 5

    public_key: PublicKey
    access_key: AccessKey = AccessKey()

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX)
        self.public_key.write(writer)
        self.access_key.write(writer)

    def describe(self) -> str:
        return f"AddKey({self.public_key})"


@dataclass(frozen=True)
class DeleteKey:
    INDEX: ClassVar[int] = 6

    public_key: PublicKey

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX)
        self.public_key.write(writer)

    def describe(self) -> str:
        return f"DeleteKey({self.public_key})"


@dataclass(frozen=True)
class DeleteAccount:
    INDEX: ClassVar[int] = 7

    beneficiary_id: str

    def __post_init__(self) -> None:
        validate_account_id(self.beneficiary_id)

    def write(self, writer: BorshWriter) -> None:
        writer.u8(self.INDEX).string(self.beneficiary_id)

    def describe(self) -> str:
        return f"DeleteAccount(beneficiary={self.beneficiary_id})"


Action = Union[
    CreateAccount,
    DeployContract,
    FunctionCall,
    Transfer,
    AddKey,
    DeleteKey,
    DeleteAccount,
]


def describe_actions(actions: tuple[Action, ...] | list[Action]) -> str:
    """One-line summary for INFO logs (code and args are never dumped)."""
    return ", ".join(action.describe() for action in actions)
