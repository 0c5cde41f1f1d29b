"""
Error taxonomy for the lottery engine.

Every failure is fatal to the call that raised it: the surrounding
``Chain.call`` restores the state it snapshotted before the call started.
Errors carry a stable ``code`` (the contract's custom error name) and the
offending values as keyword context, so off-chain tooling can decode them.
"""

from typing import Dict, Type


# ---------- Kinds ----------
AUTHORISATION = "authorisation"
LIFECYCLE = "lifecycle"
PARAMETER = "parameter"
ROLL_CLAIM = "roll_claim"
TOKEN = "token"
LOOKUP = "lookup"


class LottoError(Exception):
    kind = PARAMETER
    code = "LottoError"

    def __init__(self, message: str = "", /, **context):
        self.context = context
        super().__init__(message or self.code)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.code

    def to_dict(self) -> dict:
        body = {"error": self.code, "kind": self.kind, "detail": self.message}
        body.update({k: v for k, v in self.context.items() if k not in body})
        return body

    def __repr__(self):
        extra = "".join(f", {k}={v!r}" for k, v in self.context.items())
        return f"{type(self).__name__}({self.message!r}{extra})"


# ---------- Authorisation ----------
class NotAdmin(LottoError):
    kind = AUTHORISATION
    code = "NotAdmin"


class NotAuthorized(LottoError):
    kind = AUTHORISATION
    code = "NotAuthorized"


class LastAdminError(LottoError):
    kind = AUTHORISATION
    code = "LastAdminError"


# ---------- Lifecycle ----------
class PoolIsClosed(LottoError):
    kind = LIFECYCLE
    code = "PoolIsClosed"


class PoolOnPause(LottoError):
    kind = LIFECYCLE
    code = "PoolOnPause"


class PoolNotClosed(LottoError):
    kind = LIFECYCLE
    code = "PoolNotClosed"


class EntriesOutstanding(LottoError):
    kind = LIFECYCLE
    code = "EntriesOutstanding"


class CannotTransferGlobalPools(LottoError):
    kind = LIFECYCLE
    code = "CannotTransferGlobalPools"


class ContractPaused(LottoError):
    kind = LIFECYCLE
    code = "ContractPaused"


class ReentrancyGuard(LottoError):
    kind = LIFECYCLE
    code = "ReentrancyGuardReentrantCall"


# ---------- Parameter ----------
class BadParameters(LottoError):
    code = "BadParameters"


class IncorrectFeeToken(LottoError):
    code = "IncorrectFeeToken"


class InsufficientPayment(LottoError):
    code = "InsufficientPayment"


class NotEnoughHbar(LottoError):
    code = "NotEnoughHbar"


class NotEnoughFungible(LottoError):
    code = "NotEnoughFungible"


class MaxEntriesReached(LottoError):
    code = "MaxEntriesReached"


# ---------- Roll / claim ----------
class NoTicketsToRoll(LottoError):
    kind = ROLL_CLAIM
    code = "NoTicketsToRoll"


class NotEnoughTicketsToRoll(LottoError):
    kind = ROLL_CLAIM
    code = "NotEnoughTicketsToRoll"


class NoPrizesAvailable(LottoError):
    kind = ROLL_CLAIM
    code = "NoPrizesAvailable"


class NoPendingPrizes(LottoError):
    kind = ROLL_CLAIM
    code = "NoPendingPrizes"


class InvalidPrizeIndex(LottoError):
    kind = ROLL_CLAIM
    code = "InvalidPrizeIndex"


class NotWinner(LottoError):
    kind = ROLL_CLAIM
    code = "NotWinner"


class AlreadyWinningTicket(LottoError):
    kind = ROLL_CLAIM
    code = "AlreadyWinningTicket"


class InvalidTicketNFT(LottoError):
    kind = ROLL_CLAIM
    code = "InvalidTicketNFT"


# ---------- Token plumbing ----------
class AssociationFailed(LottoError):
    kind = TOKEN
    code = "AssociationFailed"


class FungibleTokenTransferFailed(LottoError):
    kind = TOKEN
    code = "FungibleTokenTransferFailed"


class NFTTransferFailed(LottoError):
    kind = TOKEN
    code = "NFTTransferFailed"


class FailedNFTCreate(LottoError):
    kind = TOKEN
    code = "FailedNFTCreate"


class FailedNFTMintAndSend(LottoError):
    kind = TOKEN
    code = "FailedNFTMintAndSend"


class FailedNFTWipe(LottoError):
    kind = TOKEN
    code = "FailedNFTWipe"


# ---------- Lookup ----------
class LottoPoolNotFound(LottoError):
    kind = LOOKUP
    code = "LottoPoolNotFound"


def _collect(base) -> Dict[str, Type[LottoError]]:
    found = {}
    for sub in base.__subclasses__():
        found[sub.code] = sub
        found.update(_collect(sub))
    return found


ERRORS_BY_CODE: Dict[str, Type[LottoError]] = _collect(LottoError)


def decode_error(code: str) -> Type[LottoError]:
    """Map a revert code back to its error class (LottoError if unknown)."""
    return ERRORS_BY_CODE.get(code, LottoError)
