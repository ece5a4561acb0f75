"""Chat orchestration — one user turn from utterance to recorded outcome.

Feeds the utterance and stored context to the extractor, records both
sides of the conversation in memory, resolves recipients against the
address book and hands validated transaction requests to the ledger
dispatcher. Every dispatch outcome is written to the activity log.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from decimal import Decimal
from decimal import InvalidOperation
from decimal import ROUND_FLOOR
from typing import Protocol

from intentvault.intent.extraction import IntentExtractor
from intentvault.intent.prompt_builder import LinkContext
from intentvault.intent.prompt_builder import MemoryContext
from intentvault.intent.resolver import describe_recipient
from intentvault.intent.resolver import mask_address
from intentvault.intent.resolver import resolve_recipient
from intentvault.intent.resolver import ResolvedRecipient
from intentvault.intent.schemas import ActionType
from intentvault.intent.schemas import TransactionIntent
from intentvault.memory.manager import MemoryManager
from intentvault.memory.manager import MemoryState
from intentvault.memory.schemas import ActivityLogEntry
from intentvault.memory.schemas import ChatMessage

logger = logging.getLogger(__name__)

MIST_PER_SUI = 1_000_000_000
# Kept back from the balance when the user sends "all" of it
GAS_RESERVE_MIST = 100_000_000

SESSION_HISTORY = 10
RECENT_ACTIVITIES = 5

SWAP_DEFERRED_MESSAGE = (
    "Swap feature is currently under development. "
    "I can help you Send SUI to any address."
)
STAKE_DEFERRED_MESSAGE = "Staking functionality is not yet implemented. Coming soon!"

_REJECTION_MARKERS = ("reject", "cancel", "denied")


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


class InvalidAmountError(ValueError):
    """An amount string is not a non-negative decimal number."""


def to_minor_units(amount: str) -> int:
    """Convert a SUI amount string to MIST, flooring fractional MIST."""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as exc:
        raise InvalidAmountError(f"not a number: {amount!r}") from exc
    if not value.is_finite() or value < 0:
        raise InvalidAmountError(f"not a valid amount: {amount!r}")
    return int((value * MIST_PER_SUI).to_integral_value(rounding=ROUND_FLOOR))


def format_sui(mist: int) -> str:
    return f"{Decimal(mist) / MIST_PER_SUI:.4f}"


# ---------------------------------------------------------------------------
# Ledger dispatch
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DispatchRequest:
    """A validated ledger action with resolved addresses.

    ``amount_minor`` is the per-recipient amount in MIST; it is ``None``
    when ``is_max`` is set, in which case the dispatcher splits the whole
    balance minus ``GAS_RESERVE_MIST``.
    """

    action_type: ActionType
    recipients: tuple[str, ...]
    amount_minor: int | None
    amount: str | None
    is_max: bool
    sender: str


@dataclass(frozen=True)
class DispatchResult:
    digest: str = ""
    error: str | None = None
    rejected: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.digest)

    @classmethod
    def failure(cls, error: str) -> DispatchResult:
        """Failed result; wallet errors mentioning a rejection count as user rejections."""
        lowered = error.lower()
        return cls(
            error=error,
            rejected=any(marker in lowered for marker in _REJECTION_MARKERS),
        )


class DispatchError(Exception):
    """Raised by dispatchers when a transaction cannot be built or executed."""


class LedgerDispatcher(Protocol):
    async def dispatch(self, request: DispatchRequest) -> DispatchResult: ...


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


@dataclass
class TurnOutcome:
    """Everything one turn produced.

    ``intent`` carries resolved addresses for transactions, or is a CHAT
    intent naming the problem when the turn was aborted.
    """

    intent: TransactionIntent
    replies: list[str] = field(default_factory=list)
    request: DispatchRequest | None = None
    result: DispatchResult | None = None
    aborted: bool = False
    recipients: list[ResolvedRecipient] = field(default_factory=list)


class ChatOrchestrator:
    """Runs chat turns for the identity currently loaded in *memory*."""

    def __init__(
        self,
        extractor: IntentExtractor,
        memory: MemoryManager,
        dispatcher: LedgerDispatcher | None = None,
        model: str | None = None,
    ) -> None:
        self._extractor = extractor
        self._memory = memory
        self._dispatcher = dispatcher
        self.model = model
        self._session: list[ChatMessage] = []
        self._session_owner: str | None = None

    @property
    def session(self) -> list[ChatMessage]:
        return list(self._session)

    # -- memory helpers --

    def _wallet(self) -> str | None:
        aggregate = self._memory.aggregate
        if self._memory.state is not MemoryState.READY or aggregate is None:
            return None
        return aggregate.wallet_address

    def _sync_session(self) -> None:
        wallet = self._wallet()
        if wallet != self._session_owner:
            self._session = []
            self._session_owner = wallet

    def _remember(self, role: str, content: str) -> None:
        message = ChatMessage(role=role, content=content)
        self._session.append(message)
        if self._wallet() is not None:
            self._memory.append_chat_message(message)

    def _memory_context(self) -> MemoryContext | None:
        aggregate = self._memory.aggregate
        if self._wallet() is None or aggregate is None:
            return None
        in_session = len(self._session)
        history = aggregate.chat_history
        previous = history[: len(history) - in_session] if in_session else history
        return MemoryContext(
            ai_summary=aggregate.ai_summary or None,
            recent_activities=aggregate.activity_logs[-RECENT_ACTIVITIES:],
            chat_history=list(previous),
        )

    # -- turn --

    async def handle_message(
        self,
        utterance: str,
        link_context: LinkContext | None = None,
    ) -> TurnOutcome:
        """Run one turn; never raises for generation, contract or resolution faults."""
        self._sync_session()
        history = self._session[-SESSION_HISTORY:]
        memory_context = self._memory_context()
        self._remember("user", utterance)

        intent = await self._extractor.extract(
            utterance,
            history=history,
            model=self.model,
            memory_context=memory_context,
            link_context=link_context,
        )
        outcome = TurnOutcome(intent=intent)
        self._reply(outcome, intent.data.summary)

        if not intent.is_transaction:
            return outcome

        action = intent.data.action_type
        if action is ActionType.TRANSFER:
            self._prepare_transfer(outcome)
        elif action is ActionType.BATCH_TRANSFER:
            self._prepare_batch(outcome)
        elif action is ActionType.DEFI_SUPPLY:
            self._prepare_supply(outcome)
        elif action is ActionType.SWAP:
            self._reply(outcome, SWAP_DEFERRED_MESSAGE)
        elif action is ActionType.STAKE:
            self._reply(outcome, STAKE_DEFERRED_MESSAGE)

        if outcome.request is not None and self._dispatcher is not None:
            await self._dispatch(outcome)
        return outcome

    def _reply(self, outcome: TurnOutcome, message: str) -> None:
        outcome.replies.append(message)
        self._remember("assistant", message)

    def _abort(self, outcome: TurnOutcome, message: str) -> None:
        logger.info("Aborting %s: %s", outcome.intent.data.action_type.value, message)
        outcome.intent = TransactionIntent.chat(message)
        outcome.aborted = True
        self._reply(outcome, message)

    def _contacts(self):
        aggregate = self._memory.aggregate
        return aggregate.contacts if aggregate is not None else []

    def _with_params(self, outcome: TurnOutcome, **updates) -> TransactionIntent:
        intent = outcome.intent
        params = intent.data.params.model_copy(update=updates)
        data = intent.data.model_copy(update={"params": params})
        return intent.model_copy(update={"data": data})

    def _prepare_transfer(self, outcome: TurnOutcome) -> None:
        params = outcome.intent.data.params
        if not params.amount or not params.recipient:
            self._abort(
                outcome,
                "Error: Missing required parameters. "
                "Please provide both amount and recipient address.",
            )
            return
        resolved = resolve_recipient(params.recipient, self._contacts())
        if not resolved.resolved:
            self._abort(
                outcome,
                f"Contact '{params.recipient}' not found. "
                "Please add them to your address book first.",
            )
            return
        amount_minor = self._positive_amount(outcome, params.amount)
        if amount_minor is None:
            return
        sender = self._require_sender(outcome)
        if sender is None:
            return
        outcome.intent = self._with_params(outcome, recipient=resolved.address)
        outcome.request = DispatchRequest(
            action_type=ActionType.TRANSFER,
            recipients=(resolved.address,),
            amount_minor=amount_minor,
            amount=params.amount,
            is_max=False,
            sender=sender,
        )
        outcome.recipients = [resolved]

    def _prepare_batch(self, outcome: TurnOutcome) -> None:
        params = outcome.intent.data.params
        tokens = params.recipients or []
        if not tokens:
            self._abort(
                outcome,
                "Error: Missing recipient addresses. "
                "Please provide at least one recipient for batch transfer.",
            )
            return
        contacts = self._contacts()
        resolved = [resolve_recipient(token, contacts) for token in tokens]
        unresolved = [t for t, r in zip(tokens, resolved) if not r.resolved]
        if unresolved:
            self._abort(
                outcome,
                f"Invalid recipients: {', '.join(unresolved)}. "
                "Please add them to your address book first.",
            )
            return

        is_max = params.isMax is True
        per_recipient: int | None = None
        if not is_max:
            total = self._positive_amount(outcome, params.amount)
            if total is None:
                return
            per_recipient = total // len(resolved)
            if per_recipient <= 0:
                self._abort(outcome, "Amount per recipient must be greater than 0.")
                return
        sender = self._require_sender(outcome)
        if sender is None:
            return
        addresses = [r.address for r in resolved]
        outcome.intent = self._with_params(outcome, recipients=addresses)
        outcome.request = DispatchRequest(
            action_type=ActionType.BATCH_TRANSFER,
            recipients=tuple(addresses),
            amount_minor=per_recipient,
            amount=params.amount,
            is_max=is_max,
            sender=sender,
        )
        outcome.recipients = resolved

    def _prepare_supply(self, outcome: TurnOutcome) -> None:
        params = outcome.intent.data.params
        amount_minor = self._positive_amount(outcome, params.amount)
        if amount_minor is None:
            return
        sender = self._require_sender(outcome)
        if sender is None:
            return
        # Simulated pool deposit: the supply goes back to the connected wallet
        outcome.request = DispatchRequest(
            action_type=ActionType.DEFI_SUPPLY,
            recipients=(sender,),
            amount_minor=amount_minor,
            amount=params.amount,
            is_max=False,
            sender=sender,
        )
        outcome.recipients = [ResolvedRecipient(address=sender)]

    def _positive_amount(self, outcome: TurnOutcome, amount: str | None) -> int | None:
        try:
            minor = to_minor_units(amount) if amount else 0
        except InvalidAmountError:
            minor = 0
        if minor <= 0:
            self._abort(
                outcome,
                "Error: Missing or invalid amount. Please provide a valid amount.",
            )
            return None
        return minor

    def _require_sender(self, outcome: TurnOutcome) -> str | None:
        sender = self._wallet()
        if sender is None:
            self._abort(outcome, "Please connect your wallet to execute transactions.")
        return sender

    # -- dispatch --

    async def _dispatch(self, outcome: TurnOutcome) -> None:
        assert self._dispatcher is not None and outcome.request is not None
        request = outcome.request
        try:
            result = await self._dispatcher.dispatch(request)
        except DispatchError as exc:
            result = DispatchResult.failure(str(exc))
        except Exception as exc:
            logger.exception("Dispatcher raised while executing %s", request.action_type.value)
            result = DispatchResult.failure(str(exc) or type(exc).__name__)
        outcome.result = result

        batch = request.action_type is ActionType.BATCH_TRANSFER
        entry = ActivityLogEntry(
            type=request.action_type.value,
            digest=result.digest if result.ok else "",
            amount=request.amount,
            recipient=None if batch else request.recipients[0],
            recipients=list(request.recipients) if batch else None,
            status="success" if result.ok else "failed",
        )
        self._memory_log(entry)

        if result.ok:
            logger.info("%s dispatched: %s", request.action_type.value, result.digest)
            self._reply(outcome, self._success_message(outcome))
        elif result.rejected:
            logger.info("%s rejected by user", request.action_type.value)
            self._reply(outcome, "Transaction rejected by user.")
        else:
            logger.warning(
                "%s failed: %s", request.action_type.value, result.error
            )
            self._reply(outcome, f"Transaction failed: {result.error or 'unknown error'}")

    def _memory_log(self, entry: ActivityLogEntry) -> None:
        if self._wallet() is not None:
            self._memory.append_activity_log(entry)

    def _success_message(self, outcome: TurnOutcome) -> str:
        request = outcome.request
        result = outcome.result
        assert request is not None and result is not None
        action = request.action_type
        if action is ActionType.TRANSFER:
            target = describe_recipient(outcome.recipients[0])
            text = f"Transaction successful! Sent {request.amount} SUI to {target}"
        elif action is ActionType.BATCH_TRANSFER:
            names = _recipient_list(outcome.recipients)
            if request.amount_minor is None:
                text = (
                    f"Batch transfer successful! Sent all available SUI to "
                    f"{len(request.recipients)} recipients ({names})"
                )
            else:
                text = (
                    f"Batch transfer successful! Sent {format_sui(request.amount_minor)} "
                    f"SUI each to {len(request.recipients)} recipients ({names})"
                )
        else:
            text = f"Successfully supplied {request.amount} SUI to Scallop Protocol (simulated)"
        return f"{text}\nDigest: {result.digest}"


def _recipient_list(recipients: Sequence[ResolvedRecipient]) -> str:
    return ", ".join(r.name or mask_address(r.address) for r in recipients)
