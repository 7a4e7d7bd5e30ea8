"""Transaction logging and balance enquiries from free text."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from datetime import date, timedelta
from typing import Annotated, Any, Callable, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from ..constants import RECENT_TRANSACTION_MONTHS
from ..contracts import AgentFailure, AgentKind, AgentReply, AgentRequest
from ..finance.analysis import summarize_cashflow
from ..models import Transaction, TransactionType
from ..store import DocumentStore
from ..utils.formatting import rupees
from .base import SubAgent
from .extraction import parse_amount
from .llm import LanguageModel, complete_json
from .prompts import TRANSACTION_PROMPT, TRANSACTION_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

CLARIFICATION = "Please specify: type (income/expense), amount, category, and date."


def _lenient_date(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return value


def _lenient_frequency(value: Any) -> Any:
    if isinstance(value, str):
        key = value.strip().lower().replace("_", "-")
        if key in ("monthly", "yearly", "one-time"):
            return key
        if key in ("once", "onetime", "one time"):
            return "one-time"
    return "one-time"


class ParsedTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: TransactionType
    amount: Annotated[float, BeforeValidator(parse_amount)] = Field(gt=0)
    category: str = "uncategorized"
    frequency: Annotated[
        Literal["monthly", "yearly", "one-time"], BeforeValidator(_lenient_frequency)
    ] = "one-time"
    date: Annotated[Optional[dt.date], BeforeValidator(_lenient_date)] = None
    description: Optional[str] = None


class TransactionParse(BaseModel):
    intent: Literal["log_transaction", "get_balance"]
    transactions: List[ParsedTransaction] = Field(default_factory=list)
    rejected: int = 0


def parse_transaction_output(raw: Any) -> Optional[TransactionParse]:
    """Validate model output item by item; invalid items are dropped."""
    if not isinstance(raw, dict):
        return None
    if raw.get("intent") == "get_balance":
        return TransactionParse(intent="get_balance")
    items = raw.get("transactions")
    if items is None and isinstance(raw.get("transaction"), dict):
        items = [raw["transaction"]]
    if not isinstance(items, list):
        items = []
    parsed = []
    rejected = 0
    for item in items:
        try:
            parsed.append(ParsedTransaction.model_validate(item))
        except ValidationError as exc:
            rejected += 1
            logger.info(f"Dropped unparseable transaction {item!r}: {exc.error_count()} error(s)")
    return TransactionParse(intent="log_transaction", transactions=parsed, rejected=rejected)


def _describe(txn: Transaction) -> str:
    return f"{txn.type.value} of {rupees(txn.amount)} ({txn.category}) on {txn.date.isoformat()}"


class TransactionAgent(SubAgent):
    """Records transactions in the ledger and answers balance questions."""

    name = "transaction"
    kind = AgentKind.TRANSACTION_TRACKING

    def __init__(
        self,
        llm: LanguageModel,
        store: DocumentStore,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._llm = llm
        self._store = store
        self._today = today

    async def run(self, request: AgentRequest) -> AgentReply | AgentFailure:
        today = self._today()
        raw = await complete_json(
            self._llm,
            TRANSACTION_PROMPT.format(today=today.isoformat(), text=request.message),
            system_prompt=TRANSACTION_SYSTEM_PROMPT,
        )
        parsed = parse_transaction_output(raw)
        if parsed is None:
            return AgentFailure(
                agent=self.name, error="Could not parse transaction", clarification=CLARIFICATION
            )
        if parsed.intent == "get_balance":
            return await self._balance(request.user_id, today)
        if not parsed.transactions:
            return AgentFailure(
                agent=self.name, error="Could not parse transaction", clarification=CLARIFICATION
            )
        return await self._record(request, parsed, today)

    async def _record(
        self, request: AgentRequest, parsed: TransactionParse, today: date
    ) -> AgentReply:
        message_id = request.message_id or uuid.uuid4().hex
        recorded: List[Transaction] = []
        duplicates = 0
        for index, item in enumerate(parsed.transactions):
            txn = Transaction(
                transaction_id=f"txn_{message_id}_{index}",
                user_id=request.user_id,
                type=item.type,
                amount=item.amount,
                category=item.category,
                frequency=item.frequency,
                date=item.date or today,
                description=item.description,
                source=request.source,
            )
            if await self._store.record_transaction(txn):
                recorded.append(txn)
            else:
                duplicates += 1

        profile = await self._store.ensure_profile(request.user_id)
        lines = [f"Recorded {len(recorded)} transaction(s):"]
        lines += [f"- {_describe(txn)}" for txn in recorded]
        if duplicates:
            lines.append(f"{duplicates} transaction(s) were already recorded.")
        if parsed.rejected:
            lines.append(f"{parsed.rejected} item(s) could not be understood. {CLARIFICATION}")
        lines.append(f"Current balance: {rupees(profile.balance)}")
        logger.info(
            f"Recorded {len(recorded)} transaction(s) for {request.user_id} "
            f"({duplicates} duplicate, {parsed.rejected} rejected)"
        )
        return AgentReply(
            agent=self.name,
            response="\n".join(lines),
            data={
                "recorded": [txn.model_dump(mode="json") for txn in recorded],
                "duplicates": duplicates,
                "balance": profile.balance,
            },
        )

    async def _balance(self, user_id: str, today: date) -> AgentReply:
        profile = await self._store.ensure_profile(user_id)
        since = today - timedelta(days=30 * RECENT_TRANSACTION_MONTHS)
        summary = summarize_cashflow(await self._store.list_transactions(user_id, since=since))
        lines = [f"Your current balance is {rupees(profile.balance)}."]
        if summary.months:
            latest = summary.months[-1]
            lines.append(
                f"In {latest.month} you earned {rupees(latest.income)} "
                f"and spent {rupees(latest.expenses)}."
            )
        if summary.top_expense_categories:
            top = ", ".join(
                f"{name} {rupees(amount)}" for name, amount in summary.top_expense_categories.items()
            )
            lines.append(f"Top spending categories: {top}.")
        return AgentReply(
            agent=self.name,
            response=" ".join(lines),
            data={"balance": profile.balance, "summary": summary.model_dump(mode="json")},
        )
