from __future__ import annotations
"""
release_desk/models.py
----------------------
Value types shared by the ledger, the release session and the UI surfaces.

- AllotmentRef     : the allotment a release session works on (display-only budget).
- Share            : a beneficiary's share, money XOR quantity+unit.
- RosterEntry      : one endorsed beneficiary assigned to the allotment.
- PendingRelease   : roster entry awaiting operator confirmation + display snapshot.
- Notification     : one toast (message, severity, expiry token).

All of these are frozen. A roster is never patched in place; the session
reloads it from the ledger instead.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

PESO = "₱"


class BudgetKind(str, Enum):
    MONEY = "Money"
    IN_KIND = "InKind"

    @classmethod
    def parse(cls, raw: object) -> "BudgetKind":
        s = str(raw or "").strip().lower().replace("-", "").replace("_", "")
        if s == "inkind":
            return cls.IN_KIND
        return cls.MONEY


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


def money_text(amount: Decimal | float | int) -> str:
    return f"{PESO} {Decimal(amount):,.2f}"


def quantity_text(qty: int, unit: Optional[str]) -> str:
    return f"{int(qty):,} {(unit or '').strip()}".strip()


# ----------------------------- allotment -----------------------------
@dataclass(frozen=True)
class AllotmentRef:
    allotment_id: int
    project_name: str
    budget_kind: BudgetKind = BudgetKind.MONEY
    budget_amount: Optional[Decimal] = None
    budget_qty: Optional[int] = None
    budget_unit: Optional[str] = None

    @property
    def total_budget_text(self) -> str:
        if self.budget_kind is BudgetKind.IN_KIND:
            return quantity_text(self.budget_qty or 0, self.budget_unit)
        return money_text(self.budget_amount or 0)

    def as_dict(self) -> Dict:
        return {
            "allotment_id": self.allotment_id,
            "project_name": self.project_name,
            "budget_kind": self.budget_kind.value,
            "total_budget_text": self.total_budget_text,
        }


# ----------------------------- roster -----------------------------
@dataclass(frozen=True)
class Share:
    """Exactly one of `amount` or (`qty`, `unit`) is set."""
    amount: Optional[Decimal] = None
    qty: Optional[int] = None
    unit: Optional[str] = None

    def __post_init__(self):
        has_money = self.amount is not None
        has_goods = self.qty is not None
        if has_money == has_goods:
            raise ValueError("share must carry either an amount or a quantity, not both or neither")
        if has_goods and not (self.unit or "").strip():
            raise ValueError("in-kind share needs a unit")

    @property
    def kind(self) -> BudgetKind:
        return BudgetKind.MONEY if self.amount is not None else BudgetKind.IN_KIND

    @property
    def text(self) -> str:
        if self.amount is not None:
            return money_text(self.amount)
        return quantity_text(self.qty or 0, self.unit)


@dataclass(frozen=True)
class RosterEntry:
    beneficiary_id: int
    code: str                       # what the barcode encodes
    first_name: str
    last_name: str
    barangay: str
    classification: str
    share: Share
    released: bool = False

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def match_key(self) -> str:
        return self.code.strip().casefold()

    def matches(self, scanned: str) -> bool:
        return self.match_key == str(scanned).strip().casefold()

    def as_dict(self) -> Dict:
        return {
            "beneficiary_id": self.beneficiary_id,
            "code": self.code,
            "name": self.display_name,
            "barangay": self.barangay,
            "classification": self.classification,
            "share": self.share.text,
            "released": self.released,
        }


@dataclass(frozen=True)
class PendingRelease:
    entry: RosterEntry
    code: str
    name: str
    barangay: str
    classification: str
    share_text: str
    matched_at: float = field(default_factory=time.time)

    @classmethod
    def capture(cls, entry: RosterEntry) -> "PendingRelease":
        # snapshot the display fields now; later roster reloads don't touch them
        return cls(
            entry=entry,
            code=entry.code,
            name=entry.display_name,
            barangay=entry.barangay,
            classification=entry.classification,
            share_text=entry.share.text,
        )

    def as_dict(self) -> Dict:
        return {
            "beneficiary_id": self.entry.beneficiary_id,
            "code": self.code,
            "name": self.name,
            "barangay": self.barangay,
            "classification": self.classification,
            "share": self.share_text,
        }


# ----------------------------- toast -----------------------------
@dataclass(frozen=True)
class Notification:
    message: str
    severity: Severity
    token: int

    def as_dict(self) -> Dict:
        return {"message": self.message, "severity": self.severity.value, "token": self.token}
