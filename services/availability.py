"""
Read-time derivations over balances and loans.

Nothing here touches the database or caches a result: every listing and every
loan submission recomputes availability, alerts and tool classification from
the rows it was given.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional

TOOL_KEYWORDS = (
    "ferramenta", "máquina", "maquina", "equipamento", "epi",
    "acessório", "furadeira", "serra", "martelo",
)

EPI_KEYWORDS = ("epi", "proteção", "segurança")

ZERO = Decimal("0")

# Scale of every Numeric(20, 4) quantity, price and threshold column
QUANTUM = Decimal("0.0001")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_quantity(value) -> Decimal:
    """Round to the stored scale, so checks run on the value that gets persisted."""
    return to_decimal(value).quantize(QUANTUM, rounding=ROUND_HALF_UP)


def committed_quantity(open_loan_quantities: Iterable) -> Decimal:
    return sum((to_decimal(q) for q in open_loan_quantities), ZERO)


def available(quantity, open_loan_quantities: Iterable) -> Decimal:
    """Stock on hand minus what is currently lent out, floored at zero."""
    return max(ZERO, to_decimal(quantity) - committed_quantity(open_loan_quantities))


def is_low_stock(quantity, min_threshold) -> bool:
    threshold = to_decimal(min_threshold)
    return threshold > 0 and to_decimal(quantity) <= threshold


def category_suggests_tool(category: Optional[str]) -> bool:
    lower = (category or "").lower()
    return any(keyword in lower for keyword in TOOL_KEYWORDS)


def category_suggests_epi(category: Optional[str]) -> bool:
    lower = (category or "").lower()
    return any(keyword in lower for keyword in EPI_KEYWORDS)


@dataclass(frozen=True)
class ToolFlag:
    """
    Tri-state tool marker: `explicit` is the stored flag, None when it was
    never set. Unset flags fall back to the category classifier.
    """
    explicit: Optional[bool] = None

    @property
    def is_inferred(self) -> bool:
        return self.explicit is None

    def resolve(self, category: Optional[str], classifier: Callable[[Optional[str]], bool] = category_suggests_tool) -> bool:
        if self.explicit is not None:
            return self.explicit
        return classifier(category)


def is_tool(flag: Optional[bool], category: Optional[str],
            classifier: Callable[[Optional[str]], bool] = category_suggests_tool) -> bool:
    return ToolFlag(flag).resolve(category, classifier)


def is_overdue(loan_date: datetime, now: datetime, overdue_days: int) -> bool:
    return now - loan_date > timedelta(days=overdue_days)
