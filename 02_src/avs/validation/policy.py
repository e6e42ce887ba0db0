"""Task-type specific acceptance rules."""

from decimal import Decimal

from ..collaborators import IPriceOracle
from ..errors import OracleUnavailable
from ..models import (
    Agent,
    GenericResult,
    PriceResult,
    Task,
    TaskResult,
    ValidationResult,
)

# Reported prices must sit within +/-5% of the oracle price, bounds included.
PRICE_TOLERANCE = Decimal("0.05")

AGENT_INACTIVE = "agent_inactive"
UNSUPPORTED_TASK_TYPE = "unsupported_task_type"
PRICE_OUT_OF_BOUNDS = "price_out_of_bounds"
INVALID_PRICE = "invalid_price"
SIGNATURE_INVALID = "signature_invalid"


def price_bounds(oracle_price: Decimal) -> tuple[Decimal, Decimal]:
    return (
        oracle_price * (1 - PRICE_TOLERANCE),
        oracle_price * (1 + PRICE_TOLERANCE),
    )


class ValidationPolicy:
    """Applies the rules in order and stops at the first failure.

    1. the agent exists and is active;
    2. the agent supports the task type, if it declares any;
    3. price results carry a finite price inside the oracle tolerance band;
    4. anything else passes structurally.

    Oracle errors propagate: an unreachable oracle is never a pass.
    """

    def __init__(self, oracle: IPriceOracle):
        self._oracle = oracle

    async def evaluate(
        self, task: Task, agent: Agent | None, result: TaskResult
    ) -> ValidationResult:
        if agent is None or not agent.is_active:
            return _fail(AGENT_INACTIVE, agent=task.assigned_agent)

        supported = agent.supported_task_types
        if supported is not None and task.task_type not in supported:
            return _fail(
                UNSUPPORTED_TASK_TYPE,
                taskType=task.task_type,
                supportedTaskTypes=supported,
            )

        if isinstance(result, PriceResult):
            return await self._check_price(result)

        return ValidationResult(is_valid=True, details={"resultType": GenericResult.kind})

    async def _check_price(self, result: PriceResult) -> ValidationResult:
        if result.price is None:
            return _fail(
                INVALID_PRICE,
                resultType=PriceResult.kind,
                symbol=result.symbol,
                price=str(result.reported),
            )
        oracle_price = await self._oracle.get_price(result.symbol)
        if not oracle_price.is_finite() or oracle_price <= 0:
            raise OracleUnavailable(f"Unusable oracle price {oracle_price} for {result.symbol}")
        lower, upper = price_bounds(oracle_price)
        details = {
            "resultType": PriceResult.kind,
            "symbol": result.symbol,
            "price": str(result.price),
            "oraclePrice": str(oracle_price),
            "lowerBound": str(lower),
            "upperBound": str(upper),
        }
        if lower <= result.price <= upper:
            return ValidationResult(is_valid=True, details=details)
        return _fail(PRICE_OUT_OF_BOUNDS, **details)


def _fail(reason: str, **details) -> ValidationResult:
    return ValidationResult(is_valid=False, details={"reason": reason, **details})
