"""Balance query routes."""

from fastapi import APIRouter

from paygate.dependencies import Orchestrator
from paygate.errors.exceptions import ValidationError
from paygate.models.enums import Network

router = APIRouter(prefix="/balances", tags=["Balances"])

_SUPPORTED = [n.value for n in Network] + ["all"]


@router.get("")
async def all_balances(orchestrator: Orchestrator):
    """Return every backend balance; fails if any single backend fails."""
    balances = await orchestrator.get_all_balances()
    return {"success": True, "balances": balances.to_wire()}


@router.get("/{network}")
async def network_balance(network: str, orchestrator: Orchestrator):
    network = network.lower()
    if network not in _SUPPORTED:
        raise ValidationError("Unsupported network", {"supported": _SUPPORTED})
    if network == "all":
        return await all_balances(orchestrator)

    balance = await orchestrator.get_balance(Network(network))
    return {"success": True, "network": network, "balance": balance.to_wire()}
