"""Pay stub engine services."""

from paystub_engine.services.access_ledger import PayStubAccessLedger
from paystub_engine.services.delivery import StubDelivery
from paystub_engine.services.generation import PayStubGenerationPipeline
from paystub_engine.services.query_service import PayStubQueryService
from paystub_engine.services.repository import PayStubRepository
from paystub_engine.services.state_machine import InvalidTransitionError, PayStubStateMachine

__all__ = [
    "InvalidTransitionError",
    "PayStubAccessLedger",
    "PayStubGenerationPipeline",
    "PayStubQueryService",
    "PayStubRepository",
    "PayStubStateMachine",
    "StubDelivery",
]
