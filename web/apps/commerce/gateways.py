"""Payment gateway strategies and the registry that resolves them.

A gateway is selected per request by name (the ``gateway`` field of the
checkout payload). The registry maps names to classes configured in
``SIMPLE_COMMERCE["gateways"]`` and instantiates them with their
``options``.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from django.utils.module_loading import import_string
from pydantic import Field

from .domain import Gateway, Order, PurchaseResult
from .exceptions import GatewayCheckoutFailed, GatewayDoesNotExist

logger = logging.getLogger(__name__)


class BaseGateway:
    """Common plumbing for gateways.

    Subclasses set ``name`` and implement ``purchase``. Rules and messages
    default to nothing required.
    """

    name = ""

    def __init__(self, **options):
        self.options = options

    def purchase_rules(self) -> dict[str, Any]:
        return {}

    def purchase_messages(self) -> dict[str, str]:
        return {}

    def purchase(self, request: dict, order: Order) -> PurchaseResult:
        raise NotImplementedError()


class DummyGateway(BaseGateway):
    """In-process gateway for development and tests.

    Accepts any card except ``1212 1212 1212 1212``, which is declined.
    """

    name = "dummy"
    DECLINED_CARD = "1212 1212 1212 1212"

    def purchase_rules(self) -> dict[str, Any]:
        return {
            "card_number": (str, Field(min_length=12, max_length=23)),
            "expiry_month": (int, Field(ge=1, le=12)),
            "expiry_year": (int, Field(ge=2000)),
            "cvc": (str, Field(min_length=3, max_length=4, pattern=r"^\d+$")),
        }

    def purchase_messages(self) -> dict[str, str]:
        return {
            "card_number.missing": "Please enter your card number.",
            "expiry_month.missing": "Please enter the expiry month of your card.",
            "expiry_year.missing": "Please enter the expiry year of your card.",
            "cvc.missing": "Please enter your card's security code.",
        }

    def purchase(self, request: dict, order: Order) -> PurchaseResult:
        card_number = str(request.get("card_number", ""))
        if card_number == self.DECLINED_CARD:
            raise GatewayCheckoutFailed("The card provided is invalid.")

        digits = card_number.replace(" ", "")
        return PurchaseResult(
            paid=True,
            transaction_id=uuid.uuid4().hex,
            data={
                "last_four": digits[-4:],
                "date": datetime.now(timezone.utc).isoformat(),
                "refunded": False,
            },
        )


class GatewayRegistry:
    """Resolve gateway names to gateway instances.

    Args:
        gateways: Mapping of name to either a gateway instance or a config
            dict ``{"class": "dotted.path", "options": {...}}``.
    """

    def __init__(self, gateways: dict):
        self._config = dict(gateways)
        self._instances: dict[str, Gateway] = {}

    def names(self) -> list[str]:
        return list(self._config)

    def resolve(self, name: str) -> Gateway:
        if name in self._instances:
            return self._instances[name]
        if name not in self._config:
            raise GatewayDoesNotExist(f"Gateway [{name}] does not exist.")

        entry = self._config[name]
        if isinstance(entry, dict):
            gateway_class = import_string(entry["class"])
            gateway = gateway_class(**entry.get("options", {}))
        else:
            gateway = entry
        if not getattr(gateway, "name", None):
            gateway.name = name

        logger.debug("gateway resolved", extra={"gateway": name})
        self._instances[name] = gateway
        return gateway
