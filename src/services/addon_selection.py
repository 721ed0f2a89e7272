"""Add-on selection state for a single service line."""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType


@dataclass(frozen=True)
class AddonSelection:
    """Immutable mapping of addon_id to selected quantity.

    An add-on is selected iff its id is a key. Keys are removed rather than
    set to zero, so no stored quantity is ever <= 0. Each operation returns
    a new selection.
    """

    max_quantities: Mapping[int, int | None] = field(default_factory=dict)
    quantities: Mapping[int, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_quantities", MappingProxyType(dict(self.max_quantities)))
        object.__setattr__(
            self,
            "quantities",
            MappingProxyType({k: v for k, v in self.quantities.items() if v > 0}),
        )

    def __contains__(self, addon_id: object) -> bool:
        return addon_id in self.quantities

    def __iter__(self) -> Iterator[int]:
        return iter(self.quantities)

    def __len__(self) -> int:
        return len(self.quantities)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AddonSelection):
            return NotImplemented
        return dict(self.quantities) == dict(other.quantities) and dict(self.max_quantities) == dict(
            other.max_quantities
        )

    def __hash__(self) -> int:
        return hash(tuple(self.quantities.items()))

    def quantity(self, addon_id: int) -> int:
        return self.quantities.get(addon_id, 0)

    def _clamp(self, addon_id: int, quantity: int) -> int:
        ceiling = self.max_quantities.get(addon_id)
        if ceiling is not None:
            quantity = min(quantity, max(ceiling, 1))
        return max(quantity, 1)

    def _with(self, addon_id: int, quantity: int) -> "AddonSelection":
        updated = dict(self.quantities)
        if quantity <= 0:
            updated.pop(addon_id, None)
        else:
            updated[addon_id] = self._clamp(addon_id, quantity)
        return AddonSelection(max_quantities=self.max_quantities, quantities=updated)

    def toggle(self, addon_id: int) -> "AddonSelection":
        """Select at quantity 1, or deselect if already selected."""
        if addon_id in self.quantities:
            return self._with(addon_id, 0)
        return self._with(addon_id, 1)

    def increment(self, addon_id: int) -> "AddonSelection":
        return self._with(addon_id, self.quantity(addon_id) + 1)

    def decrement(self, addon_id: int) -> "AddonSelection":
        """Lower the quantity; going below 1 deselects the add-on."""
        if addon_id not in self.quantities:
            return self
        return self._with(addon_id, self.quantity(addon_id) - 1)

    def set_quantity(self, addon_id: int, quantity: int) -> "AddonSelection":
        return self._with(addon_id, quantity)

    def to_payload(self) -> list[dict[str, int]]:
        """Render as the selected_addons array of an add-service request."""
        return [{"addon_id": addon_id, "quantity": qty} for addon_id, qty in self.quantities.items()]

    def total(self, prices: Mapping[int, Decimal]) -> Decimal:
        """Sum price x quantity over selected add-ons with a known price."""
        return sum(
            (prices[addon_id] * qty for addon_id, qty in self.quantities.items() if addon_id in prices),
            Decimal("0"),
        )
