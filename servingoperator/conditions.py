"""Status conditions and the living condition set that manages them."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, Sequence

READY = "Ready"

SEVERITY_ERROR = ""
SEVERITY_INFO = "Info"


class ConditionStatus(str, Enum):
    """The three states a condition can be in."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Condition:
    """One observation of a resource's state."""

    type: str
    status: ConditionStatus
    severity: str = SEVERITY_ERROR
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = field(default=None, compare=False)

    def is_true(self) -> bool:
        return self.status is ConditionStatus.TRUE

    def is_false(self) -> bool:
        return self.status is ConditionStatus.FALSE

    def is_unknown(self) -> bool:
        return self.status is ConditionStatus.UNKNOWN


class _ConditionsAccessor(Protocol):
    def get_conditions(self) -> list[Condition]: ...

    def set_conditions(self, conditions: list[Condition]) -> None: ...


def _is_true(condition: Condition | None) -> bool:
    return condition is not None and condition.is_true()


def _is_false(condition: Condition | None) -> bool:
    return condition is not None and condition.is_false()


def _format(message_format: str, args: tuple) -> str:
    return message_format % args if args else message_format


@dataclass(frozen=True)
class ConditionSet:
    """A happy condition together with the conditions it depends on."""

    happy: str
    dependents: tuple[str, ...] = ()

    def manage(self, accessor: _ConditionsAccessor) -> ConditionManager:
        return ConditionManager(self, accessor)


class ConditionManager:
    """Reads and updates the conditions held by an accessor."""

    def __init__(self, condition_set: ConditionSet, accessor: _ConditionsAccessor):
        self._set = condition_set
        self._accessor = accessor

    def _severity(self, condition_type: str) -> str:
        if condition_type == self._set.happy or condition_type in self._set.dependents:
            return SEVERITY_ERROR
        return SEVERITY_INFO

    def _set_condition(self, new: Condition) -> None:
        kept: list[Condition] = []
        for existing in self._accessor.get_conditions():
            if existing.type != new.type:
                kept.append(existing)
            elif existing == new:
                return
        kept.append(replace(new, last_transition_time=datetime.now(timezone.utc)))
        kept.sort(key=lambda c: c.type)
        self._accessor.set_conditions(kept)

    def is_happy(self) -> bool:
        return _is_true(self.get_condition(self._set.happy))

    def get_condition(self, condition_type: str) -> Condition | None:
        return next(
            (c for c in self._accessor.get_conditions() if c.type == condition_type),
            None,
        )

    def initialize_conditions(self) -> None:
        happy = self.get_condition(self._set.happy)
        if happy is None:
            happy = Condition(self._set.happy, ConditionStatus.UNKNOWN)
            self._set_condition(happy)
        status = ConditionStatus.TRUE if happy.is_true() else ConditionStatus.UNKNOWN
        for dependent in self._set.dependents:
            if self.get_condition(dependent) is None:
                self._set_condition(Condition(dependent, status))

    def mark_true(self, condition_type: str) -> None:
        self._set_condition(
            Condition(condition_type, ConditionStatus.TRUE, self._severity(condition_type))
        )
        if all(_is_true(self.get_condition(d)) for d in self._set.dependents):
            self._set_condition(
                Condition(self._set.happy, ConditionStatus.TRUE, self._severity(self._set.happy))
            )

    def mark_false(
        self, condition_type: str, reason: str, message_format: str, *args: object
    ) -> None:
        message = _format(message_format, args)
        types: Sequence[str] = [condition_type]
        if condition_type in self._set.dependents:
            types = [condition_type, self._set.happy]
        for t in types:
            self._set_condition(
                Condition(t, ConditionStatus.FALSE, self._severity(t), reason, message)
            )

    def mark_unknown(
        self, condition_type: str, reason: str, message_format: str, *args: object
    ) -> None:
        message = _format(message_format, args)
        self._set_condition(
            Condition(
                condition_type,
                ConditionStatus.UNKNOWN,
                self._severity(condition_type),
                reason,
                message,
            )
        )
        for dependent in self._set.dependents:
            if _is_false(self.get_condition(dependent)):
                if not _is_false(self.get_condition(self._set.happy)):
                    self.mark_false(self._set.happy, reason, message_format, *args)
                return
        if condition_type in self._set.dependents:
            self._set_condition(
                Condition(
                    self._set.happy,
                    ConditionStatus.UNKNOWN,
                    self._severity(self._set.happy),
                    reason,
                    message,
                )
            )


def living_condition_set(*args: str) -> ConditionSet:
    """Return a condition set whose happy condition is Ready."""
    return ConditionSet(READY, tuple(args))