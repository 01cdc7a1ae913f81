"""
Queries of the status conditions as reported by the controllers.

A condition lookup expects exactly one condition of the requested type.
Both zero and multiple matches are errors, so that a malformed status
is never silently interpreted as either a pass or a fail.
"""
from typing import Callable, List

from kubeharness import errors
from kubeharness.structs import bodies

# A check of the observed state: ``True`` when the goal is reached.
ConditionPredicate = Callable[[bodies.Object], bool]


def get_condition(obj: bodies.Object, type: str) -> bodies.RawCondition:
    matching: List[bodies.RawCondition] = [
        condition for condition in obj.conditions
        if isinstance(condition, dict) and condition.get('type') == type
    ]
    if not matching:
        raise errors.ConditionMissingError(
            f"Found 0 conditions of type {type!r} in {obj!r}, expected 1.")
    if len(matching) > 1:
        raise errors.ConditionAmbiguousError(
            f"Found {len(matching)} conditions of type {type!r} in {obj!r}, expected 1.")
    return matching[0]


def get_condition_status(obj: bodies.Object, type: str) -> str:
    condition = get_condition(obj, type)
    return str(condition.get('status'))


def condition_is(type: str, status: str = 'True') -> ConditionPredicate:
    """
    Build a predicate for a specific status of a specific condition type.

    The absence of the condition means that the controller has not reported
    it yet, so the predicate is not satisfied (and the wait goes on).
    The ambiguity is a malformed status and escalates to the waiting caller.
    """
    def predicate(obj: bodies.Object) -> bool:
        try:
            return get_condition_status(obj, type) == str(status)
        except errors.ConditionMissingError:
            return False

    predicate.__name__ = f'condition_{type}_is_{status}'
    return predicate


is_ready: ConditionPredicate = condition_is('Ready', 'True')
