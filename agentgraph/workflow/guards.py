""" Condition evaluation on top of the template resolver. """

from typing import Any, Mapping, Optional

from .templates import resolve


def is_truthy(text: Any) -> bool:
    """ Only the literal string "true" (any case, surrounding space ignored) is truthy. """
    return isinstance(text, str) and text.strip().lower() == "true"


def evaluate_condition(expression: Optional[str], context: Mapping[str, Any]) -> bool:
    """
    Resolve a condition template and test the result for truthiness.

    An absent or blank condition always passes. Template errors propagate.
    """
    if expression is None or not expression.strip():
        return True
    return is_truthy(resolve(expression, context))
