"""Tests for guard/condition evaluation."""

import pytest
from agentgraph.errors import TemplateResolutionError
from agentgraph.workflow.guards import evaluate_condition, is_truthy


def test_absent_or_blank_condition_passes():
    assert evaluate_condition(None, {}) is True
    assert evaluate_condition("", {}) is True
    assert evaluate_condition("   ", {}) is True


def test_only_literal_true_is_truthy():
    assert is_truthy("true") is True
    assert is_truthy(" TRUE ") is True
    assert is_truthy("false") is False
    assert is_truthy("yes") is False
    assert is_truthy("1") is False
    assert is_truthy(True) is False


def test_condition_resolves_against_context():
    context = {"inputs": {"approved": True, "status": "pending"}}

    assert evaluate_condition("{{inputs.approved}}", context) is True
    assert evaluate_condition("{{inputs.status}}", context) is False


def test_literal_true_condition():
    assert evaluate_condition("true", {}) is True
    assert evaluate_condition("false", {}) is False


def test_missing_reference_propagates():
    with pytest.raises(TemplateResolutionError):
        evaluate_condition("{{review.output}}", {})
