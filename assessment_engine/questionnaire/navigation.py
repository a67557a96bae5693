"""
Navigation Graph Traversal - Assessment Engine
assessment_engine/questionnaire/navigation.py

Branch resolution for a published questionnaire:

    1. conditional rules, in declaration order (first match wins)
    2. the selected single-choice option's own target
    3. the question's default next id
    4. otherwise the session ends

A question listed in the graph's end_question_ids always ends the session.
"""

import math
import logging
from typing import Any, Mapping, Optional

from assessment_engine.models.enumerations import ConditionOperator
from assessment_engine.models.questionnaire import (
    END_OF_GRAPH,
    BranchCondition,
    NavigationGraph,
    Question,
    SingleChoiceQuestion,
)
from assessment_engine.models.session import Progress
from assessment_engine.scoring.utils import round_half_up_int

logger = logging.getLogger(__name__)

END = END_OF_GRAPH

# Progress estimate: an average branch walks ~60% of the graph
ESTIMATED_PATH_RATIO = 0.6
MIN_ESTIMATED_PATH = 3
MAX_IN_PROGRESS_PERCENTAGE = 95


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _equals(left: Any, right: Any) -> bool:
    left_num, right_num = _to_number(left), _to_number(right)
    if (
        left_num is not None
        and right_num is not None
        and not isinstance(left, str)
        and not isinstance(right, str)
    ):
        return left_num == right_num
    return left == right


def _contains(container: Any, item: Any) -> bool:
    if isinstance(container, (list, tuple)):
        return any(_equals(element, item) for element in container)
    return str(item) in str(container)


def evaluate_condition(
    condition: BranchCondition,
    submitted_value: Any,
    stored_values: Optional[Mapping[str, Any]] = None,
) -> bool:
    """
    Evaluate one branch rule.

    Args:
        condition: Rule to evaluate
        submitted_value: Value just submitted for the current question
        stored_values: question_id -> stored value, used when the rule names
            another question

    Returns:
        True when the rule matches. A missing operand never matches.
    """
    value = submitted_value
    if condition.question_id:
        value = (stored_values or {}).get(condition.question_id)

    if value is None:
        return False

    op = condition.operator
    operand = condition.value

    if op == ConditionOperator.EQUALS:
        return _equals(value, operand)
    if op == ConditionOperator.NOT_EQUALS:
        return not _equals(value, operand)

    if op in (
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
        ConditionOperator.GREATER_OR_EQUAL,
        ConditionOperator.LESS_OR_EQUAL,
    ):
        left, right = _to_number(value), _to_number(operand)
        if left is None or right is None:
            return False
        if op == ConditionOperator.GREATER_THAN:
            return left > right
        if op == ConditionOperator.LESS_THAN:
            return left < right
        if op == ConditionOperator.GREATER_OR_EQUAL:
            return left >= right
        return left <= right

    if op == ConditionOperator.CONTAINS:
        return _contains(value, operand)
    if op == ConditionOperator.NOT_CONTAINS:
        return not _contains(value, operand)

    if op in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not isinstance(operand, (list, tuple)):
            return False
        found = _contains(operand, value)
        return found if op == ConditionOperator.IN else not found

    return False


def resolve_next(
    graph: NavigationGraph,
    question: Question,
    answer_value: Any,
    stored_values: Optional[Mapping[str, Any]] = None,
) -> str:
    """
    Resolve the question that follows ``question`` after ``answer_value``.

    Returns:
        Next question id, or END
    """
    if question.id in graph.end_question_ids:
        return END

    for index, rule in enumerate(question.conditions):
        if evaluate_condition(rule, answer_value, stored_values):
            logger.debug(
                "Branch rule matched",
                extra={"question_id": question.id, "rule_index": index, "target": rule.next_question_id},
            )
            return rule.next_question_id

    if isinstance(question, SingleChoiceQuestion):
        option = question.option_for(answer_value)
        if option is not None and option.next_question_id:
            return option.next_question_id

    if question.next_question_id:
        return question.next_question_id

    return END


def calculate_progress(graph: NavigationGraph, answered: int, completed: bool = False) -> Progress:
    """
    Best-effort progress for a branching graph.

    total = max(answered + 1, max(3, ceil(0.6 * questions)))
    percentage = min(95, round(100 * answered / total)), 100 once completed
    """
    estimated_path = max(MIN_ESTIMATED_PATH, math.ceil(len(graph.questions) * ESTIMATED_PATH_RATIO))

    if completed:
        total = max(answered, 1)
        return Progress(current=answered, total=total, percentage=100)

    total = max(answered + 1, estimated_path)
    percentage = min(MAX_IN_PROGRESS_PERCENTAGE, round_half_up_int(100 * answered / total))
    return Progress(current=answered, total=total, percentage=percentage)
