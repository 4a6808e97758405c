"""Conditional logic evaluation using simpleeval for safe comparisons.

This module decides whether a question applies given the answers
collected so far. Each condition operator is compiled to a fixed
expression over two names, ``answer`` and ``value``, and evaluated with
simpleeval so no user-supplied text is ever executed.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from simpleeval import InvalidExpression, SimpleEval

from app.schemas.survey import LogicAction, LogicCondition, LogicOperator, Question
from app.logging_config import get_logger

logger = get_logger(__name__)


# Expression evaluated for each operator; `answer` is the referenced
# question's answer and `value` the condition's operand
OPERATOR_EXPRESSIONS = {
    LogicOperator.EQUALS: "answer == value",
    LogicOperator.NOT_EQUALS: "answer != value",
    LogicOperator.GREATER_THAN: "answer > value",
    LogicOperator.LESS_THAN: "answer < value",
    LogicOperator.CONTAINS: "value in answer",
    LogicOperator.IN: "answer in value",
}


@dataclass(frozen=True)
class LogicResult:
    """Outcome of evaluating a question's logic clause.

    Attributes:
        applicable: Whether the question must be answered and validated
        skipped: True when a satisfied ``skip`` action removed the question
        conditions_met: Combined result of the conditions, None without logic
    """
    applicable: bool
    skipped: bool = False
    conditions_met: Optional[bool] = None


class LogicEvaluator:
    """Service for evaluating question logic clauses."""

    @staticmethod
    def evaluate_condition(condition: LogicCondition, answered_so_far: Mapping[str, Any]) -> bool:
        """Evaluate one condition against the referenced question's answer.

        A missing answer is treated as None. Comparisons between
        incompatible types (e.g. ``"abc" > 5`` or ``contains`` on a missing
        answer) are false rather than errors.

        Args:
            condition: Condition to evaluate
            answered_so_far: Answers keyed by question ID

        Returns:
            Boolean result of the condition

        Example:
            >>> cond = LogicCondition(question_id="age", operator=">", value=17)
            >>> LogicEvaluator.evaluate_condition(cond, {"age": 25})
            True
        """
        answer = answered_so_far.get(condition.question_id)
        expression = OPERATOR_EXPRESSIONS[condition.operator]

        if condition.operator == LogicOperator.CONTAINS and isinstance(answer, str):
            if not isinstance(condition.value, str):
                return False
        if condition.operator == LogicOperator.IN and not isinstance(condition.value, (list, tuple, set)):
            return False

        evaluator = SimpleEval(names={"answer": answer, "value": condition.value})
        try:
            result = bool(evaluator.eval(expression))
        except (TypeError, ValueError) as e:
            logger.warning(
                f"Condition on '{condition.question_id}' ({condition.operator.value}) "
                f"could not compare {answer!r} with {condition.value!r}: {e}"
            )
            return False
        except InvalidExpression as e:
            logger.error(f"Invalid expression for operator {condition.operator.value}: {e}")
            return False

        logger.debug(f"Evaluated {answer!r} {condition.operator.value} {condition.value!r} = {result}")
        return result

    @staticmethod
    def evaluate(question: Question, answered_so_far: Mapping[str, Any]) -> LogicResult:
        """Decide whether a question applies given the answers so far.

        Conditions are combined with AND. When they all hold, ``show``
        makes the question applicable while ``hide`` and ``skip`` remove
        it. When they do not hold, a ``show`` question stays hidden and
        ``hide``/``skip`` questions apply as usual. A question without
        conditions always applies.

        Args:
            question: Question whose logic is evaluated
            answered_so_far: Answers keyed by question ID

        Returns:
            LogicResult describing applicability
        """
        if not question.has_logic:
            return LogicResult(applicable=True)

        conditions_met = all(
            LogicEvaluator.evaluate_condition(condition, answered_so_far)
            for condition in question.logic.conditions
        )
        action = question.logic.action

        if action == LogicAction.SHOW:
            return LogicResult(applicable=conditions_met, conditions_met=conditions_met)
        if action == LogicAction.HIDE:
            return LogicResult(applicable=not conditions_met, conditions_met=conditions_met)

        # LogicAction.SKIP
        return LogicResult(
            applicable=not conditions_met,
            skipped=conditions_met,
            conditions_met=conditions_met,
        )

    @staticmethod
    def visible_question_ids(
        questions: Iterable[Question],
        answered_so_far: Mapping[str, Any]
    ) -> set[str]:
        """Return IDs of the questions that apply given the answers so far.

        Args:
            questions: Questions to evaluate
            answered_so_far: Answers keyed by question ID

        Returns:
            Set of applicable question IDs
        """
        return {
            question.id
            for question in questions
            if LogicEvaluator.evaluate(question, answered_so_far).applicable
        }
