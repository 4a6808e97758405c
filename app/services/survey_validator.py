"""Survey logic graph validator for structural analysis.

Each logic condition makes its question depend on another question's
answer. This module checks that graph at authoring time:
- All condition references point to questions of the same survey
- No question references itself
- No circular dependencies (cycles)
- Parent question references are valid
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from app.schemas.survey import QuestionBase
from app.logging_config import get_logger

logger = get_logger(__name__)


class SurveyStructureError(Exception):
    """Raised when survey structure is invalid."""
    pass


class SurveyValidator:
    """Service for validating the logic dependency graph of a survey."""

    @staticmethod
    def validate_questions(questions: Sequence[QuestionBase]) -> None:
        """Validate question references and the logic dependency graph.

        Questions are identified by their ``id`` (an authoring key for
        payloads, the stored ID for loaded surveys). Questions without an
        ``id`` cannot be referenced but may still carry logic.

        Checks:
        1. Question IDs are unique
        2. Every condition references an existing question
        3. No condition references its own question
        4. The dependency graph has no cycles
        5. Parent question references exist

        Forward references (depending on a later question) are allowed
        but logged, since answers are evaluated in declared order.

        Args:
            questions: Questions in declared order

        Raises:
            SurveyStructureError: If structure is invalid
        """
        keys = [SurveyValidator._key(question, index) for index, question in enumerate(questions)]
        if len(keys) != len(set(keys)):
            duplicates = sorted({key for key in keys if keys.count(key) > 1})
            raise SurveyStructureError(f"Duplicate question IDs found: {duplicates}")

        # Placeholders only name questions in messages; they are not reference targets
        known = {
            key for key, question in zip(keys, questions)
            if getattr(question, "id", None) is not None
        }
        positions = {key: index for index, key in enumerate(keys)}
        errors: List[str] = []

        for index, question in enumerate(questions):
            key = keys[index]
            for cond_index, ref in enumerate(question.referenced_question_ids()):
                if ref not in known:
                    errors.append(
                        f"Question {index + 1} ('{question.label}'): condition {cond_index + 1} "
                        f"references non-existent question '{ref}'"
                    )
                elif ref == key:
                    errors.append(
                        f"Question {index + 1} ('{question.label}'): condition {cond_index + 1} "
                        f"cannot reference its own question"
                    )
                elif positions[ref] > index:
                    logger.warning(
                        f"Question '{question.label}' depends on later question '{ref}'"
                    )

            parent = question.parent_question_id
            if parent is not None and (parent not in known or parent == key):
                errors.append(
                    f"Question {index + 1} ('{question.label}'): invalid parent question '{parent}'"
                )

        if errors:
            raise SurveyStructureError("; ".join(errors))

        graph = SurveyValidator._build_graph(questions, keys)
        cycle = SurveyValidator._find_cycle(graph, keys)
        if cycle is not None:
            raise SurveyStructureError(
                f"Survey logic contains circular references: {' -> '.join(cycle)}"
            )

        logger.debug(f"Validated logic graph for {len(keys)} questions")

    @staticmethod
    def _key(question: QuestionBase, index: int) -> str:
        """Return the question's ID, or a positional placeholder."""
        question_id: Optional[str] = getattr(question, "id", None)
        return question_id if question_id is not None else f"#{index + 1}"

    @staticmethod
    def _build_graph(questions: Sequence[QuestionBase], keys: List[str]) -> Dict[str, List[str]]:
        """Build adjacency list of logic dependencies.

        Args:
            questions: Questions to analyze
            keys: Question keys, parallel to ``questions``

        Returns:
            Dictionary mapping question key -> keys it depends on
        """
        graph: Dict[str, List[str]] = defaultdict(list)

        for key, question in zip(keys, questions):
            for ref in question.referenced_question_ids():
                graph[key].append(ref)

        return graph

    @staticmethod
    def _find_cycle(graph: Dict[str, List[str]], keys: List[str]) -> Optional[List[str]]:
        """Detect a dependency cycle using DFS.

        Args:
            graph: Adjacency list representation
            keys: All question keys (DFS roots)

        Returns:
            The keys along the first cycle found (first key repeated at the
            end), or None if the graph is acyclic
        """
        visited = set()
        rec_stack: List[str] = []

        def dfs(node: str) -> Optional[List[str]]:
            """Depth-first search with recursion stack tracking."""
            visited.add(node)
            rec_stack.append(node)

            for neighbor in graph.get(node, []):
                if neighbor in rec_stack:
                    # Back edge found = cycle
                    return rec_stack[rec_stack.index(neighbor):] + [neighbor]
                if neighbor not in visited:
                    cycle = dfs(neighbor)
                    if cycle is not None:
                        return cycle

            rec_stack.pop()
            return None

        for key in keys:
            if key not in visited:
                cycle = dfs(key)
                if cycle is not None:
                    return cycle
        return None
