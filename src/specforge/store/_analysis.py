"""Corpus analysis helpers: orphan detection and task blocking."""

from collections.abc import Sequence

from specforge.store._models import Task
from specforge.store._results import Corpus
from specforge.store._validation import criterion_index

__all__ = ["find_orphans", "get_blocking_tasks", "is_task_blocked"]


def find_orphans(corpus: Corpus) -> list[str]:
    """Find entities nothing links to.

    An entity is an orphan when:

    - a plan has no ``criteria_id`` and no other plan depends on it;
    - a component is used by no test case and no other component;
    - a requirement has no criterion that any plan links to.

    Returns:
        Orphan ids, plans first, then components, then requirements.
    """
    orphans: list[str] = []

    depended_on = {dep for plan in corpus.plans for dep in plan.depends_on}
    orphans.extend(
        plan.id
        for plan in corpus.plans
        if not plan.criteria_id and plan.id not in depended_on
    )

    used_components = {
        component_id
        for plan in corpus.plans
        for test_case in plan.test_cases
        for component_id in test_case.components
    }
    used_components.update(
        dep for component in corpus.components for dep in component.depends_on
    )
    orphans.extend(
        component.id
        for component in corpus.components
        if component.id not in used_components
    )

    linked = {plan.criteria_id for plan in corpus.plans if plan.criteria_id}
    criteria = criterion_index(corpus.requirements)
    for requirement in corpus.requirements:
        prefix = f"{requirement.id}/"
        if not any(cid.startswith(prefix) and cid in linked for cid in criteria):
            orphans.append(requirement.id)

    return orphans


def get_blocking_tasks(task: Task, tasks: Sequence[Task]) -> list[str]:
    """Return the ids of the task's dependencies that are not completed.

    Dependencies that do not exist in ``tasks`` are ignored.
    """
    by_id = {other.id: other for other in tasks}
    return [
        dep
        for dep in task.depends_on
        if dep in by_id and not by_id[dep].completed
    ]


def is_task_blocked(task: Task, tasks: Sequence[Task]) -> bool:
    """Check whether any existing dependency of the task is incomplete."""
    return bool(get_blocking_tasks(task, tasks))
