"""
Life Admin — Preparation Tasks.

Canned checklists generated when an obligation is created well ahead of its
deadline. Each category has its own template; a step is included only when
there is enough lead time for it.
"""

from __future__ import annotations

from src.data.models import Category, Obligation, TaskDraft

# category -> [(min_days_until_due, title_template, description, priority)]
_TEMPLATES: dict[Category, list[tuple[int, str, str, str]]] = {
    Category.EDUCATION: [
        (7, "Gather documents for {title}",
         "Collect all required documents and certificates", "medium"),
        (3, "Review requirements for {title}",
         "Double-check all requirements and deadlines", "high"),
    ],
    Category.FINANCE: [
        (7, "Prepare financial documents for {title}",
         "Gather bank statements, receipts, and financial records", "high"),
    ],
    Category.WORK: [
        (5, "Prepare for {title}",
         "Review materials and prepare necessary items", "medium"),
    ],
    Category.HEALTH: [
        (3, "Prepare for {title}",
         "Gather medical records and insurance information", "high"),
    ],
}


def build_preparation_tasks(obligation: Obligation, days_until_due: int) -> list[TaskDraft]:
    """Return the category checklist steps that still fit before the deadline."""
    template = _TEMPLATES.get(obligation.category, [])
    return [
        TaskDraft(
            title=title.format(title=obligation.title),
            description=description,
            priority=priority,
            obligation_id=obligation.id,
        )
        for min_days, title, description, priority in template
        if days_until_due > min_days
    ]
