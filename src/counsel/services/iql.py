"""Isaacus Query Language statements for clause scanning.

IQL wraps natural-language statements in braces and combines them with
Boolean operators; the universal classifier scores each text against the
whole expression (AND takes the minimum, OR the maximum).
"""

from __future__ import annotations


CLAUSE_TEMPLATES: dict[str, str] = {
    # Core clause types
    "confidentiality": "{IS confidentiality clause}",
    "indemnity": "{IS indemnity clause}",
    "termination": "{IS termination clause}",
    "limitation": "{IS limitation of liability clause}",
    "assignment": "{IS assignment clause}",
    "change_of_control": "{IS change of control clause}",
    "intellectual_property": "{IS intellectual property clause}",
    "warranty": "{IS warranty clause}",
    "force_majeure": "{IS force majeure clause}",
    "governing_law": "{IS governing law clause}",
    "dispute_resolution": "{IS dispute resolution clause}",
    "notice": "{IS notice clause}",
    "severability": "{IS severability clause}",
    "entire_agreement": "{IS entire agreement clause}",
    "amendment": "{IS amendment clause}",
    "non_compete": "{IS non-compete clause}",
    "exclusivity": "{IS exclusivity clause}",
    # Risk indicators
    "unlimited_liability": '{IS clause that "creates unlimited liability"}',
    "broad_indemnity": '{IS clause that "requires broad indemnification"}',
    "unilateral_termination": '{IS clause that "allows unilateral termination"}',
    "automatic_renewal": '{IS clause that "provides for automatic renewal"}',
}

CLAUSE_TYPE_LABELS: dict[str, str] = {
    "indemnity": "Indemnity",
    "limitation": "Limitation of Liability",
    "termination": "Termination",
    "confidentiality": "Confidentiality",
    "assignment": "Assignment",
    "change_of_control": "Change of Control",
    "intellectual_property": "Intellectual Property",
    "warranty": "Warranty",
    "force_majeure": "Force Majeure",
    "governing_law": "Governing Law",
    "dispute_resolution": "Dispute Resolution",
    "notice": "Notice",
    "severability": "Severability",
    "entire_agreement": "Entire Agreement",
    "amendment": "Amendment",
    "non_compete": "Non-Compete",
    "exclusivity": "Exclusivity",
    "unlimited_liability": "Unlimited Liability",
    "broad_indemnity": "Broad Indemnification",
    "unilateral_termination": "Unilateral Termination",
    "automatic_renewal": "Automatic Renewal",
    "obligation": "Party Obligation",
}


def template_group(*names: str) -> dict[str, str]:
    return {name: CLAUSE_TEMPLATES[name] for name in names}


HIGH_RISK = template_group(
    "indemnity", "limitation", "unlimited_liability", "broad_indemnity", "unilateral_termination"
)
CORE = template_group(
    "termination", "confidentiality", "assignment", "change_of_control", "intellectual_property"
)
BOILERPLATE = template_group(
    "governing_law", "dispute_resolution", "notice", "severability", "entire_agreement", "amendment"
)
DUE_DILIGENCE = template_group(
    "change_of_control", "assignment", "non_compete", "exclusivity", "termination"
)


def _quoted(value: str) -> str:
    return value.replace('"', "'").strip()


def clause_that(description: str) -> str:
    return f'{{IS clause that "{_quoted(description)}"}}'


def obligating(party: str) -> str:
    return f'{{IS clause obligating "{_quoted(party)}"}}'


def all_of(*statements: str) -> str:
    if not statements:
        raise ValueError("all_of needs at least one statement")
    return " AND ".join(statements)


def label_for(clause_type: str) -> str:
    return CLAUSE_TYPE_LABELS.get(clause_type, clause_type.replace("_", " ").title())


__all__ = [
    "BOILERPLATE",
    "CLAUSE_TEMPLATES",
    "CLAUSE_TYPE_LABELS",
    "CORE",
    "DUE_DILIGENCE",
    "HIGH_RISK",
    "all_of",
    "clause_that",
    "label_for",
    "obligating",
    "template_group",
]
