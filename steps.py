"""Wizard step planning.

The step list is always recomputed from the current answers rather than
spliced in place: call :func:`determine_steps` for a fresh URL and
:func:`steps_for_state` after every answer change.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from program_catalog import (
    ON_DEMAND,
    normalize_blocks,
    resolve_format,
    resolve_program,
    supports_blocks,
)
from wizard_state import WizardState

FORMAT = "format"
PROGRAM = "program"
SESSION = "session"
BLOCKS = "blocks"
CONTACT = "contact"
PAYMENT = "payment"

STEP_LABELS = {
    FORMAT: "Format",
    PROGRAM: "Program",
    SESSION: "Session",
    BLOCKS: "Attendance",
    CONTACT: "Your Info",
    PAYMENT: "Payment",
}

_FULL_KEYWORDS = {"full", "all"}


def _param(params: Mapping[str, Any], key: str) -> Any:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = ",".join(str(v) for v in value)
    return value


def _split_blocks(raw: Any) -> List[str]:
    if raw is None:
        return []
    return [part.strip() for part in str(raw).split(",") if part.strip()]


def resolve_url_params(params: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the answers the URL fully resolves, keyed by step name.

    ``blocks`` resolves to an empty list for full attendance. Unknown slugs or
    block names leave the corresponding key out so the step stays in the plan.
    """
    answers: Dict[str, Any] = {}

    fmt = resolve_format(_param(params, FORMAT))
    if fmt:
        answers[FORMAT] = fmt

    program = resolve_program(_param(params, PROGRAM))
    if program:
        answers[PROGRAM] = program

    session_id = str(_param(params, SESSION) or "").strip()
    if session_id and fmt != ON_DEMAND:
        answers[SESSION] = session_id

    raw_blocks = _split_blocks(_param(params, BLOCKS))
    if program and supports_blocks(program) and fmt != ON_DEMAND and raw_blocks:
        if len(raw_blocks) == 1 and raw_blocks[0].lower() in _FULL_KEYWORDS:
            answers[BLOCKS] = []
        else:
            selected, unknown = normalize_blocks(program, raw_blocks)
            if selected and not unknown:
                answers[BLOCKS] = selected

    return answers


def blocks_step_applies(program: Optional[str], format_name: Optional[str]) -> bool:
    return supports_blocks(program) and format_name != ON_DEMAND


def plan_steps(format_name: Optional[str], program: Optional[str], pinned: Iterable[str] = ()) -> List[str]:
    """Ordered step list for the given answers; ``pinned`` steps are already settled."""
    pinned = set(pinned)
    steps: List[str] = []
    if FORMAT not in pinned:
        steps.append(FORMAT)
    if PROGRAM not in pinned:
        steps.append(PROGRAM)
    if format_name != ON_DEMAND and SESSION not in pinned:
        steps.append(SESSION)
    if blocks_step_applies(program, format_name) and BLOCKS not in pinned:
        steps.append(BLOCKS)
    steps.extend([CONTACT, PAYMENT])
    return steps


def determine_steps(params: Mapping[str, Any]) -> List[str]:
    answers = resolve_url_params(params)
    return plan_steps(answers.get(FORMAT), answers.get(PROGRAM), answers.keys())


def steps_for_state(state: WizardState) -> List[str]:
    return plan_steps(state.format or None, state.program or None, state.prefilled)


def diff_steps(old: List[str], new: List[str]) -> Dict[str, List[str]]:
    return {
        "added": [s for s in new if s not in old],
        "removed": [s for s in old if s not in new],
    }


def next_step(steps: List[str], current: str) -> str:
    if current not in steps:
        return steps[0] if steps else ""
    index = steps.index(current)
    return steps[min(index + 1, len(steps) - 1)]


def previous_step(steps: List[str], current: str) -> str:
    if current not in steps:
        return steps[0] if steps else ""
    index = steps.index(current)
    return steps[max(index - 1, 0)]


def first_open_step(state: WizardState) -> str:
    """First step whose answer is still missing, falling back to contact."""
    for step in state.steps:
        if step == FORMAT and not state.format:
            return step
        if step == PROGRAM and not state.program:
            return step
        if step == SESSION and not state.session_id:
            return step
        if step == BLOCKS:
            return step
        if step in (CONTACT, PAYMENT):
            return step
    return CONTACT


def step_indicator(state: WizardState) -> List[Dict[str, Any]]:
    """Numbered step list for the progress indicator."""
    current_index = state.steps.index(state.current_step) if state.current_step in state.steps else 0
    rows = []
    for index, step in enumerate(state.steps):
        status = "completed" if index < current_index else "active" if index == current_index else "pending"
        rows.append({"number": index + 1, "step": step, "label": STEP_LABELS[step], "status": status})
    return rows
