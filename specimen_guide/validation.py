"""
Layer 3 — Validation Retry Loop
===============================
Guards every risky manual step (opening a reagent package, moving liquid
between two labelled tubes, accepting a scanned strip image) with a bounded
confirmation exchange:

  PROMPTING ──match──────────────▶ CONFIRMED   (terminal)
      │
      └─mismatch─▶ MISMATCHED ──attempt <= max──▶ re-prompt with warning
                        │
                        └──attempt > max──▶ ESCALATED (terminal)

Matching is all-or-nothing over the expected label list, after stripping
whitespace and folding case. ValidationMachine is the pure state machine;
run_validation drives it against a Prompter and raises ValidationExceeded on
escalation. What to do with an escalated specimen is the caller's decision.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from specimen_guide.config import EngineConfig, IMAGE_MAX_ATTEMPTS, PACKAGE_MAX_ATTEMPTS
from specimen_guide.errors import ValidationExceeded
from specimen_guide.store import UploadHandle

logger = structlog.get_logger(__name__)

YES = "yes"
NO = "no"


class ValidationState(str, Enum):
    PROMPTING  = "prompting"
    CONFIRMED  = "confirmed"
    MISMATCHED = "mismatched"
    ESCALATED  = "escalated"


TERMINAL_STATES = (ValidationState.CONFIRMED, ValidationState.ESCALATED)


class ValidationKind(str, Enum):
    PACKAGE  = "package"     # scan the package sticker before opening
    SAMPLE   = "sample"      # scan incoming tubes
    TRANSFER = "transfer"    # scan source and destination before pipetting
    IMAGE    = "image"       # yes/no: scanned image labels match


def normalize_label(label: Any) -> str:
    return "".join(str(label).split()).casefold()


def labels_match(expected: Sequence[str], declared: Sequence[str]) -> bool:
    if len(expected) != len(declared):
        return False
    return all(normalize_label(e) == normalize_label(d) for e, d in zip(expected, declared))


def _as_yes_no(answer: Any) -> str:
    if isinstance(answer, bool):
        return YES if answer else NO
    return YES if normalize_label(str(answer)) in (YES, "y", "true") else NO


def _as_declared(answer: Any) -> Tuple[str, ...]:
    if isinstance(answer, (list, tuple)):
        return tuple(str(a) for a in answer)
    return (str(answer),)


@dataclass(frozen=True)
class ValidationAttempt:
    expected: Tuple[str, ...]
    declared: Tuple[str, ...]
    attempt_number: int
    matched: bool

    def to_dict(self) -> dict:
        return {
            "expected": list(self.expected),
            "declared": list(self.declared),
            "attempt_number": self.attempt_number,
            "matched": self.matched,
        }


@dataclass
class ValidationPrompt:
    kind: ValidationKind
    title: str
    expected: List[str]
    attempt_number: int
    max_attempts: int
    warning: Optional[str] = None
    diagram: Optional[dict] = None           # scene from diagram.to_scene
    upload: Optional[UploadHandle] = None    # image confirmation only

    @property
    def yes_no(self) -> bool:
        return self.kind == ValidationKind.IMAGE

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "expected": self.expected,
            "attempt_number": self.attempt_number,
            "max_attempts": self.max_attempts,
            "warning": self.warning,
            "diagram": self.diagram,
            "upload": self.upload.to_dict() if self.upload else None,
            "yes_no": self.yes_no,
        }


Answer = Union[str, bool, Sequence[str]]
Prompter = Callable[[ValidationPrompt], Answer]


# ── State machine ─────────────────────────────────────────────────────────────

@dataclass
class ValidationMachine:
    expected: Tuple[str, ...]
    max_attempts: int
    kind: ValidationKind = ValidationKind.SAMPLE
    title: str = ""
    diagram: Optional[dict] = None
    state: ValidationState = ValidationState.PROMPTING
    attempt_number: int = 1
    history: List[ValidationAttempt] = field(default_factory=list)
    upload: Optional[UploadHandle] = None

    def __post_init__(self):
        if isinstance(self.expected, str):
            self.expected = (self.expected,)
        self.expected = tuple(self.expected)
        if not self.expected:
            raise ValueError("Nothing to validate: expected label list is empty")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not self.title:
            self.title = f"Scan {', '.join(self.expected)}"

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def prompt(self) -> ValidationPrompt:
        if self.finished:
            raise RuntimeError(f"Validation already {self.state.value}")
        warning = None
        if self.state == ValidationState.MISMATCHED and self.history:
            last = self.history[-1]
            warning = (f"Scanned {', '.join(last.declared) or 'nothing'} but expected "
                       f"{', '.join(last.expected)}. Check the objects in front of you "
                       f"(attempt {self.attempt_number} of {self.max_attempts}).")
        return ValidationPrompt(self.kind, self.title, list(self.expected),
                                self.attempt_number, self.max_attempts, warning,
                                self.diagram, self.upload)

    def expected_answer(self) -> Answer:
        if self.kind == ValidationKind.IMAGE:
            return YES
        return list(self.expected)

    def respond(self, answer: Answer) -> ValidationState:
        return advance(self, answer)

    def exceeded_error(self) -> ValidationExceeded:
        return ValidationExceeded(
            f"Could not confirm {', '.join(self.expected)} in {self.max_attempts} "
            f"{'attempt' if self.max_attempts == 1 else 'attempts'}",
            self.expected, self.history)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "expected": list(self.expected),
            "state": self.state.value,
            "attempt_number": self.attempt_number,
            "max_attempts": self.max_attempts,
            "history": [a.to_dict() for a in self.history],
        }


def advance(machine: ValidationMachine, answer: Answer) -> ValidationState:
    """Apply one operator answer. Returns the new state."""
    if machine.finished:
        raise RuntimeError(f"Validation already {machine.state.value}")

    if machine.kind == ValidationKind.IMAGE:
        declared: Tuple[str, ...] = (_as_yes_no(answer),)
        matched = declared[0] == YES
    else:
        declared = _as_declared(answer)
        matched = labels_match(machine.expected, declared)

    machine.history.append(ValidationAttempt(machine.expected, declared,
                                             machine.attempt_number, matched))
    logger.info("validation_attempt", kind=machine.kind.value, expected=list(machine.expected),
                declared=list(declared), attempt=machine.attempt_number, matched=matched)

    if matched:
        machine.state = ValidationState.CONFIRMED
        return machine.state

    machine.attempt_number += 1
    if machine.attempt_number > machine.max_attempts:
        machine.state = ValidationState.ESCALATED
        logger.warning("validation_escalated", kind=machine.kind.value,
                       expected=list(machine.expected), attempts=len(machine.history))
    else:
        machine.state = ValidationState.MISMATCHED
    return machine.state


# ── Drivers ───────────────────────────────────────────────────────────────────

class ScriptedPrompter:
    """Replays canned answers in order and records every prompt shown."""

    def __init__(self, answers: Iterable[Answer]):
        self._answers = list(answers)
        self.prompts: List[ValidationPrompt] = []

    def __call__(self, prompt: ValidationPrompt) -> Answer:
        if len(self.prompts) >= len(self._answers):
            raise RuntimeError(f"No scripted answer left for prompt {len(self.prompts) + 1}")
        self.prompts.append(prompt)
        return self._answers[len(self.prompts) - 1]


UploadProvider = Callable[[int], UploadHandle]


def run_validation(machine: ValidationMachine, prompter: Prompter,
                   test_mode: bool = False,
                   upload_provider: Optional[UploadProvider] = None) -> ValidationMachine:
    """
    Block on the prompter until the machine reaches a terminal state.
    In test mode the expected answer is injected and the prompter is not called.
    """
    while not machine.finished:
        if upload_provider is not None:
            machine.upload = upload_provider(machine.attempt_number)
        if test_mode:
            logger.warning("validation_bypassed", kind=machine.kind.value,
                           expected=list(machine.expected))
            answer = machine.expected_answer()
        else:
            answer = prompter(machine.prompt())
        advance(machine, answer)

    if machine.state == ValidationState.ESCALATED:
        raise machine.exceeded_error()
    logger.info("validation_confirmed", kind=machine.kind.value,
                expected=list(machine.expected), attempts=len(machine.history))
    return machine


def _budget(max_attempts: Optional[int], config: Optional[EngineConfig], image: bool) -> int:
    if max_attempts is not None:
        return max_attempts
    if config is not None:
        return config.image_max_attempts if image else config.package_max_attempts
    return IMAGE_MAX_ATTEMPTS if image else PACKAGE_MAX_ATTEMPTS


def _test_mode(test_mode: Optional[bool], config: Optional[EngineConfig]) -> bool:
    if test_mode is not None:
        return test_mode
    return bool(config and config.test_mode)


def package_validation(package: str, prompter: Prompter, diagram: Optional[dict] = None,
                       max_attempts: Optional[int] = None, config: Optional[EngineConfig] = None,
                       test_mode: Optional[bool] = None) -> ValidationMachine:
    machine = ValidationMachine((package,), _budget(max_attempts, config, False),
                                ValidationKind.PACKAGE, f"Scan package {package}", diagram)
    return run_validation(machine, prompter, _test_mode(test_mode, config))


def sample_validation(expected: Sequence[str], prompter: Prompter, diagram: Optional[dict] = None,
                      max_attempts: Optional[int] = None, config: Optional[EngineConfig] = None,
                      test_mode: Optional[bool] = None) -> ValidationMachine:
    machine = ValidationMachine(tuple(expected), _budget(max_attempts, config, False),
                                ValidationKind.SAMPLE,
                                f"Scan {', '.join(expected)}", diagram)
    return run_validation(machine, prompter, _test_mode(test_mode, config))


def pre_transfer_validation(from_label: str, to_label: str, prompter: Prompter,
                            diagram: Optional[dict] = None, max_attempts: Optional[int] = None,
                            config: Optional[EngineConfig] = None,
                            test_mode: Optional[bool] = None) -> ValidationMachine:
    machine = ValidationMachine((from_label, to_label), _budget(max_attempts, config, False),
                                ValidationKind.TRANSFER,
                                f"Scan {from_label} and {to_label} before transferring", diagram)
    return run_validation(machine, prompter, _test_mode(test_mode, config))


def image_confirmation(label_string: str, upload_provider: UploadProvider, prompter: Prompter,
                       diagram: Optional[dict] = None, max_attempts: Optional[int] = None,
                       config: Optional[EngineConfig] = None,
                       test_mode: Optional[bool] = None) -> ValidationMachine:
    """
    Ask whether the uploaded scan shows label_string. upload_provider is called
    before every attempt so the operator can re-scan after a "no".
    The confirmed upload is left on machine.upload.
    """
    machine = ValidationMachine((label_string,), _budget(max_attempts, config, True),
                                ValidationKind.IMAGE,
                                f"Confirm image labels say {label_string}", diagram)
    return run_validation(machine, prompter, _test_mode(test_mode, config), upload_provider)
