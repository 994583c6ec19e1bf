# src/learn_buddy/llm/flows.py

"""
Structured generation.

A flow pairs an input schema, an output schema and a prompt. Running a flow:
- validates the input (failures are local ValidationErrors, no backend call),
- makes exactly one backend call (no retries),
- extracts the JSON object from the raw text and validates it against the
  output schema; anything missing or malformed is a GenerationError.

Nothing unvalidated is ever returned to the caller.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import pydantic

from ..core.errors import GenerationError, ValidationError
from ..core.ports import GenerationBackend
from .schemas import (
    EstimateEffortInput,
    EstimateEffortOutput,
    GeneratePathwayInput,
    GeneratePathwayOutput,
    SuggestOrganizationInput,
    SuggestOrganizationOutput,
)

logger = logging.getLogger(__name__)

InT = TypeVar("InT", bound=pydantic.BaseModel)
OutT = TypeVar("OutT", bound=pydantic.BaseModel)

ESTIMATE_EFFORT = "estimate-effort"
SUGGEST_ORGANIZATION = "suggest-organization"
GENERATE_PATHWAY = "generate-pathway"


@dataclass(frozen=True, slots=True)
class Flow(Generic[InT, OutT]):
    name: str
    input_model: type[InT]
    output_model: type[OutT]
    system_prompt: str
    render: Callable[[InT], str]


def extract_json_object(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("{") and raw.endswith("}"):
        return raw
    first = raw.find("{")
    last = raw.rfind("}")
    if first != -1 and last != -1 and last > first:
        return raw[first : last + 1]
    return raw


def _json_only_suffix(model: type[pydantic.BaseModel]) -> str:
    schema = json.dumps(model.model_json_schema(by_alias=True), ensure_ascii=False)
    return (
        "\n\nOutput format:\n"
        "Return STRICT JSON only, matching this JSON schema. No extra text. No Markdown.\n"
        f"{schema}"
    )


ESTIMATE_EFFORT_FLOW: Flow[EstimateEffortInput, EstimateEffortOutput] = Flow(
    name=ESTIMATE_EFFORT,
    input_model=EstimateEffortInput,
    output_model=EstimateEffortOutput,
    system_prompt=(
        "You are a seasoned project manager who estimates task effort in story points.\n"
        "Given a task description, decide how many story points it is worth and explain why."
        + _json_only_suffix(EstimateEffortOutput)
    ),
    render=lambda inp: f"Task description: {inp.task_description}",
)

SUGGEST_ORGANIZATION_FLOW: Flow[SuggestOrganizationInput, SuggestOrganizationOutput] = Flow(
    name=SUGGEST_ORGANIZATION,
    input_model=SuggestOrganizationInput,
    output_model=SuggestOrganizationOutput,
    system_prompt=(
        "You are a productivity coach helping a learner organize a to-do list.\n"
        "Suggest how to group, order or split the tasks to make steady progress."
        + _json_only_suffix(SuggestOrganizationOutput)
    ),
    render=lambda inp: "Tasks:\n" + "\n".join(f"- {t}" for t in inp.tasks),
)

GENERATE_PATHWAY_FLOW: Flow[GeneratePathwayInput, GeneratePathwayOutput] = Flow(
    name=GENERATE_PATHWAY,
    input_model=GeneratePathwayInput,
    output_model=GeneratePathwayOutput,
    system_prompt=(
        "You are an expert curriculum designer.\n"
        "Build a structured learning pathway for the learner's goal as a series of actionable "
        "tasks, breaking complex tasks into smaller subtasks."
        + _json_only_suffix(GeneratePathwayOutput)
    ),
    render=lambda inp: f"Learning goal: {inp.learning_goal}",
)


class StructuredGenerator:
    """Runs flows against one GenerationBackend."""

    def __init__(self, backend: GenerationBackend) -> None:
        self._backend = backend

    async def run(self, flow: Flow[InT, OutT], payload: InT | dict[str, Any]) -> OutT:
        try:
            data = (
                payload
                if isinstance(payload, flow.input_model)
                else flow.input_model.model_validate(payload)
            )
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid input for {flow.name}: {e.errors()[0]['msg']}") from e

        logger.debug("Generation %s: calling backend", flow.name)
        try:
            raw = await self._backend.generate(
                operation=flow.name,
                system_prompt=flow.system_prompt,
                user_prompt=flow.render(data),
                output_schema=flow.output_model.model_json_schema(by_alias=True),
                payload=data.model_dump(by_alias=True),
            )
        except GenerationError:
            raise
        except Exception as e:
            logger.exception("Generation %s: backend call failed", flow.name)
            raise GenerationError(f"{flow.name} failed: {e}") from e

        if raw is None or not raw.strip():
            logger.warning("Generation %s: backend returned no output", flow.name)
            raise GenerationError(f"{flow.name}: the model did not return any output.")

        try:
            result = flow.output_model.model_validate_json(extract_json_object(raw))
        except pydantic.ValidationError as e:
            logger.warning("Generation %s: output failed validation. Raw=%r", flow.name, raw[:2000])
            raise GenerationError(f"{flow.name}: the model returned malformed output.") from e

        logger.debug("Generation %s: output accepted", flow.name)
        return result

    async def estimate_task_effort(self, task_description: str) -> EstimateEffortOutput:
        return await self.run(ESTIMATE_EFFORT_FLOW, {"taskDescription": task_description})

    async def suggest_task_organization(self, tasks: Sequence[str]) -> SuggestOrganizationOutput:
        return await self.run(SUGGEST_ORGANIZATION_FLOW, {"tasks": list(tasks)})

    async def generate_learning_pathway(self, learning_goal: str) -> GeneratePathwayOutput:
        return await self.run(GENERATE_PATHWAY_FLOW, {"learningGoal": learning_goal})
