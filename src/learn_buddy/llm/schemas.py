# src/learn_buddy/llm/schemas.py

"""
Input/output schemas of the three generation operations.

Field aliases are the camelCase names used on the wire (and in the JSON the
model is asked to produce); Python code uses the snake_case attributes.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

_BARE_NUMBER = re.compile(r"^[\s\d.,+\-]*$")


def _non_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# ---- estimate-effort ----


class EstimateEffortInput(_Schema):
    task_description: str = Field(
        alias="taskDescription",
        description="The detailed description of the task whose effort should be estimated.",
    )

    @field_validator("task_description")
    @classmethod
    def check_description(cls, value: str) -> str:
        return _non_blank(value)


class EstimateEffortOutput(_Schema):
    story_points: float = Field(
        alias="storyPoints",
        gt=0,
        strict=True,
        allow_inf_nan=False,
        description="Estimated effort in story points. Must be a positive number.",
    )
    justification: str = Field(
        description="Why this many story points were assigned to the task.",
    )

    @field_validator("justification")
    @classmethod
    def check_justification(cls, value: str) -> str:
        value = _non_blank(value)
        if _BARE_NUMBER.match(value):
            raise ValueError("justification must explain the estimate, not just restate a number")
        return value


# ---- suggest-organization ----


class SuggestOrganizationInput(_Schema):
    tasks: list[str] = Field(description="Descriptions of the current tasks, in list order.")


class SuggestOrganizationOutput(_Schema):
    suggestion: str = Field(description="Free-form advice on how to reorganize the tasks.")

    @field_validator("suggestion")
    @classmethod
    def check_suggestion(cls, value: str) -> str:
        return _non_blank(value)


# ---- generate-pathway ----


class GeneratePathwayInput(_Schema):
    learning_goal: str = Field(
        alias="learningGoal",
        description='The topic or skill to learn (e.g. "learn Go", "understand recursion").',
    )

    @field_validator("learning_goal")
    @classmethod
    def check_goal(cls, value: str) -> str:
        return _non_blank(value)


class LearningStep(_Schema):
    task_description: str = Field(
        alias="taskDescription",
        description="A specific, actionable learning task.",
    )
    subtasks: list[str] | None = Field(
        default=None,
        description="Optional smaller sub-steps of this task, in order.",
    )

    @field_validator("task_description")
    @classmethod
    def check_description(cls, value: str) -> str:
        return _non_blank(value)

    @field_validator("subtasks")
    @classmethod
    def check_subtasks(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        return [_non_blank(s) for s in value]


class GeneratePathwayOutput(_Schema):
    pathway_title: str = Field(
        alias="pathwayTitle",
        description="A concise title for the learning pathway.",
    )
    steps: list[LearningStep] = Field(description="Ordered learning steps.")

    @property
    def is_empty(self) -> bool:
        return not self.steps
