# src/learn_buddy/llm/offline.py

from __future__ import annotations

import json

from ..core.ports import JsonDict
from .flows import ESTIMATE_EFFORT, GENERATE_PATHWAY, SUGGEST_ORGANIZATION


class OfflineLLMClient:
    """
    Offline deterministic generation backend used when no external API is configured.

    Behavior:
    - estimate-effort -> a size guess from the description length
    - suggest-organization -> generic grouping advice naming the first tasks
    - generate-pathway -> a fixed three-step plan for the goal
    """

    async def generate(
        self,
        *,
        operation: str,
        system_prompt: str,
        user_prompt: str,
        output_schema: JsonDict,
        payload: JsonDict,
    ) -> str | None:
        if operation == ESTIMATE_EFFORT:
            desc = str(payload.get("taskDescription", ""))
            words = len(desc.split())
            points = 1 if words <= 3 else 3 if words <= 10 else 5
            return json.dumps(
                {
                    "storyPoints": points,
                    "justification": (
                        f"Offline estimate: the task is described in {words} words, "
                        "which suggests a "
                        + ("small" if points == 1 else "medium" if points == 3 else "large")
                        + " piece of work."
                    ),
                }
            )

        if operation == SUGGEST_ORGANIZATION:
            tasks = [str(t) for t in payload.get("tasks", [])]
            head = ", ".join(f'"{t}"' for t in tasks[:3])
            return json.dumps(
                {
                    "suggestion": (
                        "Offline demo mode: no external LLM is configured.\n"
                        f"Start with {head}, finish one task before starting the next, "
                        "and split anything that takes more than a day into subtasks."
                    )
                }
            )

        if operation == GENERATE_PATHWAY:
            goal = str(payload.get("learningGoal", "")).strip()
            return json.dumps(
                {
                    "pathwayTitle": f"Getting started: {goal}",
                    "steps": [
                        {
                            "taskDescription": f"Survey the basics of {goal}",
                            "subtasks": ["Find an introductory resource", "Write down key terms"],
                        },
                        {
                            "taskDescription": f"Practice {goal} with a small exercise",
                            "subtasks": ["Pick an exercise", "Complete it", "Review mistakes"],
                        },
                        {"taskDescription": f"Build a small project using {goal}"},
                    ],
                }
            )

        return None
