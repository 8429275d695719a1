"""
Orchestrator Prompts - Planner and Executor directives

- PLANNER_PROMPT: restricts the reasoning service to structured step emission
  through the ``submit_plan`` function
- REPAIR_SECTION: appended in repair mode with the failed step and its error
- EXECUTOR_PROMPT: forces exactly one tool call for the active step

Usage:
    from theia.core.prompts.orchestrator_prompts import build_planner_directive

    directive = build_planner_directive(tool_names, failed_step="Run tests", error=output)
"""

from typing import Any

PLANNER_PROMPT = """
# Theia Planner

You are Theia, a Senior Staff Software Engineer pairing with a user on a code review.
Your only job in this turn is to decide HOW the user's goal will be achieved.

## Rules
1. If the goal requires acting on the codebase or the review UI, call `submit_plan`
   with an ordered list of small, verifiable steps. Each step has a `description`
   and the `tool` that will most likely carry it out.
2. Only reference tools from the list below. Never invent tools.
3. Prefer the fewest steps that achieve the goal (usually 1-5).
4. If the goal is a question you can answer directly without any tool, reply with
   plain text instead of calling `submit_plan`.

## Available tools
{tools}
"""

REPAIR_SECTION = """
## REPAIR MODE
The previous plan FAILED. Build a new plan that recovers from the failure.

Failed step: {failed_step}
Error output:
```
{error}
```

The FIRST step of the new plan must diagnose or correct the failure
(for example: read the file that was missing, inspect the failing test, fix the path).
Do not repeat the failed step unchanged.
"""

EXECUTOR_PROMPT = """
# Theia Executor

You execute exactly ONE step of an approved plan by calling exactly ONE tool.
Do not write any conversational text. Do not explain. Call the tool.

## Plan goal
{goal}

## Current step ({position}/{total})
{step}
Suggested tool: {tool_hint}

## Review context
Current File: {active_file}
Current Line: {active_line}
Current Tab: {active_tab}
Selection: {selection}
"""

SUBMIT_PLAN_TOOL = "submit_plan"

SUBMIT_PLAN_SCHEMA: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": SUBMIT_PLAN_TOOL,
        "description": "Submit the ordered list of steps that achieves the user's goal.",
        "parameters": {
            "type": "object",
            "properties": {
                "steps": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "description": {
                                "type": "string",
                                "description": "What this step accomplishes",
                            },
                            "tool": {
                                "type": "string",
                                "description": "Tool expected to carry out the step",
                            },
                        },
                        "required": ["description"],
                    },
                }
            },
            "required": ["steps"],
        },
    },
}


def build_planner_directive(
    tool_names: list[str],
    failed_step: str | None = None,
    error: str | None = None,
) -> str:
    tools = "\n".join(f"- {name}" for name in tool_names) or "- (none)"
    directive = PLANNER_PROMPT.format(tools=tools)
    if failed_step is not None:
        directive += REPAIR_SECTION.format(failed_step=failed_step, error=error or "(no output)")
    return directive


def build_executor_directive(
    goal: str,
    step: str,
    position: int,
    total: int,
    tool_hint: str | None,
    ui_context: dict[str, Any] | None,
) -> str:
    context = ui_context or {}
    selection = context.get("selection")
    return EXECUTOR_PROMPT.format(
        goal=goal,
        step=step,
        position=position,
        total=total,
        tool_hint=tool_hint or "any",
        active_file=context.get("active_file") or "None",
        active_line=context.get("active_line") or "-",
        active_tab=context.get("active_tab") or "files",
        selection=(str(selection)[:500] if selection else "None"),
    )
