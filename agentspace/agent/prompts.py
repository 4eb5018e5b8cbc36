from __future__ import annotations

from dataclasses import dataclass
from typing import Union

TOOL_DOCS = """
**Notes & Context:**
- read_task_notes: Read notes from previous sessions for a task
- write_task_notes: Write or append new insights, findings, or progress to task notes
- check_task_notes_exists: Check if notes already exist for a task
- read_space_context: Read the shared space context (architectural decisions, milestones)
- update_space_context: Update the shared space context with important insights

**Tasks & Spaces:**
- get_task_details: Get full details of a task including subtasks, notes, and space info
- list_space_tasks: List all tasks in a space with subtask progress, optionally filtered by status

**Calendar & Scheduling:**
- get_calendar_events: Get the user's calendar events for a specific date

**Agents:**
- list_agents: List all available agents with their capabilities"""

TOOL_USAGE_GUIDE = """Use these tools to:
- Check for existing notes at the start of conversations and after receiving a document change notification to maintain continuity
- Save important insights, decisions, or findings to task notes
- Review task details and subtask progress
- Understand the broader space context and other tasks in the space
- Check the user's calendar to understand their schedule
- Update the space context when you make significant decisions or complete major milestones"""


@dataclass(slots=True, frozen=True)
class TaskPromptContext:
    agent_prompt: str
    agent_name: str
    task_id: int
    space_id: int
    space_context: str = ""


@dataclass(slots=True, frozen=True)
class TodayPromptContext:
    agent_prompt: str
    agent_name: str
    agenda_context: str


PromptContext = Union[TaskPromptContext, TodayPromptContext]


def build_system_prompt(ctx: PromptContext) -> str:
    base = ctx.agent_prompt or f"You are {ctx.agent_name}, a helpful AI assistant."

    if isinstance(ctx, TaskPromptContext):
        space_section = f"\n\n# Space Context\n\n{ctx.space_context}\n\n---\n" if ctx.space_context else ""
        return (
            f"{base}{space_section}\n\n"
            f"You are currently working on Task ID: {ctx.task_id} in Space ID: {ctx.space_id}. "
            f"You have access to the following tools:\n{TOOL_DOCS}\n\n{TOOL_USAGE_GUIDE}"
        )

    return (
        f"{base}\n\n"
        "You are helping the user plan and organise their day. "
        f"You have access to the following tools:\n{TOOL_DOCS}\n\n{TOOL_USAGE_GUIDE}\n\n"
        f"Here is the context for today:\n\n{ctx.agenda_context}\n\n"
        "Use this context to help the user manage their schedule, prioritise tasks, and plan their day effectively."
    )
