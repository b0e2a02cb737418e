# System prompts for task parsing
# Modes: parse = one task from the input, coach = every task in a brain dump
# Chunks: 3-5 small steps of 5-25 minutes each
from typing import Optional

BASE_PROMPT = """You are an ADHD-friendly task parsing assistant.
Current date/time: {current_date}
Timezone: {timezone}
{project_list}

IMPORTANT RULES:
1. Be concise - output ONLY valid JSON
2. Break tasks into 3-5 small, actionable chunks (ADHD-friendly)
3. Each chunk should take 5-25 minutes max
4. Use encouraging, simple language
5. If project name matches existing project, use exact spelling
6. Deadlines should be realistic - don't assume "today" unless specified
"""

PARSE_MODE_PROMPT = """
PARSE MODE: Extract single task from user input.
Return ONE task object with name, project, deadline, and chunks."""

COACH_MODE_PROMPT = """
COACH MODE: User is doing a brain dump. Extract ALL tasks mentioned.
Return array of tasks, each with name, project, deadline, and chunks.
Prioritize by urgency if mentioned."""

PARSE_USER_PROMPT = """Parse this into a task:
"{input}"

Respond ONLY with JSON:
{{"name":"Task name","project":"Project","deadline":"ISO-date","chunks":["step1","step2","step3"]}}"""

COACH_USER_PROMPT = """Brain dump from user (extract ALL tasks):
"{input}"

Respond ONLY with JSON array:
[{{"name":"task","project":"Project","deadline":"ISO-date","chunks":["step1","step2","step3"]}}]"""


def build_system_prompt(mode: str, user_projects: list[str], context: Optional[dict] = None) -> str:
    context = context or {}
    if user_projects:
        project_list = f"User's existing projects: {', '.join(user_projects)}"
    else:
        project_list = "User has no existing projects yet."

    prompt = BASE_PROMPT.format(
        current_date=context.get("current_date") or "unknown",
        timezone=context.get("timezone") or "UTC",
        project_list=project_list,
    )
    if mode == "coach":
        return prompt + COACH_MODE_PROMPT
    return prompt + PARSE_MODE_PROMPT


def build_user_prompt(input_text: str, mode: str) -> str:
    if mode == "coach":
        return COACH_USER_PROMPT.format(input=input_text)
    return PARSE_USER_PROMPT.format(input=input_text)
