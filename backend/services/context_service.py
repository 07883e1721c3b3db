"""
Context Assembly for Backlog Pilot
Builds the instruction text and message list for every generation endpoint
from a fixed role template, the rows owned by the caller, and caller input.

Only collection windows are bounded (recent chat turns, existing stories);
individual field values are passed through untouched.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Any
import json

CHAT_HISTORY_WINDOW = 20
STORY_CONTEXT_WINDOW = 10

NO_DESCRIPTION = "No description provided"
NO_CRITERIA = "None specified"
NO_STORIES = "No user stories available"


# ============================================
# Role templates
# ============================================

CHAT_ROLE_PROMPT = """You are having a conversation about this product. Your role is to:
1. Help clarify product requirements and features
2. Ask insightful questions about user needs and business goals
3. Suggest improvements or alternative approaches
4. Provide expert product management advice
5. Help identify edge cases and potential issues
6. Discuss technical feasibility when relevant

Keep your responses conversational, helpful, and focused on product development. Reference existing stories and context when relevant. Ask follow-up questions to better understand the user's needs."""

STORY_GENERATOR_PROMPT = """You are a seasoned Product Manager with expertise in writing clear, actionable user stories.

Your task is to analyze the user's product idea and generate a comprehensive backlog of user stories.

RULES:
1. Generate 5-8 user stories maximum
2. Each story must follow the format: "As a [user type], I want [goal] so that [benefit]"
3. Stories should be ordered by priority (most important first)
4. Each story needs 2-4 specific, testable acceptance criteria
5. Focus on MVP (Minimum Viable Product) features first
6. Include both core functionality and basic user experience features
7. Make acceptance criteria specific and measurable
8. Consider different user types (end users, admins, etc.)

EXAMPLE OUTPUT:
{
  "stories": [
    {
      "title": "As a dog owner, I want to view available time slots so that I can book a convenient appointment",
      "description": "Users need to see available appointment times from dog walkers to schedule services that fit their schedule.",
      "acceptanceCriteria": [
        "Display available time slots in a calendar view",
        "Show walker availability for next 14 days",
        "Filter by preferred time of day (morning, afternoon, evening)",
        "Indicate already booked slots clearly"
      ]
    }
  ]
}"""

CHAT_STORY_RULES = """RULES:
1. Generate 3-6 user stories based on the conversation
2. Each story must follow the format: "As a [user type], I want [goal] so that [benefit]"
3. Stories should be specific to what was discussed in the conversation
4. Each story needs 2-4 specific, testable acceptance criteria
5. Focus on the most important features mentioned in the conversation
6. Make acceptance criteria specific and measurable
7. Consider different user types mentioned in the conversation"""

TASK_BREAKDOWN_RULES = """RULES FOR TASK GENERATION:
1. Generate 3-8 specific, actionable development tasks
2. Each task should be completable in 1-8 hours
3. Tasks should follow software development best practices
4. Include tasks for: implementation, testing, documentation, and code review
5. Consider different aspects: frontend, backend, database, API, testing, deployment
6. Make tasks specific and measurable
7. Prioritize tasks appropriately (low, medium, high, critical)
8. Provide realistic hour estimates for each task
9. Tasks should cover the full development lifecycle for this story

TASK CATEGORIES TO CONSIDER:
- Analysis & Planning
- Database/Schema changes
- Backend API development
- Frontend implementation
- Unit testing
- Integration testing
- Documentation
- Code review
- Deployment preparation"""

TECH_STACK_ADVISOR_PROMPT = """You are a senior software architect and technology consultant with deep expertise across modern web development, mobile development, and enterprise software solutions.

Analyze the provided project details and user stories to suggest an optimal technology stack.

ANALYSIS GUIDELINES:
1. Consider the project's scope, complexity, and requirements
2. Suggest technologies that align with the features described in user stories
3. Prioritize modern, well-supported technologies with good community support
4. Consider scalability, maintainability, and development speed
5. Suggest specific tools and frameworks, not just general categories
6. Provide clear reasoning for each technology choice
7. Consider both MVP and future scaling needs

TECHNOLOGY CATEGORIES TO CONSIDER:
frontend, backend, database, hosting, mobile, ai-ml, analytics, authentication, payment, storage, monitoring, devops

COMPLEXITY ASSESSMENT:
- Simple: Basic CRUD operations, simple UI, minimal integrations
- Moderate: Multiple user types, real-time features, third-party integrations
- Complex: Advanced AI features, complex business logic, enterprise integrations

Return a comprehensive technology stack recommendation with specific tools and clear reasoning for each choice."""


@dataclass
class AssembledPrompt:
    """Everything the generation client needs for one call"""
    system_prompt: str
    user_prompt: str = ""
    messages: List[dict] = field(default_factory=list)


def _text_or(value: Optional[str], placeholder: str) -> str:
    if value is None or not str(value).strip():
        return placeholder
    return str(value)


def format_criteria(criteria: Any) -> str:
    """Join acceptance criteria, or the placeholder when there are none"""
    if not criteria or not isinstance(criteria, (list, tuple)):
        return NO_CRITERIA
    items = [str(c) for c in criteria if str(c).strip()]
    return ", ".join(items) if items else NO_CRITERIA


def format_story_block(stories: Sequence[Any]) -> str:
    """Numbered story listing: title, description, joined criteria"""
    lines = []
    for index, story in enumerate(stories, start=1):
        lines.append(f"{index}. {_text_or(story.title, 'Untitled story')}")
        lines.append(f"   Description: {_text_or(story.description, NO_DESCRIPTION)}")
        lines.append(f"   Acceptance Criteria: {format_criteria(story.acceptance_criteria)}")
    return "\n".join(lines)


class ContextService:
    """Deterministic prompt construction; performs no I/O"""

    def build_chat_context(
        self,
        backlog: Any,
        history: Sequence[Any],
        existing_stories: Sequence[Any],
        new_messages: Sequence[dict]
    ) -> AssembledPrompt:
        """
        System prompt with backlog and story context, followed by the most
        recent prior turns (oldest first) and then the caller's new turns.
        """
        system_prompt = (
            f'You are a senior Product Manager AI assistant helping with the "{backlog.name}" product backlog.'
            f"\n\nBacklog Description: {_text_or(backlog.description, NO_DESCRIPTION)}"
        )

        stories = list(existing_stories)[:STORY_CONTEXT_WINDOW]
        if stories:
            system_prompt += "\n\nExisting User Stories in this backlog:\n" + format_story_block(stories)

        system_prompt += "\n\n" + CHAT_ROLE_PROMPT

        ordered = sorted(history, key=lambda m: m.created_at)[-CHAT_HISTORY_WINDOW:]
        messages = [{"role": m.role, "content": m.content} for m in ordered]
        messages.extend({"role": m["role"], "content": m["content"]} for m in new_messages)

        return AssembledPrompt(system_prompt=system_prompt, messages=messages)

    def build_story_prompt(self, idea: str) -> AssembledPrompt:
        return AssembledPrompt(
            system_prompt=STORY_GENERATOR_PROMPT,
            user_prompt=f"Generate user stories for this product idea: {idea}"
        )

    def build_stories_from_chat_prompt(
        self,
        backlog: Any,
        conversation: Sequence[dict],
        existing_stories: Sequence[Any]
    ) -> AssembledPrompt:
        transcript = "\n\n".join(
            f"{'User' if m['role'] == 'user' else 'Assistant'}: {m['content']}"
            for m in conversation
            if m.get("content") and m["content"].strip()
        )

        system_prompt = (
            f'You are a seasoned Product Manager analyzing a conversation about the "{backlog.name}" product backlog.'
            f"\n\nBacklog Description: {_text_or(backlog.description, NO_DESCRIPTION)}"
            "\n\nBased on the conversation below, generate specific, actionable user stories "
            "that capture the discussed requirements and features."
            f"\n\nCONVERSATION CONTEXT:\n{transcript or 'No conversation yet'}"
            f"\n\n{CHAT_STORY_RULES}"
        )

        stories = list(existing_stories)[:STORY_CONTEXT_WINDOW]
        if stories:
            system_prompt += "\n\nEXISTING STORIES TO AVOID DUPLICATION:\n" + format_story_block(stories)

        return AssembledPrompt(
            system_prompt=system_prompt,
            user_prompt="Analyze the conversation and generate user stories based on the discussed features and requirements."
        )

    def build_task_prompt(
        self,
        story: Any,
        existing_tasks: Sequence[Any],
        context: Optional[str] = None
    ) -> AssembledPrompt:
        criteria = story.acceptance_criteria
        criteria_text = json.dumps(list(criteria)) if criteria else NO_CRITERIA

        system_prompt = f"""You are an experienced Software Development Lead breaking down user stories into actionable tasks.

USER STORY TO BREAK DOWN:
Title: {story.title}
Description: {_text_or(story.description, NO_DESCRIPTION)}
Acceptance Criteria: {criteria_text}

{TASK_BREAKDOWN_RULES}"""

        if context:
            system_prompt += f"\n\nADDITIONAL CONTEXT: {context}"

        if existing_tasks:
            system_prompt += "\n\nEXISTING TASKS TO AVOID DUPLICATION:\n" + "\n".join(
                f"- {t.title}: {_text_or(t.description, NO_DESCRIPTION)}" for t in existing_tasks
            )

        return AssembledPrompt(
            system_prompt=system_prompt,
            user_prompt="Break down this user story into specific, actionable development tasks "
                        "that cover the complete implementation lifecycle."
        )

    def build_tech_stack_prompt(self, backlog: Any, stories: Sequence[Any]) -> AssembledPrompt:
        project_context = (
            f"PROJECT: {backlog.name}\n"
            f"DESCRIPTION: {_text_or(backlog.description, NO_DESCRIPTION)}\n\n"
            f"USER STORIES:\n{format_story_block(stories) if stories else NO_STORIES}"
        )

        return AssembledPrompt(
            system_prompt=TECH_STACK_ADVISOR_PROMPT,
            user_prompt=f"Analyze this project and recommend an optimal technology stack:\n\n{project_context}"
        )


_context_service: Optional[ContextService] = None


def get_context_service() -> ContextService:
    global _context_service
    if _context_service is None:
        _context_service = ContextService()
    return _context_service
