from bookgate.core.errors import AppError
from bookgate.governor.governor import OutboundCallGovernor
from bookgate.models.api import (
    ExperienceLevel,
    PersonalizeRequest,
    PersonalizeResponse,
    UserBackground,
)
from bookgate.services.chat_service import provider_unconfigured_error

LEVEL_DESCRIPTIONS: dict[ExperienceLevel, str] = {
    "beginner": (
        "a beginner who is new to robotics and AI. Use simple language, provide more "
        "context, and explain technical terms."
    ),
    "intermediate": (
        "someone with intermediate experience. You can use moderate technical language "
        "but still explain complex concepts."
    ),
    "advanced": (
        "an advanced user or professional. You can use technical jargon and focus on "
        "deeper insights."
    ),
}

PROMPT_TEMPLATE = """You are an expert educator in Physical AI and Humanoid Robotics.

Your task is to adapt the following educational content for a specific learner.

LEARNER PROFILE:
- Experience Level: {level} - {level_description}
- {background}

ORIGINAL CONTENT:
{content}

INSTRUCTIONS:
1. Rewrite the content to match the learner's experience level
2. If the learner has relevant software/hardware background, make connections to their existing knowledge
3. For beginners: Add explanations, analogies, and break down complex concepts
4. For intermediate: Balance technical detail with accessibility
5. For advanced: Focus on nuances, optimizations, and advanced considerations
6. Maintain the core information but adjust the presentation style
7. Keep the same general structure but adapt examples to be relevant to their background

Please provide the personalized version of the content:"""


def normalize_level(raw: str | None) -> ExperienceLevel:
    value = (raw or "").strip().lower()
    if value == "intermediate":
        return "intermediate"
    if value == "advanced":
        return "advanced"
    return "beginner"


def background_from_session(session: dict[str, object] | None) -> UserBackground | None:
    """Read the profile fields the auth service stores on its user record."""
    if not session:
        return None
    user = session.get("user")
    if not isinstance(user, dict):
        return None
    return UserBackground(
        experience_level=str(user.get("experienceLevel") or "beginner"),
        software_background=str(user.get("softwareBackground") or ""),
        hardware_background=str(user.get("hardwareBackground") or ""),
    )


def build_prompt(content: str, background: UserBackground) -> tuple[ExperienceLevel, str]:
    level = normalize_level(background.experience_level)
    parts: list[str] = []
    if background.software_background:
        parts.append(f"Software background: {background.software_background}")
    if background.hardware_background:
        parts.append(f"Hardware background: {background.hardware_background}")
    prompt = PROMPT_TEMPLATE.format(
        level=level,
        level_description=LEVEL_DESCRIPTIONS[level],
        background=". ".join(parts) or "No specific background provided",
        content=content,
    )
    return level, prompt


class PersonalizationService:
    def __init__(self, governor: OutboundCallGovernor):
        self._governor = governor

    async def personalize(
        self,
        payload: PersonalizeRequest,
        session: dict[str, object] | None = None,
    ) -> PersonalizeResponse:
        background = payload.user_background or background_from_session(session)
        if background is None:
            raise AppError(
                400,
                "user_background_required",
                "User background is required",
                "Please provide user background information",
            )
        if not self._governor.provider.configured:
            raise provider_unconfigured_error()

        level, prompt = build_prompt(payload.content, background)
        personalized = await self._governor.complete(
            [{"role": "user", "content": prompt}],
            temperature=0.7,
            max_tokens=4096,
        )
        return PersonalizeResponse(personalized_content=personalized, user_level=level)
