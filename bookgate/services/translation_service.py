from bookgate.governor.governor import OutboundCallGovernor
from bookgate.models.api import TranslateRequest, TranslateResponse
from bookgate.services.chat_service import provider_unconfigured_error

AUTO_DETECTED = "auto-detected"


class TranslationService:
    def __init__(self, governor: OutboundCallGovernor):
        self._governor = governor

    @staticmethod
    def _system_prompt(payload: TranslateRequest) -> str:
        if payload.source_language:
            return (
                f"Translate from {payload.source_language} to {payload.target_language}. "
                "Return only the translation."
            )
        return (
            "You are a professional translator. Translate the given text to "
            f"{payload.target_language}. Only return the translated text, nothing else."
        )

    async def translate(self, payload: TranslateRequest) -> TranslateResponse:
        if not self._governor.provider.configured:
            raise provider_unconfigured_error()

        translated = await self._governor.complete(
            [
                {"role": "system", "content": self._system_prompt(payload)},
                {"role": "user", "content": payload.text},
            ],
            temperature=0.3,
            max_tokens=2000,
        )
        return TranslateResponse(
            translated_text=translated,
            source_language=payload.source_language or AUTO_DETECTED,
            target_language=payload.target_language,
        )
