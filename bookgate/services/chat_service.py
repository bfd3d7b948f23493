import logging
from time import perf_counter

from bookgate.config.settings import Settings
from bookgate.core.errors import AppError
from bookgate.governor.governor import OutboundCallGovernor
from bookgate.models.api import ChatMetadata, ChatRequest, ChatResponse, Source
from bookgate.rag.types import BookPassage
from bookgate.rag.vectorstore import BookVectorStore

logger = logging.getLogger("bookgate.chat")

BASE_SYSTEM_PROMPT = (
    "You are an AI assistant specialized in Physical AI and Humanoid Robotics. "
    "You help users understand concepts from the Physical AI Book."
)
RAG_SYSTEM_SUFFIX = (
    "\n\nYou have access to relevant excerpts from the Physical AI Book. Use this context "
    "to provide accurate, detailed answers. If the context doesn't contain the answer, "
    "use your general knowledge but mention that."
)
GENERAL_SYSTEM_SUFFIX = (
    "\n\nAnswer questions about Physical AI, humanoid robotics, AI agents, and related "
    "topics. Be helpful, accurate, and educational."
)


def provider_unconfigured_error() -> AppError:
    return AppError(
        503,
        "provider_not_configured",
        "Service unavailable",
        "OpenRouter API key not configured",
    )


def build_context_prompt(message: str, passages: list[BookPassage]) -> str:
    context = "\n\n".join(
        f"[Document {idx}] (from {passage.chapter}):\n{passage.text}"
        for idx, passage in enumerate(passages, start=1)
    )
    return (
        f"Context from the book:\n{context}\n\n"
        f"User question: {message}\n\n"
        "Provide a helpful answer based on the context above."
    )


class ChatService:
    def __init__(
        self,
        settings: Settings,
        governor: OutboundCallGovernor,
        vector_store: BookVectorStore | None = None,
    ):
        self._settings = settings
        self._governor = governor
        self._vector_store = vector_store

    @property
    def rag_available(self) -> bool:
        return self._vector_store is not None and self._vector_store.configured

    async def retrieve(self, message: str) -> list[BookPassage] | None:
        """Return matching passages, or None when retrieval is unavailable or fails."""
        if self._vector_store is None or not self._vector_store.configured:
            return None
        try:
            vector = await self._governor.embed(message)
            passages = await self._vector_store.search(vector, limit=self._settings.rag_top_k)
        except Exception as exc:
            # Retrieval is best-effort; the answer falls back to general knowledge.
            logger.warning(
                "rag_retrieval_failed",
                extra={"error_code": getattr(exc, "code", type(exc).__name__)},
            )
            return None
        logger.info("rag_retrieval_completed", extra={"documents": len(passages)})
        return passages

    def build_messages(
        self, payload: ChatRequest, passages: list[BookPassage] | None
    ) -> list[dict[str, str]]:
        system_prompt = BASE_SYSTEM_PROMPT
        user_prompt = payload.message
        if passages:
            system_prompt += RAG_SYSTEM_SUFFIX
            user_prompt = build_context_prompt(payload.message, passages)
        else:
            system_prompt += GENERAL_SYSTEM_SUFFIX

        messages = [{"role": "system", "content": system_prompt}]
        limit = self._settings.chat_history_limit
        history = payload.conversation_history[-limit:] if limit > 0 else []
        messages.extend({"role": item.role, "content": item.content} for item in history)
        messages.append({"role": "user", "content": user_prompt})
        return messages

    async def handle_chat(self, payload: ChatRequest) -> ChatResponse:
        if not self._governor.provider.configured:
            raise provider_unconfigured_error()

        started = perf_counter()
        passages = await self.retrieve(payload.message)
        answer = await self._governor.complete(
            self.build_messages(payload, passages),
            temperature=0.7,
            max_tokens=2000,
        )
        documents = passages or []
        logger.info(
            "chat_completed",
            extra={
                "documents": len(documents),
                "latency_ms": round((perf_counter() - started) * 1000, 1),
            },
        )
        return ChatResponse(
            response=answer,
            metadata=ChatMetadata(
                rag_enabled=passages is not None,
                documents_retrieved=len(documents),
                sources=[Source.model_validate(item.as_source()) for item in documents],
            ),
        )

    def health(self) -> dict[str, object]:
        provider_ready = self._governor.provider.configured
        return {
            "status": "ok",
            "message": "Chat service is operational",
            "features": {
                "rag": self.rag_available,
                "embeddings": provider_ready,
                "chat": provider_ready,
            },
        }
