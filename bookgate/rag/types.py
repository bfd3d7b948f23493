from dataclasses import dataclass, field


@dataclass(frozen=True)
class BookPassage:
    text: str
    score: float
    chapter: str = "Unknown"
    section: str = "Unknown"
    metadata: dict[str, str] = field(default_factory=dict)

    def as_source(self) -> dict[str, object]:
        return {
            "chapter": self.chapter,
            "section": self.section,
            "relevanceScore": self.score,
        }
