from sqlalchemy.orm import Session
from typing import List, Optional, Set
import re
import structlog

from agent_relay.config import get_settings
from agent_relay.models.database import KnowledgeEntry
from agent_relay.models.schemas import KnowledgeCreate, KnowledgeMatch

logger = structlog.get_logger()
settings = get_settings()

STOPWORDS = {
    "the", "and", "for", "you", "your", "are", "can", "what", "how", "with",
    "does", "have", "this", "that", "from", "any", "our", "about", "please",
}


def tokenize(text: str) -> Set[str]:
    words = re.findall(r"[\w'-]+", (text or "").lower())
    return {w for w in words if len(w) >= 3 and w not in STOPWORDS}


class KnowledgeService:
    """Keyword search over the answer corpus used when local intents fall short"""

    def __init__(self, db: Session, min_score: float = None):
        self.db = db
        self.min_score = settings.search_min_score if min_score is None else min_score

    def create_entry(self, knowledge_data: KnowledgeCreate) -> KnowledgeEntry:
        """Create a new knowledge entry"""
        try:
            entry = KnowledgeEntry(
                question=knowledge_data.question,
                keywords=",".join(k.strip().lower() for k in knowledge_data.keywords if k.strip()),
                answer=knowledge_data.answer,
            )
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)

            logger.info("Created knowledge entry", id=entry.id)
            return entry
        except Exception as e:
            self.db.rollback()
            logger.error("Failed to create knowledge entry", error=str(e))
            raise

    def get_entries(self, limit: int = 100, offset: int = 0) -> List[KnowledgeEntry]:
        return (self.db.query(KnowledgeEntry)
                .filter(KnowledgeEntry.is_active == True)  # noqa: E712
                .order_by(KnowledgeEntry.id.asc())
                .offset(offset)
                .limit(limit)
                .all())

    def search(self, query: str) -> Optional[KnowledgeMatch]:
        """Best matching entry, scored by the share of query terms it covers"""
        terms = tokenize(query)
        if not terms:
            return None

        best: Optional[KnowledgeMatch] = None
        for entry in self.get_entries(limit=1000):
            vocabulary = tokenize(entry.question) | tokenize(entry.keywords.replace(",", " "))
            score = len(terms & vocabulary) / len(terms)
            if score >= self.min_score and (best is None or score > best.score):
                best = KnowledgeMatch(entry_id=entry.id, answer=entry.answer, score=score)

        logger.info(
            "Knowledge search completed",
            terms=len(terms),
            matched=best is not None,
            score=best.score if best else 0.0,
        )
        return best
