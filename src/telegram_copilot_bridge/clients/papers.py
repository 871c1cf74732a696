"""PDF paper library.

Ingests PDFs received in chat, classifies them by keyword, stores the
original file, its extracted text and a JSON record side by side, and
retrieves relevant lines to answer questions about them.

Layout under PAPER_DB_DIR:
    index.json                    newest-first list of records (max 500)
    <category>/<title>.pdf        original file
    <category>/<title>.txt        extracted text
    <category>/<title>.json       PaperRecord
"""

from __future__ import annotations

import io
import json
import logging
import re
import time
from pathlib import Path

from pydantic import BaseModel, ValidationError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from ..config import BridgeConfig
from ..errors import PaperError

logger = logging.getLogger(__name__)

INDEX_LIMIT = 500

CATEGORY_RULES: list[tuple[str, list[str]]] = [
    ("NLP", ["language model", "nlp", "token", "prompt", "translation", "bert", "llm"]),
    ("CV", ["image", "vision", "segmentation", "detection", "video", "diffusion"]),
    ("Systems", ["distributed", "throughput", "latency", "scheduler", "cluster", "network"]),
    ("Theory", ["theorem", "lemma", "proof", "complexity", "bound", "optimization"]),
    ("Bio", ["protein", "genome", "clinical", "biomedical", "cell", "drug"]),
    ("AI-ML", ["machine learning", "neural", "transformer", "reinforcement", "gradient"]),
]


class PaperRecord(BaseModel):
    """Metadata of an ingested paper."""

    id: str
    chat_id: int
    topic: str
    title: str
    category: str
    pdf_path: str
    text_path: str
    summary: str
    created_at: int


def classify(text: str) -> str:
    """Category with the most keyword hits, "Other" if none match."""
    lower = text.lower()
    best_category, best_score = "Other", 0
    for category, keywords in CATEGORY_RULES:
        score = sum(1 for keyword in keywords if keyword in lower)
        if score > best_score:
            best_category, best_score = category, score
    return best_category


def extract_title(text: str, file_name: str) -> str:
    candidates = [line.strip() for line in text.splitlines()]
    candidates = [line for line in candidates if 6 < len(line) < 160][:20]
    for line in candidates:
        if not re.match(r"^(arxiv|doi|https?://)", line, re.IGNORECASE):
            return re.sub(r"\s+", " ", line).strip()
    return re.sub(r"\.pdf$", "", file_name or "untitled-paper.pdf", flags=re.IGNORECASE)


def summarize(text: str) -> str:
    """Abstract section if present, else the opening of the text."""
    index = text.lower().find("abstract")
    excerpt = text[index : index + 1000] if index >= 0 else text[:900]
    return re.sub(r"\s+", " ", excerpt).strip()


def safe_file_name(name: str) -> str:
    cleaned = re.sub(r"\s+", " ", re.sub(r'[\\/:*?"<>|]', " ", name)).strip()
    return cleaned[:100] or "paper"


def retrieve_snippets(text: str, question: str, limit: int) -> list[str]:
    """Lines of text ranked by how many question terms they contain."""
    terms = [term for term in re.split(r"[\W_]+", question.lower()) if len(term) > 1]
    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if 20 < len(line) < 300]

    scored = []
    for line in lines:
        lower = line.lower()
        score = sum(1 for term in terms if term in lower)
        if score > 0:
            scored.append((score, line))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [line for _, line in scored[:limit]]


class PaperManager:
    """Stores PDFs and answers questions from their extracted text."""

    def __init__(self, config: BridgeConfig) -> None:
        self.cache_dir = Path(config.paper_cache_dir).expanduser().resolve()
        self.library_dir = Path(config.paper_db_dir).expanduser().resolve()

    def ingest_pdf(self, chat_id: int, topic: str, file_name: str, data: bytes) -> PaperRecord:
        """Extract, classify and store a PDF.

        Raises:
            PaperError: If the bytes are not a readable PDF
        """
        now = int(time.time() * 1000)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        cache_path = self.cache_dir / f"{now}-{safe_file_name(file_name or 'paper.pdf')}"
        cache_path.write_bytes(data)

        text = self._extract_text(data).replace("\x00", "").strip()
        title = extract_title(text, file_name)
        category = classify(text)

        category_dir = self.library_dir / category
        category_dir.mkdir(parents=True, exist_ok=True)
        base = self._unique_base_name(category_dir, safe_file_name(title))
        pdf_path = category_dir / f"{base}.pdf"
        text_path = category_dir / f"{base}.txt"

        pdf_path.write_bytes(data)
        text_path.write_text(text, encoding="utf-8")

        record = PaperRecord(
            id=f"{chat_id}-{topic}-{now}",
            chat_id=chat_id,
            topic=topic,
            title=title,
            category=category,
            pdf_path=str(pdf_path),
            text_path=str(text_path),
            summary=summarize(text),
            created_at=now,
        )
        (category_dir / f"{base}.json").write_text(
            record.model_dump_json(indent=2), encoding="utf-8"
        )
        self._append_index(record)
        logger.info(f"Ingested paper '{title}' into {category}")
        return record

    def get_paper_by_path(self, pdf_path: str | None) -> PaperRecord | None:
        """Load the record stored next to a PDF, None if it is missing or unreadable."""
        if not pdf_path:
            return None
        path = Path(pdf_path)
        if path.suffix.lower() == ".pdf":
            metadata_path = path.with_suffix(".json")
        else:
            metadata_path = Path(f"{pdf_path}.json")
        if not metadata_path.exists():
            return None
        try:
            return PaperRecord.model_validate_json(metadata_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Unreadable paper record {metadata_path}: {e}")
            return None

    def answer_question(self, record: PaperRecord, question: str) -> str:
        """Answer from the best-matching lines of the paper text."""
        text = self._read_text(record)
        if text is None:
            return "The paper text is missing, so this question cannot be answered."

        snippets = retrieve_snippets(text, question, 5)
        if not snippets:
            return f'No passage in "{record.title}" matches this question.'

        lines = [f'Results from "{record.title}":']
        lines.extend(f"{index}. {line}" for index, line in enumerate(snippets, start=1))
        return "\n".join(lines)

    def build_context(self, record: PaperRecord, question: str) -> str:
        """Evidence block for the inference backend."""
        lines = [
            f"Paper title: {record.title}",
            f"Category: {record.category}",
            f"Summary: {record.summary}",
            f"Question: {question}",
        ]
        text = self._read_text(record)
        if text is None:
            lines.append("The paper text file is missing; answer cautiously from the summary.")
            return "\n".join(lines)

        lines.append("Candidate evidence (most relevant first):")
        snippets = retrieve_snippets(text, question, 8)
        if not snippets:
            lines.append(
                "1. No passage matches the question directly; reason from the paper as a whole"
                " and state any uncertainty."
            )
        lines.extend(f"{index}. {line}" for index, line in enumerate(snippets, start=1))
        return "\n".join(lines)

    def list_recent(self) -> list[PaperRecord]:
        index_path = self.library_dir / "index.json"
        if not index_path.exists():
            return []
        items = json.loads(index_path.read_text(encoding="utf-8"))
        return [PaperRecord.model_validate(item) for item in items]

    # =========================================================================
    # Internals
    # =========================================================================

    def _extract_text(self, data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            return "\n".join(page.extract_text() or "" for page in reader.pages)
        except (PdfReadError, ValueError, OSError) as e:
            raise PaperError(f"Could not read PDF: {e}") from e

    def _read_text(self, record: PaperRecord) -> str | None:
        path = Path(record.text_path)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _append_index(self, record: PaperRecord) -> None:
        records = self.list_recent()
        records.insert(0, record)
        index_path = self.library_dir / "index.json"
        index_path.write_text(
            json.dumps([item.model_dump() for item in records[:INDEX_LIMIT]], indent=2),
            encoding="utf-8",
        )

    @staticmethod
    def _unique_base_name(directory: Path, base: str) -> str:
        normalized = re.sub(r"\.pdf$", "", base, flags=re.IGNORECASE).strip() or "paper"
        candidate, count = normalized, 1
        while (directory / f"{candidate}.pdf").exists():
            count += 1
            candidate = f"{normalized}-{count}"
        return candidate
