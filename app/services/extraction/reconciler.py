"""
Extraction Reconciler
Merges OCR and LLM extraction output into one canonical document body

Precedence:
1. OCR + LLM both produced text → sentence-level merge
2. Only LLM produced text → LLM text
3. Only OCR produced text → OCR text
4. Nothing → empty content, meta.error set to the most specific reason

Merge (deterministic):
- Whitespace normalized
- Primary = higher confidence result (heuristic estimate when absent, ties → LLM)
- Secondary sentences appended when Jaccard word similarity to every primary
  sentence is below the threshold; a similar but longer secondary sentence
  replaces its primary counterpart
- Exact duplicate sentences dropped
"""
import logging
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from app.models.records import ExtractionMeta, ExtractionMethod, ExtractionResult

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8
NO_CONTENT_ERROR = "No extraction method produced content"

_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)")
_WORD_RE = re.compile(r"\w+")
_SPECIAL_CHAR_RE = re.compile(r"[^a-zA-Z0-9\s.,!?]")
_PROPER_SENTENCE_RE = re.compile(r"[.!?]\s+[A-Z]")

# Method order used for error reporting and source listing
METHOD_ORDER = (ExtractionMethod.OCR, ExtractionMethod.LLM)


# ============================================================================
# TEXT HELPERS
# ============================================================================

def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_RE.findall(text) if s.strip()]


def _word_set(sentence: str) -> Set[str]:
    return set(_WORD_RE.findall(sentence.lower()))


def jaccard_similarity(a: str, b: str) -> float:
    words_a, words_b = _word_set(a), _word_set(b)
    union = words_a | words_b
    if not union:
        return 1.0 if a == b else 0.0
    return len(words_a & words_b) / len(union)


# ============================================================================
# CONFIDENCE HEURISTICS
# ============================================================================

def estimate_ocr_confidence(text: str) -> float:
    """Penalize OCR artifacts, reward plausible word lengths and volume."""
    words = text.split()
    if not words:
        return 0.0
    special_ratio = len(_SPECIAL_CHAR_RE.findall(text)) / len(text)
    avg_word_length = sum(len(w) for w in words) / len(words)

    confidence = 0.5
    if special_ratio > 0.1:
        confidence -= 0.2
    if 3 <= avg_word_length <= 8:
        confidence += 0.2
    if len(words) > 50:
        confidence += 0.1
    return max(0.0, min(1.0, confidence))


def estimate_llm_confidence(text: str) -> float:
    words = text.split()
    if not words:
        return 0.0
    confidence = 0.7
    if _PROPER_SENTENCE_RE.search(text):
        confidence += 0.1
    if "\n" in text or len(text) > 100:
        confidence += 0.1
    if len(words) > 50:
        confidence += 0.1
    return max(0.0, min(1.0, confidence))


def confidence_of(result: ExtractionResult) -> float:
    if result.confidence is not None:
        return result.confidence
    if result.method == ExtractionMethod.OCR:
        return estimate_ocr_confidence(result.text)
    elif result.method == ExtractionMethod.LLM:
        return estimate_llm_confidence(result.text)
    raise ValueError(f"Unknown extraction method: {result.method}")


# ============================================================================
# RECONCILER
# ============================================================================

class ExtractionReconciler:
    """Pure function object; safe to share across requests."""

    def __init__(self, similarity_threshold: float = SIMILARITY_THRESHOLD):
        self.similarity_threshold = similarity_threshold

    def merge(self, primary: str, secondary: str) -> str:
        primary_sentences = split_sentences(normalize_whitespace(primary))
        merged = list(primary_sentences)

        for sentence in split_sentences(normalize_whitespace(secondary)):
            best_index: Optional[int] = None
            best_score = 0.0
            for index, candidate in enumerate(primary_sentences):
                score = jaccard_similarity(sentence, candidate)
                if score > best_score:
                    best_index, best_score = index, score

            if best_index is None or best_score < self.similarity_threshold:
                merged.append(sentence)
            elif len(sentence) > len(merged[best_index]):
                merged[best_index] = sentence

        seen: Set[str] = set()
        unique: List[str] = []
        for sentence in merged:
            if sentence not in seen:
                seen.add(sentence)
                unique.append(sentence)
        return " ".join(unique)

    @staticmethod
    def _failure_reason(by_method: Dict[ExtractionMethod, ExtractionResult]) -> str:
        errors = [
            f"{method.value}: {by_method[method].error}"
            for method in METHOD_ORDER
            if method in by_method and by_method[method].error
        ]
        if errors:
            return "; ".join(errors)

        empties = [f"{method.value}: empty output" for method in METHOD_ORDER if method in by_method]
        if empties:
            return "; ".join(empties)

        return NO_CONTENT_ERROR

    def reconcile(self, results: Iterable[ExtractionResult]) -> Tuple[str, ExtractionMeta]:
        """
        Returns:
            (content, extraction_meta). content is empty only when meta.error is set.
        """
        by_method: Dict[ExtractionMethod, ExtractionResult] = {}
        for result in results:
            current = by_method.get(result.method)
            # first result with text wins per method
            if current is None or (not current.has_text and result.has_text):
                by_method[result.method] = result

        ocr = by_method.get(ExtractionMethod.OCR)
        llm = by_method.get(ExtractionMethod.LLM)
        ocr_ok = ocr is not None and ocr.has_text
        llm_ok = llm is not None and llm.has_text

        if ocr_ok and llm_ok:
            if confidence_of(ocr) > confidence_of(llm):
                primary, secondary = ocr, llm
            else:
                primary, secondary = llm, ocr
            content = self.merge(primary.text, secondary.text)
            logger.info(
                f"🔀 Merged OCR ({len(ocr.text)} chars) + LLM ({len(llm.text)} chars), "
                f"primary={primary.method.value} → {len(content)} chars"
            )
            meta = ExtractionMeta(
                ocr=True,
                llm=True,
                merged=True,
                multi_method_extraction=True,
                methods=[m.value for m in METHOD_ORDER],
                sources={
                    ExtractionMethod.OCR.value: ocr.text,
                    ExtractionMethod.LLM.value: llm.text,
                },
            )
            return content, meta

        if llm_ok:
            return llm.text.strip(), ExtractionMeta(llm=True, methods=[ExtractionMethod.LLM.value])

        if ocr_ok:
            return ocr.text.strip(), ExtractionMeta(ocr=True, methods=[ExtractionMethod.OCR.value])

        reason = self._failure_reason(by_method)
        logger.warning(f"⚠️  Extraction produced no content: {reason}")
        return "", ExtractionMeta(error=reason)
