"""
Question Extraction Helpers
===========================
Produce question lists in the shape the catalog consumes, either as
placeholder samples or parsed from an uploaded JSON / CSV document.

Rows that are incomplete are dropped. An empty result is an error.
"""

import csv
import io
import json
from typing import List, Dict, Any, Optional

from app.core.exceptions import ExtractionError
from app.core.logging_config import logger
from app.models.test_catalog import Subject, OPTION_LABELS
from app.schemas.test_catalog import ExtractedQuestion

MIN_SAMPLE_COUNT = 1
MAX_SAMPLE_COUNT = 50
EXTRACTED_QUESTION_MARKS = 1

# CSV header aliases, first match wins
CSV_COLUMNS = {
    "question_text": ("Question", "questionText"),
    "A": ("Option A", "A"),
    "B": ("Option B", "B"),
    "C": ("Option C", "C"),
    "D": ("Option D", "D"),
    "correct_answer": ("Correct Answer", "correctAnswer"),
}


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _build_question(question_text: Any, options: Dict[str, Any], correct_answer: Any) -> Optional[ExtractedQuestion]:
    text = _clean(question_text)
    cleaned = {label: _clean(options.get(label)) for label in OPTION_LABELS}
    answer = _clean(correct_answer)
    if answer:
        answer = answer.upper()

    if not text or not all(cleaned.values()) or answer not in OPTION_LABELS:
        return None
    return ExtractedQuestion(
        question_text=text,
        options=cleaned,
        correct_answer=answer,
        marks=EXTRACTED_QUESTION_MARKS,
    )


def _decode(content: bytes, source: str) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ExtractionError(f"{source.upper()} file must be UTF-8 encoded", source=source)


def generate_sample(subject: Subject, count: int = 5) -> List[ExtractedQuestion]:
    """Placeholder questions an author can edit before creating a test"""
    if not MIN_SAMPLE_COUNT <= count <= MAX_SAMPLE_COUNT:
        raise ExtractionError(
            f"Sample count must be between {MIN_SAMPLE_COUNT} and {MAX_SAMPLE_COUNT}",
            source="sample",
        )

    questions = []
    for index in range(count):
        number = index + 1
        questions.append(ExtractedQuestion(
            question_text=f"Sample {subject.value} question {number}",
            options={label: f"Option {label} for question {number}" for label in OPTION_LABELS},
            correct_answer=OPTION_LABELS[index % len(OPTION_LABELS)],
            marks=EXTRACTED_QUESTION_MARKS,
        ))
    return questions


def extract_from_json(content: bytes) -> List[ExtractedQuestion]:
    """Accepts a list of questions or an object with a "questions" list"""
    try:
        data = json.loads(_decode(content, "json"))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"Invalid JSON format or structure: {e.msg}", source="json")

    items = data if isinstance(data, list) else (data.get("questions") if isinstance(data, dict) else None)
    if not isinstance(items, list):
        raise ExtractionError("Invalid JSON format or structure", source="json")

    questions = []
    for item in items:
        if not isinstance(item, dict):
            continue
        options = item.get("options")
        question = _build_question(
            item.get("questionText"),
            options if isinstance(options, dict) else {},
            item.get("correctAnswer"),
        )
        if question:
            questions.append(question)

    if not questions:
        raise ExtractionError("No valid questions found in JSON file", source="json")

    logger.info(f"[Extractor] Extracted {len(questions)} of {len(items)} questions from JSON")
    return questions


def extract_from_csv(content: bytes) -> List[ExtractedQuestion]:
    """Header row plus one question per row"""
    text = _decode(content, "csv")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise ExtractionError("CSV file must have at least a header and one data row", source="csv")

    headers = {name.strip(): name for name in reader.fieldnames if name}

    def column(row: Dict[str, Any], key: str) -> Any:
        for alias in CSV_COLUMNS[key]:
            if alias in headers and _clean(row.get(headers[alias])):
                return row.get(headers[alias])
        return None

    questions = []
    total = 0
    for row in reader:
        total += 1
        question = _build_question(
            column(row, "question_text"),
            {label: column(row, label) for label in OPTION_LABELS},
            column(row, "correct_answer"),
        )
        if question:
            questions.append(question)

    if not questions:
        raise ExtractionError("No valid questions found in CSV file", source="csv")

    logger.info(f"[Extractor] Extracted {len(questions)} of {total} rows from CSV")
    return questions


def extract_from_file(filename: str, content: bytes) -> List[ExtractedQuestion]:
    """Dispatch on file extension"""
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension == "json":
        return extract_from_json(content)
    if extension == "csv":
        return extract_from_csv(content)
    raise ExtractionError("Unsupported file type. Upload a .json or .csv file", source=extension or None)
