"""
Daily AI-generated content feeds.

Each feed is a directory of JSON documents under ``settings.content_dir``:

* ``pattern/``: two English sentence patterns per day, with Korean and
  Japanese meanings and example sentences, one ``YYYYMMDD.json`` per day;
* ``news/``: three IT news articles per day with multilingual titles and
  summaries, one ``YYYYMMDD.json`` per day;
* ``baby-growth/``: baby growth guidance per week in Korean, Japanese and
  English, one ``week-N.json`` per week. The newborn guide ships with the
  package.

The generate functions ask the model for a document, validate it and store
it; the load functions return the latest (or a selected) document. Files that
cannot be read or parsed are logged and skipped.
"""

from __future__ import annotations

import json
import logging
import random
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from wallylog.core.config import settings
from wallylog.core.errors import WallyLogError
from wallylog.schemas.content import QuizResponse
from wallylog.services import ai

logger = logging.getLogger(__name__)

PATTERN_FEED = "pattern"
NEWS_FEED = "news"
BABY_GROWTH_FEED = "baby-growth"

BABY_GROWTH_LANGUAGES = ("ko", "ja", "en")
BABY_GROWTH_SECTIONS = ("changes", "cautions", "tips", "upcoming", "hospitalSigns")
NEWBORN_GUIDE_PATH = Path(__file__).resolve().parent.parent / "data" / "baby_growth_newborn.json"

QUIZ_DIFFICULTY_LABELS = {
    "ko": {"easy": "초급", "medium": "중급", "hard": "고급"},
    "en": {"easy": "Beginner", "medium": "Intermediate", "hard": "Advanced"},
    "ja": {"easy": "初級", "medium": "中級", "hard": "上級"},
}

QUIZ_ERROR = "AI가 생성한 퀴즈 데이터를 처리할 수 없습니다."
BABY_GROWTH_ERROR = "AI가 생성한 아기 성장 정보를 처리할 수 없습니다."


class FeedNotFoundError(WallyLogError):
    status_code = 404


def feed_dir(feed: str) -> Path:
    return Path(settings.content_dir) / feed


def _feed_files(feed: str) -> list[Path]:
    directory = feed_dir(feed)
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.iterdir() if path.is_file())


def _read(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def _read_or_none(path: Path) -> dict[str, Any] | None:
    try:
        document = _read(path)
    except (OSError, json.JSONDecodeError):
        logger.warning("feed_file_unreadable", extra={"path": str(path)})
        return None
    if not isinstance(document, dict):
        logger.warning("feed_file_unreadable", extra={"path": str(path)})
        return None
    return document


def readable_documents(feed: str) -> list[tuple[Path, dict[str, Any]]]:
    """Every parseable document of ``feed``, oldest first."""
    documents = []
    for path in _feed_files(feed):
        document = _read_or_none(path)
        if document is not None:
            documents.append((path, document))
    return documents


def save_feed(
    feed: str, document: dict[str, Any], *, now: datetime | None = None, name: str | None = None
) -> Path:
    stamp = name or (now or datetime.now(timezone.utc)).strftime("%Y%m%d")
    directory = feed_dir(feed)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{stamp}.json"
    path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("feed_saved", extra={"feed": feed, "path": str(path)})
    return path


def known_patterns() -> tuple[list[str], int]:
    """Every pattern generated so far and the number of readable feed days."""
    patterns: list[str] = []
    documents = readable_documents(PATTERN_FEED)
    for _, parsed in documents:
        patterns.extend(
            item["pattern"]
            for item in parsed.get("patterns") or []
            if isinstance(item, dict) and item.get("pattern")
        )
    return patterns, len(documents)


def load_patterns(day: int | None = None) -> dict[str, Any]:
    documents = readable_documents(PATTERN_FEED)
    if not documents:
        raise FeedNotFoundError("No files found in the pattern directory.")
    _, target = documents[-1]
    if day is not None:
        target = next((doc for _, doc in documents if doc.get("day") == day), None)
        if target is None:
            raise FeedNotFoundError(f"No pattern file for day {day}.")
    return {**target, "totalCount": len(documents)}


def load_news(date: str | None = None) -> dict[str, Any]:
    documents = readable_documents(NEWS_FEED)
    if not documents:
        raise FeedNotFoundError("No files found in the news directory.")
    _, target = documents[-1]
    if date:
        target = next((doc for _, doc in documents if doc.get("date") == date), None)
        if target is None:
            raise FeedNotFoundError(f"No news file for {date}.")
    return {**target, "allDates": [path.name for path, _ in documents]}


def baby_growth_name(week: int) -> str:
    return f"week-{week}"


def load_baby_growth(week: int | None = None) -> dict[str, Any]:
    """The generated guide for ``week``, or the bundled newborn guide."""
    if week is None:
        return _read(NEWBORN_GUIDE_PATH)
    path = feed_dir(BABY_GROWTH_FEED) / f"{baby_growth_name(week)}.json"
    document = _read_or_none(path) if path.is_file() else None
    if document is None:
        raise FeedNotFoundError(f"No baby growth file for week {week}.")
    return document


def validate_baby_growth(document: dict[str, Any]) -> dict[str, Any]:
    for language in BABY_GROWTH_LANGUAGES:
        info = document.get(language)
        if not isinstance(info, dict):
            raise ai.AIResponseError(BABY_GROWTH_ERROR)
        for section in BABY_GROWTH_SECTIONS:
            entries = info.get(section)
            if not isinstance(entries, list) or not entries:
                raise ai.AIResponseError(BABY_GROWTH_ERROR)
            if not all(isinstance(entry, str) and entry.strip() for entry in entries):
                raise ai.AIResponseError(BABY_GROWTH_ERROR)
    return {language: document[language] for language in BABY_GROWTH_LANGUAGES}


def pattern_prompt(avoid: list[str], day: int) -> str:
    exclusion = (
        "exclude the following patterns: " + ", ".join(avoid)
        if avoid
        else "not duplicate any previously generated patterns."
    )
    return f"""Please generate 2 English sentence patterns.

Conditions:
1. The patterns should be practical and commonly used in daily life.
2. Each pattern must {exclusion}
3. Each pattern must include 2 real-life example sentences.
4. All examples should sound natural and be suitable for everyday situations.

Return the result in the following JSON format:
{{
  "day": {day + 1},
  "patterns": [
    {{
      "pId": "1",
      "pattern": "Pattern expression",
      "meaning": "Meaning in Korean",
      "meaning_ja": "Meaning in Japanese",
      "examples": [
        {{
          "eId": "1",
          "sentence": "Example sentence",
          "translation": "Korean translation",
          "translation_ja": "Japanese translation"
        }}
      ]
    }}
  ]
}}

You must respond only in JSON format. All fields must be filled.
Do not escape Unicode characters in Korean or Japanese translations.
"""


def news_prompt(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d")
    return f"""Generate JSON data according to the following instructions:

1. Fetch 3 trustworthy IT news articles for {stamp}.
2. Only include news from verified, reputable sources.
3. Include the original title and URL for each news article.
4. Put a factual summary in 'summary.original'. Do not fabricate facts.
5. Translate both the title and summary into Korean (ko), Japanese (ja), and English (en).
6. Generate a random unique ID for each news item.
7. Do not escape Unicode characters. Output JSON data only.

Example output format:
{{
  "date": "{stamp}",
  "sources": [
    {{
      "id": "random_unique_id_1",
      "title": {{"original": "...", "ko": "...", "ja": "...", "en": "..."}},
      "url": "https://example.com/news",
      "summary": {{"original": "...", "ko": "...", "ja": "...", "en": "..."}}
    }}
  ]
}}
"""


def quiz_prompt(difficulty: str, language: str, user_language: str) -> str:
    labels = QUIZ_DIFFICULTY_LABELS.get(user_language, QUIZ_DIFFICULTY_LABELS["en"])
    level = labels.get(difficulty, difficulty)
    reply_language = {"ko": "Korean", "ja": "Japanese"}.get(user_language, "English")
    return f"""Generate a {level} level coding quiz in the {language} programming language.

Requirements:
1. Write 10-20 lines of actual working code.
2. Create 4 explanations about the code, where exactly 1 is incorrect.
3. All text must be written in {reply_language}.
4. The incorrect explanation should be subtle but clearly wrong.

Return in the following JSON format:
{{
  "code": "actual working {language} code",
  "question": "Which explanation about the following {language} code is incorrect?",
  "options": [
    {{"id": 1, "text": "explanation1", "isCorrect": false}},
    {{"id": 2, "text": "explanation2", "isCorrect": false}},
    {{"id": 3, "text": "incorrect explanation", "isCorrect": true}},
    {{"id": 4, "text": "explanation4", "isCorrect": false}}
  ],
  "explanation": "why the incorrect option is wrong"
}}

Please respond only in JSON format.
"""


def baby_growth_prompt(week: int) -> str:
    return f"""Generate JSON data according to the following instructions:

1. Create comprehensive baby growth information for week {week}.
2. Only include medically accurate, verified information suitable for parents.
3. For each category (changes, cautions, tips, upcoming, hospitalSigns), provide relevant information.
4. Translate all information into Korean (ko), Japanese (ja), and English (en).
5. Follow the JSON structure exactly and do not leave any fields empty.
6. Do not escape Unicode characters in Korean or Japanese translations.
7. Output JSON data only, without unnecessary sentences or explanations.

Example output format:
{{
  "ko": {{
    "changes": ["변화 내용 1", "변화 내용 2"],
    "cautions": ["주의사항 1", "주의사항 2"],
    "tips": ["팁 1", "팁 2"],
    "upcoming": ["예정 사항 1", "예정 사항 2"],
    "hospitalSigns": ["병원 방문 신호 1", "병원 방문 신호 2"]
  }},
  "ja": {{"changes": [...], "cautions": [...], "tips": [...], "upcoming": [...], "hospitalSigns": [...]}},
  "en": {{"changes": [...], "cautions": [...], "tips": [...], "upcoming": [...], "hospitalSigns": [...]}}
}}
"""


async def generate_english_patterns() -> Path:
    avoid, days = known_patterns()
    answer = await ai.generate_text(pattern_prompt(avoid, days))
    document = ai.extract_json(answer, error_message="AI가 생성한 패턴 데이터를 처리할 수 없습니다.")
    if not isinstance(document.get("patterns"), list) or not document["patterns"]:
        raise ai.AIResponseError("AI가 생성한 패턴 데이터를 처리할 수 없습니다.")
    return save_feed(PATTERN_FEED, document)


async def generate_it_news() -> Path:
    answer = await ai.generate_text(news_prompt())
    document = ai.extract_json(answer, error_message="AI가 생성한 뉴스 데이터를 처리할 수 없습니다.")
    if not isinstance(document.get("sources"), list) or not document["sources"]:
        raise ai.AIResponseError("AI가 생성한 뉴스 데이터를 처리할 수 없습니다.")
    return save_feed(NEWS_FEED, document)


async def generate_quiz(difficulty: str, language: str, user_language: str) -> QuizResponse:
    answer = await ai.generate_text(quiz_prompt(difficulty, language, user_language))
    data = ai.extract_json(answer, error_message=QUIZ_ERROR)
    options = data.get("options")
    if not data.get("code") or not isinstance(options, list) or len(options) != 4:
        raise ai.AIResponseError(QUIZ_ERROR)
    try:
        return QuizResponse.model_validate(
            {
                "id": random.randint(0, 999),
                "code": data["code"],
                "question": data.get("question") or "",
                "options": options,
                "explanation": data.get("explanation") or "",
            }
        )
    except SchemaValidationError as exc:
        logger.warning("quiz_answer_invalid", extra={"errors": exc.error_count()})
        raise ai.AIResponseError(QUIZ_ERROR) from exc


async def generate_baby_growth(week: int) -> tuple[Path, dict[str, Any]]:
    answer = await ai.generate_text(baby_growth_prompt(week))
    document = validate_baby_growth(ai.extract_json(answer, error_message=BABY_GROWTH_ERROR))
    return save_feed(BABY_GROWTH_FEED, document, name=baby_growth_name(week)), document
